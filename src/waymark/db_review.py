"""ReviewMixin — persisted review actions and the review toggle.

Each action checks the actor's role first, then whether the action is legal
for the stored review status, then writes with an ``UPDATE`` conditioned on
that status so a concurrent change surfaces as a ConflictError.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from waymark.db_base import DBMixinProtocol, _now_iso
from waymark.errors import ConflictError, ValidationError
from waymark.logging import work_item_extra
from waymark.review import check_action, next_status, supports_review

if TYPE_CHECKING:
    from waymark.core import WorkItem

logger = logging.getLogger(__name__)

_EVENT_FOR_ACTION = {
    "request": "review_requested",
    "approve": "review_approved",
    "reject": "review_rejected",
    "cancel": "review_cancelled",
}


class ReviewMixin(DBMixinProtocol):
    """Request, approve, reject and cancel reviews; enable or disable review."""

    def _apply_review_action(
        self,
        work_item_id: str,
        action: str,
        *,
        actor: str,
        actor_role: str,
        reason: str = "",
    ) -> WorkItem:
        item = self.get_work_item(work_item_id)
        self.role_policy.check(action, actor_role, actor=actor, requested_by=item.review_requested_by)
        check_action(item.type, item.phase, item.review_enabled, item.review_status, action)

        now = _now_iso()
        new_status = next_status(action)
        columns: dict[str, Any] = {"review_status": new_status}
        if action == "request":
            columns |= {
                "review_requested_by": actor,
                "review_requested_at": now,
                "review_completed_by": "",
                "review_completed_at": None,
                "review_reason": "",
            }
        elif action == "approve":
            columns |= {"review_completed_by": actor, "review_completed_at": now, "review_reason": ""}
        elif action == "reject":
            columns |= {"review_completed_by": actor, "review_completed_at": now, "review_reason": reason}
        else:
            columns |= {
                "review_requested_by": "",
                "review_requested_at": None,
                "review_completed_by": "",
                "review_completed_at": None,
                "review_reason": "",
            }
        columns["updated_at"] = now

        assignments = ", ".join(f"{c} = ?" for c in columns)
        try:
            cursor = self.conn.execute(
                f"UPDATE work_items SET {assignments} WHERE id = ? AND review_status IS ?",
                (*columns.values(), work_item_id, item.review_status),
            )
            if cursor.rowcount == 0:
                msg = f"Review status of {work_item_id} changed concurrently; reload and retry"
                raise ConflictError(msg, fields=["review_status"])
            self._record_event(
                work_item_id,
                _EVENT_FOR_ACTION[action],
                actor=actor,
                old_value=item.review_status,
                new_value=new_status,
                comment=reason,
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info(
            "Review %s on %s by %s (%s)",
            action,
            work_item_id,
            actor or "-",
            actor_role,
            extra=work_item_extra(work_item_id, item.type, actor=actor),
        )
        return self.get_work_item(work_item_id)

    def request_review(self, work_item_id: str, *, actor: str = "", actor_role: str = "member") -> WorkItem:
        return self._apply_review_action(work_item_id, "request", actor=actor, actor_role=actor_role)

    def approve_review(self, work_item_id: str, *, actor: str = "", actor_role: str = "member") -> WorkItem:
        return self._apply_review_action(work_item_id, "approve", actor=actor, actor_role=actor_role)

    def reject_review(self, work_item_id: str, reason: str, *, actor: str = "", actor_role: str = "member") -> WorkItem:
        if not reason or not reason.strip():
            msg = "A reason is required to reject a review"
            raise ValidationError(msg, fields=["reason"])
        return self._apply_review_action(work_item_id, "reject", actor=actor, actor_role=actor_role, reason=reason.strip())

    def cancel_review(self, work_item_id: str, *, actor: str = "", actor_role: str = "member") -> WorkItem:
        return self._apply_review_action(work_item_id, "cancel", actor=actor, actor_role=actor_role)

    def set_review_enabled(
        self,
        work_item_id: str,
        enabled: bool,
        *,
        actor: str = "",
        actor_role: str = "member",
    ) -> WorkItem:
        """Turn the review gate on or off. Disabling also clears review state."""
        item = self.get_work_item(work_item_id)
        self.role_policy.check_toggle(actor_role)
        if not supports_review(item.type):
            msg = f"Review is not supported for {item.type} work items"
            raise ValidationError(msg, fields=["review_enabled"])
        if item.review_enabled == enabled:
            return item

        now = _now_iso()
        try:
            if enabled:
                self.conn.execute(
                    "UPDATE work_items SET review_enabled = 1, updated_at = ? WHERE id = ?",
                    (now, work_item_id),
                )
            else:
                self.conn.execute(
                    "UPDATE work_items SET review_enabled = 0, review_status = NULL, review_requested_by = '', "
                    "review_requested_at = NULL, review_completed_by = '', review_completed_at = NULL, "
                    "review_reason = '', updated_at = ? WHERE id = ?",
                    (now, work_item_id),
                )
            self._record_event(
                work_item_id,
                "review_enabled" if enabled else "review_disabled",
                actor=actor,
                old_value=item.review_status,
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_work_item(work_item_id)
