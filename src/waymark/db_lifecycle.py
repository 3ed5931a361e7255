"""LifecycleMixin — phase transitions, auto-upgrade and concept rejection.

Every phase write goes through ``_write_phase``, an ``UPDATE`` conditioned
on the phase the caller read. If another writer moved the item in between,
zero rows match and the caller gets a ConflictError instead of silently
overwriting the newer phase. Forward moves into a review-gated phase are
also conditioned on the review status the guard checked.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from waymark.bug_workflow import can_advance_phase, merge_bug_metadata
from waymark.db_base import DBMixinProtocol, _now_iso
from waymark.errors import ConflictError, IncompleteDataError, ValidationError
from waymark.logging import work_item_extra
from waymark.readiness import ReadinessInput
from waymark.readiness import compute_readiness as _compute_readiness
from waymark.review import review_blockers
from waymark.types.lifecycle import AdvanceCheck, ReadinessReport

if TYPE_CHECKING:
    from waymark.core import WorkItem

logger = logging.getLogger(__name__)

MIN_REJECTION_REASON = 10


class LifecycleMixin(DBMixinProtocol):
    """Guarded phase changes, readiness lookups and bug metadata updates."""

    if TYPE_CHECKING:

        def timeline_counts(self, work_item_id: str) -> tuple[int, int]: ...

    # -- Guards --------------------------------------------------------------

    def _check_guards(self, item: WorkItem, target: str) -> None:
        """Raise ValidationError if the review gate or bug metadata veto the move."""
        if not self.phases.is_forward(item.type, item.phase, target):
            return
        blockers = review_blockers(item.type, target, item.review_enabled, item.review_status, self.phases)
        if blockers:
            msg = f"Cannot move to '{target}': {blockers[0]}"
            raise ValidationError(msg, fields=["review_status"])
        if item.type == "bug":
            # Review was checked above; only the metadata rules apply here.
            check = can_advance_phase(item.phase, item.bug_metadata, False, None)
            if not check["can_advance"]:
                msg = f"Cannot move to '{target}': {'; '.join(check['blockers'])}"
                raise ValidationError(msg, fields=["bug_metadata"])
        if item.type == "concept" and target == "rejected" and len(item.rejection_reason.strip()) < MIN_REJECTION_REASON:
            msg = f"A rejection reason of at least {MIN_REJECTION_REASON} characters is required to reject a concept"
            raise ValidationError(msg, fields=["rejection_reason"])

    def _enters_gated_phase(self, item: WorkItem, target: str) -> bool:
        if not self.phases.is_forward(item.type, item.phase, target):
            return False
        return self.phases.phase_config(item.type, target).review_gated

    def _write_phase(
        self,
        item: WorkItem,
        target: str,
        *,
        actor: str,
        extra: dict[str, Any] | None = None,
        event_type: str = "phase_changed",
        comment: str = "",
    ) -> None:
        """Conditional phase UPDATE plus its event, in one transaction."""
        columns: dict[str, Any] = {"phase": target, **(extra or {}), "updated_at": _now_iso()}
        assignments = ", ".join(f"{c} = ?" for c in columns)
        where = "id = ? AND phase = ?"
        params: list[Any] = [item.id, item.phase]
        gated = item.review_enabled and self._enters_gated_phase(item, target)
        if gated:
            where += " AND review_status IS ?"
            params.append(item.review_status)
        try:
            cursor = self.conn.execute(
                f"UPDATE work_items SET {assignments} WHERE {where}",
                (*columns.values(), *params),
            )
            if cursor.rowcount == 0:
                if gated:
                    msg = (
                        f"{item.id} is no longer in phase '{item.phase}' with review status {item.review_status!r}; "
                        "it was changed by another writer"
                    )
                    raise ConflictError(msg, fields=["phase", "review_status"])
                msg = f"{item.id} is no longer in phase '{item.phase}'; it was changed by another writer"
                raise ConflictError(msg, fields=["phase"])
            self._record_event(item.id, event_type, actor=actor, old_value=item.phase, new_value=target, comment=comment)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info(
            "%s %s: %s -> %s (actor=%s)",
            item.type,
            item.id,
            item.phase,
            target,
            actor or "-",
            extra=work_item_extra(item.id, item.type, actor=actor, from_phase=item.phase, to_phase=target),
        )

    # -- Transitions ---------------------------------------------------------

    def transition_phase(
        self,
        work_item_id: str,
        target_phase: str,
        *,
        expected_current_phase: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Move a work item one step through its workflow.

        Checks run in a fixed order: existence, legality of the step from the
        phase the caller believes is current, staleness of that belief, the
        review gate, bug metadata, and the concept rejection reason.
        """
        item = self.get_work_item(work_item_id)
        from_phase = expected_current_phase if expected_current_phase is not None else item.phase
        self.phases.validate_transition(item.type, from_phase, target_phase)
        if from_phase != item.phase:
            msg = f"{work_item_id} is in phase '{item.phase}', not '{from_phase}'; reload and retry"
            raise ConflictError(msg, fields=["phase"])
        self._check_guards(item, target_phase)
        self._write_phase(item, target_phase, actor=actor)
        return self.get_work_item(work_item_id)

    def upgrade_phase(
        self,
        work_item_id: str,
        *,
        expected_current_phase: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Advance to the next phase only when readiness says every requirement is met."""
        item = self.get_work_item(work_item_id)
        if expected_current_phase is not None and expected_current_phase != item.phase:
            msg = f"{work_item_id} is in phase '{item.phase}', not '{expected_current_phase}'; reload and retry"
            raise ConflictError(msg, fields=["phase"])
        report = self._readiness_for(item)
        if report["next_phase"] is None:
            msg = f"Phase '{item.phase}' is terminal for type '{item.type}'; there is no next phase"
            raise ValidationError(msg, fields=["phase"])
        if not report["can_upgrade"]:
            missing = [m["field"] for m in report["missing_fields"]]
            msg = f"Cannot upgrade to '{report['next_phase']}': missing {', '.join(missing)}"
            raise IncompleteDataError(msg, fields=missing)
        return self.transition_phase(
            work_item_id,
            report["next_phase"],
            expected_current_phase=item.phase,
            actor=actor,
        )

    def allowed_transitions(self, work_item_id: str) -> list[str]:
        item = self.get_work_item(work_item_id)
        return self.phases.allowed_targets(item.type, item.phase)

    def reject_concept(
        self,
        concept_id: str,
        reason: str,
        *,
        archive: bool = False,
        actor: str = "",
    ) -> WorkItem:
        """Record a rejection reason and move a concept into ``rejected``."""
        item = self.get_work_item(concept_id)
        if item.type != "concept":
            msg = f"Only concepts can be rejected, not {item.type}"
            raise ValidationError(msg, fields=["type"])
        reason = (reason or "").strip()
        if len(reason) < MIN_REJECTION_REASON:
            msg = f"A rejection reason of at least {MIN_REJECTION_REASON} characters is required to reject a concept"
            raise ValidationError(msg, fields=["rejection_reason"])
        self.phases.validate_transition(item.type, item.phase, "rejected")
        self._write_phase(
            item,
            "rejected",
            actor=actor,
            extra={"rejection_reason": reason, "archived": int(archive)},
            event_type="concept_rejected",
            comment=reason,
        )
        return self.get_work_item(concept_id)

    # -- Readiness -----------------------------------------------------------

    def _readiness_for(self, item: WorkItem) -> ReadinessReport:
        total, completed = self.timeline_counts(item.id)
        return _compute_readiness(
            ReadinessInput.from_work_item(item),
            timeline_item_count=total,
            completed_timeline_count=completed,
            registry=self.phases,
        )

    def compute_readiness(self, work_item_id: str) -> ReadinessReport:
        return self._readiness_for(self.get_work_item(work_item_id))

    def check_bug_advance(self, work_item_id: str) -> AdvanceCheck:
        item = self.get_work_item(work_item_id)
        if item.type != "bug":
            msg = f"{work_item_id} is a {item.type}, not a bug"
            raise ValidationError(msg, fields=["type"])
        return can_advance_phase(item.phase, item.bug_metadata, item.review_enabled, item.review_status)

    # -- Bug metadata --------------------------------------------------------

    def update_bug_metadata(
        self,
        work_item_id: str,
        *,
        triage: dict[str, Any] | None = None,
        investigation: dict[str, Any] | None = None,
        fix: dict[str, Any] | None = None,
        actor: str = "",
    ) -> WorkItem:
        item = self.get_work_item(work_item_id)
        if item.type != "bug":
            msg = f"Bug metadata can only be set on bugs, not {item.type}"
            raise ValidationError(msg, fields=["bug_metadata"])
        merged = merge_bug_metadata(item.bug_metadata, triage=triage, investigation=investigation, fix=fix)
        if merged == item.bug_metadata:
            return item

        sections = [name for name, value in (("triage", triage), ("investigation", investigation), ("fix", fix)) if value]
        try:
            self.conn.execute(
                "UPDATE work_items SET bug_metadata = ?, updated_at = ? WHERE id = ?",
                (json.dumps(merged.to_dict()), _now_iso(), work_item_id),
            )
            self._record_event(work_item_id, "bug_metadata_updated", actor=actor, comment=", ".join(sections))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_work_item(work_item_id)
