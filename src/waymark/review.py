"""Review gate -- the optional approval sub-workflow on features and bugs.

Review status moves ``None -> pending -> approved | rejected``; a rejected
review can be requested again. While review is enabled, entering a gated
phase (feature ``launch``, bug ``verified``) requires ``approved``.

This module decides which actions are legal for a status. Who may invoke
them is decided by a RolePolicy, the injectable authorization collaborator.
Both are pure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, get_args

from waymark.errors import PermissionDeniedError, ValidationError

if TYPE_CHECKING:
    from waymark.phases import PhaseRegistry

ReviewStatus = Literal["pending", "approved", "rejected"]
ReviewAction = Literal["request", "approve", "reject", "cancel"]

VALID_REVIEW_STATUSES: frozenset[str] = frozenset(get_args(ReviewStatus))
REVIEW_ACTIONS: tuple[str, ...] = get_args(ReviewAction)

# An elevated role may approve without a prior request, hence None under "approve".
_LEGAL_FROM: dict[str, frozenset[str | None]] = {
    "request": frozenset({None, "rejected"}),
    "approve": frozenset({None, "pending"}),
    "reject": frozenset({"pending"}),
    "cancel": frozenset({"pending"}),
}

_RESULT_STATUS: dict[str, str | None] = {
    "request": "pending",
    "approve": "approved",
    "reject": "rejected",
    "cancel": None,
}

REVIEWABLE_PHASES: dict[str, frozenset[str]] = {
    "feature": frozenset({"build", "refine"}),
    "bug": frozenset({"fixing"}),
}

MSG_NOT_REQUESTED = "Review has not been requested yet"
MSG_PENDING = "Review is pending approval"
MSG_REJECTED = "Review was rejected - please request a new review"


def supports_review(work_item_type: str) -> bool:
    return work_item_type in REVIEWABLE_PHASES


def is_reviewable_phase(work_item_type: str, phase: str) -> bool:
    return phase in REVIEWABLE_PHASES.get(work_item_type, frozenset())


def legal_actions(status: str | None) -> frozenset[str]:
    """Actions that are syntactically legal from *status*, regardless of role."""
    return frozenset(a for a, sources in _LEGAL_FROM.items() if status in sources)


def next_status(action: str) -> str | None:
    return _RESULT_STATUS[action]


def check_action(
    work_item_type: str,
    phase: str,
    review_enabled: bool,
    status: str | None,
    action: str,
) -> None:
    """Raise ValidationError unless *action* is legal for the item's review state."""
    if action not in _LEGAL_FROM:
        msg = f"Unknown review action '{action}'. Valid actions: {', '.join(REVIEW_ACTIONS)}"
        raise ValidationError(msg, fields=["action"])
    if not supports_review(work_item_type):
        msg = f"Review is not supported for {work_item_type} work items"
        raise ValidationError(msg)
    if not review_enabled:
        msg = "Review is not enabled for this work item"
        raise ValidationError(msg, fields=["review_enabled"])
    if action not in legal_actions(status):
        current = status or "not requested"
        msg = f"Cannot {action} review while review status is {current}"
        raise ValidationError(msg, fields=["review_status"])
    # A fresh review cycle only makes sense where a review actually gates something.
    if status in (None, "rejected") and action in ("request", "approve") and not is_reviewable_phase(work_item_type, phase):
        phases = ", ".join(sorted(REVIEWABLE_PHASES[work_item_type]))
        msg = f"Review can only be started for a {work_item_type} in phase: {phases} (current phase: {phase})"
        raise ValidationError(msg, fields=["phase"])


def is_gated_phase(work_item_type: str, phase: str, registry: PhaseRegistry | None = None) -> bool:
    if registry is None:
        from waymark.phases import get_registry

        registry = get_registry()
    return registry.phase_config(work_item_type, phase).review_gated


def review_blockers(
    work_item_type: str,
    target_phase: str,
    review_enabled: bool,
    review_status: str | None,
    registry: PhaseRegistry | None = None,
) -> list[str]:
    """Reasons the review gate vetoes entering *target_phase* (empty when it does not)."""
    if not review_enabled or not is_gated_phase(work_item_type, target_phase, registry):
        return []
    if review_status == "approved":
        return []
    if review_status == "pending":
        return [MSG_PENDING]
    if review_status == "rejected":
        return [MSG_REJECTED]
    return [MSG_NOT_REQUESTED]


@dataclass(frozen=True)
class RolePolicy:
    """Who may perform each review action.

    ``cancel`` is additionally open to whoever requested the review.
    """

    request_roles: frozenset[str] = field(default_factory=lambda: frozenset({"owner", "admin", "member"}))
    decide_roles: frozenset[str] = field(default_factory=lambda: frozenset({"owner", "admin"}))

    def can_perform(self, action: str, role: str, *, actor: str = "", requested_by: str = "") -> bool:
        if action == "request":
            return role in self.request_roles
        if action in ("approve", "reject"):
            return role in self.decide_roles
        if action == "cancel":
            return role in self.decide_roles or (bool(actor) and actor == requested_by)
        return False

    def check(self, action: str, role: str, *, actor: str = "", requested_by: str = "") -> None:
        if not self.can_perform(action, role, actor=actor, requested_by=requested_by):
            msg = f"Role '{role}' is not permitted to {action} reviews"
            raise PermissionDeniedError(msg)

    def check_toggle(self, role: str) -> None:
        """Enabling or disabling review is reserved for deciding roles."""
        if role not in self.decide_roles:
            msg = f"Role '{role}' is not permitted to change review settings"
            raise PermissionDeniedError(msg)


DEFAULT_ROLE_POLICY = RolePolicy()
