"""Readiness calculator -- how complete a work item is for its next phase.

Required fields carry 70% of the score and optional fields 30%, each
pro-rated by how many fields in the group are filled. ``can_upgrade`` is
true exactly when every required field is filled; optional fields change
the displayed percentage but never block. A requirement with ``required_if``
is left out of both counts until its condition field is True.

Review vetoes are listed under ``blockers`` for display. They do not affect
``can_upgrade``; the transition guard enforces them.

The calculation is advisory. The orchestrator only enforces it for the
explicit auto-upgrade action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from waymark.bug_workflow import BugMetadata, parse_bug_metadata
from waymark.errors import ValidationError
from waymark.phases import FieldSchema, PhaseRegistry, get_registry
from waymark.review import VALID_REVIEW_STATUSES, review_blockers
from waymark.types.lifecycle import MissingField, ReadinessReport

if TYPE_CHECKING:
    from waymark.core import WorkItem

REQUIRED_WEIGHT = 70
OPTIONAL_WEIGHT = 30


@dataclass
class ReadinessInput:
    """The slice of a work item the calculator looks at."""

    type: str
    phase: str
    purpose: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    bug_metadata: BugMetadata = field(default_factory=BugMetadata)
    rejection_reason: str = ""
    review_enabled: bool = False
    review_status: str | None = None

    @classmethod
    def from_work_item(cls, item: WorkItem) -> ReadinessInput:
        return cls(
            type=item.type,
            phase=item.phase,
            purpose=item.purpose,
            fields=dict(item.fields),
            bug_metadata=item.bug_metadata,
            rejection_reason=item.rejection_reason,
            review_enabled=item.review_enabled,
            review_status=item.review_status,
        )

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> ReadinessInput:
        """Build an input from a caller-supplied field snapshot (e.g. a JSON body)."""
        for key in ("type", "phase"):
            if not isinstance(data.get(key), str) or not data[key]:
                msg = f"Snapshot requires a non-empty '{key}'"
                raise ValidationError(msg, fields=[key])
        fields = data.get("fields") or {}
        if not isinstance(fields, dict):
            msg = "Snapshot 'fields' must be an object"
            raise ValidationError(msg, fields=["fields"])
        status = data.get("review_status")
        if status is not None and status not in VALID_REVIEW_STATUSES:
            msg = f"Invalid review_status '{status}'"
            raise ValidationError(msg, fields=["review_status"])
        return cls(
            type=data["type"],
            phase=data["phase"],
            purpose=data.get("purpose") or "",
            fields=dict(fields),
            bug_metadata=parse_bug_metadata(data.get("bug_metadata")),
            rejection_reason=data.get("rejection_reason") or "",
            review_enabled=bool(data.get("review_enabled", False)),
            review_status=status,
        )


def resolve_value(spec: FieldSchema, snapshot: ReadinessInput, registry: PhaseRegistry, timeline_item_count: int) -> Any:
    """Look up the value a field requirement is checked against."""
    if spec.source == "item":
        return getattr(snapshot, spec.name, None)
    if spec.source == "bug":
        return snapshot.bug_metadata.get_path(spec.name)
    if spec.source == "computed":
        if spec.name == "has_scope":
            criteria = registry.get_workflow(snapshot.type).get_field("acceptance_criteria")
            has_criteria = criteria is not None and criteria.is_filled(snapshot.fields.get("acceptance_criteria"))
            return timeline_item_count > 0 or has_criteria
        msg = f"No rule to compute field '{spec.name}'"
        raise ValueError(msg)
    return snapshot.fields.get(spec.name)


def _applies(spec: FieldSchema, snapshot: ReadinessInput, registry: PhaseRegistry, timeline_item_count: int) -> bool:
    if not spec.required_if:
        return True
    condition = registry.get_workflow(snapshot.type).get_field(spec.required_if)
    return condition is not None and resolve_value(condition, snapshot, registry, timeline_item_count) is True


def _missing(spec: FieldSchema, target_phase: str, *, required: bool) -> MissingField:
    return {
        "field": spec.name,
        "label": spec.label,
        "hint": spec.hint or f"Complete {spec.label} to progress to {target_phase}",
        "required": required,
    }


def compute_readiness(
    snapshot: ReadinessInput,
    *,
    timeline_item_count: int = 0,
    completed_timeline_count: int = 0,
    registry: PhaseRegistry | None = None,
) -> ReadinessReport:
    """Compute the readiness report for moving *snapshot* to its next phase.

    Raises ValidationError if the type or phase is unknown.
    """
    registry = registry or get_registry()
    current = registry.phase_config(snapshot.type, snapshot.phase)
    timeline = {"total": timeline_item_count, "completed": completed_timeline_count}

    next_phase = registry.next_phase(snapshot.type, snapshot.phase)
    if current.is_terminal or next_phase is None:
        return {
            "work_item_type": snapshot.type,
            "current_phase": snapshot.phase,
            "next_phase": None,
            "is_terminal": current.is_terminal,
            "readiness_percent": 100,
            "breakdown": {"required_percent": 100, "optional_percent": 100},
            "missing_fields": [],
            "completed_fields": [],
            "blockers": [],
            "suggestions": [],
            "can_upgrade": False,
            "timeline": timeline,
        }

    target = registry.phase_config(snapshot.type, next_phase)
    completed: list[str] = []
    missing: list[MissingField] = []
    suggestions: list[str] = []

    required = [s for s in target.required_fields if _applies(s, snapshot, registry, timeline_item_count)]
    optional = [s for s in target.optional_fields if _applies(s, snapshot, registry, timeline_item_count)]

    required_filled = 0
    for spec in required:
        if spec.is_filled(resolve_value(spec, snapshot, registry, timeline_item_count)):
            required_filled += 1
            completed.append(spec.name)
        else:
            missing.append(_missing(spec, next_phase, required=True))

    optional_filled = 0
    for spec in optional:
        if spec.is_filled(resolve_value(spec, snapshot, registry, timeline_item_count)):
            optional_filled += 1
            completed.append(spec.name)
        else:
            suggestions.append(_missing(spec, next_phase, required=False)["hint"])

    # An empty group counts as complete.
    required_ratio = required_filled / len(required) if required else 1.0
    optional_ratio = optional_filled / len(optional) if optional else 1.0

    blockers = review_blockers(snapshot.type, next_phase, snapshot.review_enabled, snapshot.review_status, registry)

    return {
        "work_item_type": snapshot.type,
        "current_phase": snapshot.phase,
        "next_phase": next_phase,
        "is_terminal": False,
        "readiness_percent": round(REQUIRED_WEIGHT * required_ratio + OPTIONAL_WEIGHT * optional_ratio),
        "breakdown": {
            "required_percent": round(100 * required_ratio),
            "optional_percent": round(100 * optional_ratio),
        },
        "missing_fields": missing,
        "completed_fields": completed,
        "blockers": blockers,
        "suggestions": suggestions,
        "can_upgrade": not missing,
        "timeline": timeline,
    }
