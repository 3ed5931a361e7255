"""Structured bug metadata and the rules for advancing a bug between phases.

A bug accumulates three records as it moves through its lifecycle: triage
details, the investigation's root cause, and the fix. They are stored as one
JSON document on the work item but always parsed into the dataclasses below,
so every write is validated the same way.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, get_args

from waymark.errors import ValidationError
from waymark.types.lifecycle import AdvanceCheck

Severity = Literal["critical", "high", "medium", "low"]
VALID_SEVERITIES: frozenset[str] = frozenset(get_args(Severity))

BUG_PHASES = ("triage", "investigating", "fixing", "verified")


@dataclass
class BugTriage:
    severity: str | None = None
    reproducible: bool | None = None
    steps_to_reproduce: str = ""
    expected_behavior: str = ""
    actual_behavior: str = ""


@dataclass
class BugInvestigation:
    root_cause: str = ""


@dataclass
class BugFix:
    solution: str = ""
    pr_link: str = ""


@dataclass
class BugMetadata:
    triage: BugTriage = field(default_factory=BugTriage)
    investigation: BugInvestigation = field(default_factory=BugInvestigation)
    fix: BugFix = field(default_factory=BugFix)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def get_path(self, dotted: str) -> Any:
        """Resolve ``section.field`` (e.g. ``triage.severity``); unknown paths give None."""
        section_name, _, field_name = dotted.partition(".")
        section = getattr(self, section_name, None)
        if section is None or not field_name:
            return None
        return getattr(section, field_name, None)


_SECTIONS: dict[str, type[BugTriage] | type[BugInvestigation] | type[BugFix]] = {
    "triage": BugTriage,
    "investigation": BugInvestigation,
    "fix": BugFix,
}


def _parse_section(name: str, raw: Any, base: Any) -> Any:
    if raw is None:
        return base
    if not isinstance(raw, dict):
        msg = f"Bug metadata section '{name}' must be an object"
        raise ValidationError(msg, fields=[name])
    cls = _SECTIONS[name]
    known = set(cls.__dataclass_fields__)
    unknown = sorted(set(raw) - known)
    if unknown:
        msg = f"Unknown {name} field(s): {', '.join(unknown)}. Valid fields: {', '.join(sorted(known))}"
        raise ValidationError(msg, fields=[f"{name}.{k}" for k in unknown])

    values = asdict(base)
    for key, value in raw.items():
        path = f"{name}.{key}"
        if key == "severity":
            if value is not None and value not in VALID_SEVERITIES:
                msg = f"Invalid severity '{value}'. Valid severities: {', '.join(sorted(VALID_SEVERITIES))}"
                raise ValidationError(msg, fields=[path])
        elif key == "reproducible":
            if value is not None and not isinstance(value, bool):
                msg = "triage.reproducible must be true, false, or null"
                raise ValidationError(msg, fields=[path])
        elif value is None:
            value = ""
        elif not isinstance(value, str):
            msg = f"{path} must be a string"
            raise ValidationError(msg, fields=[path])
        values[key] = value
    return cls(**values)


def parse_bug_metadata(raw: dict[str, Any] | None) -> BugMetadata:
    """Build a validated BugMetadata from its stored/JSON form."""
    if not raw:
        return BugMetadata()
    if not isinstance(raw, dict):
        msg = "Bug metadata must be an object"
        raise ValidationError(msg, fields=["bug_metadata"])
    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        msg = f"Unknown bug metadata section(s): {', '.join(unknown)}. Valid sections: triage, investigation, fix"
        raise ValidationError(msg, fields=unknown)
    return merge_bug_metadata(BugMetadata(), triage=raw.get("triage"), investigation=raw.get("investigation"), fix=raw.get("fix"))


def merge_bug_metadata(
    current: BugMetadata,
    *,
    triage: dict[str, Any] | None = None,
    investigation: dict[str, Any] | None = None,
    fix: dict[str, Any] | None = None,
) -> BugMetadata:
    """Apply partial section updates on top of *current*.

    Keys present in an update replace the stored value; a None string value
    clears it. Sections not supplied are left untouched.
    """
    return BugMetadata(
        triage=_parse_section("triage", triage, current.triage),
        investigation=_parse_section("investigation", investigation, current.investigation),
        fix=_parse_section("fix", fix, current.fix),
    )


def can_advance_phase(
    phase: str,
    metadata: BugMetadata,
    review_enabled: bool,
    review_status: str | None,
) -> AdvanceCheck:
    """Check whether a bug in *phase* has the data to move to the next phase."""
    blockers: list[str] = []

    if phase == "triage":
        missing: list[str] = []
        if not metadata.triage.severity:
            missing.append("Severity")
        if metadata.triage.reproducible is None:
            missing.append("Reproducible status")
        if metadata.triage.reproducible is True and not metadata.triage.steps_to_reproduce.strip():
            missing.append("Steps to reproduce")
        if missing:
            blockers.append(f"Complete triage: {', '.join(missing)}")
    elif phase == "investigating":
        if not metadata.investigation.root_cause.strip():
            blockers.append("Document root cause before fixing")
    elif phase == "fixing":
        if not metadata.fix.solution.strip():
            blockers.append("Document the fix solution")
        if review_enabled and review_status != "approved":
            blockers.append("Review must be approved before verification")
    elif phase == "verified":
        blockers.append("Bug is already verified (terminal state)")
    else:
        msg = f"Unknown bug phase '{phase}'. Valid phases: {', '.join(BUG_PHASES)}"
        raise ValidationError(msg, fields=["phase"])

    return {"can_advance": not blockers, "blockers": blockers}
