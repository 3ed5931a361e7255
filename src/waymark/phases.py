# src/waymark/phases.py
"""Phase tables -- per-type lifecycle graphs and field requirements.

Provides PhaseRegistry, which parses the declarative workflow data in
phases_data into frozen dataclasses and answers the questions the rest of
the engine asks: which phases a type has, what it takes to enter a phase,
and whether a given move is a legal single step.

Everything here is pure: no I/O, no database access.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from dataclasses import replace as _dc_replace
from typing import Any, Literal, get_args

from waymark.errors import ValidationError

logger = logging.getLogger(__name__)

WorkItemType = Literal["concept", "feature", "bug"]
FieldKind = Literal["text", "number", "boolean", "date"]
FieldSource = Literal["fields", "item", "computed", "bug"]

WORK_ITEM_TYPES: tuple[str, ...] = get_args(WorkItemType)

_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
_FIELD_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}(\.[a-z][a-z0-9_]{0,63})?$")
_VALID_KINDS: frozenset[str] = frozenset(get_args(FieldKind))
_VALID_SOURCES: frozenset[str] = frozenset(get_args(FieldSource))
_BOOL_TRUE = frozenset({"true", "yes", "1", "on"})
_BOOL_FALSE = frozenset({"false", "no", "0", "off"})

# ---------------------------------------------------------------------------
# Frozen dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSchema:
    """A field a phase can require, with the rule that decides if it is filled."""

    name: str
    kind: FieldKind
    label: str
    hint: str = ""
    source: FieldSource = "fields"
    min_length: int = 0
    min_value: float | None = None
    must_be_true: bool = False
    required_if: str = ""

    def __post_init__(self) -> None:
        if not _FIELD_PATTERN.match(self.name):
            msg = f"Invalid field name '{self.name}'"
            raise ValueError(msg)
        if self.kind not in _VALID_KINDS:
            msg = f"Invalid kind '{self.kind}' for field '{self.name}': must be one of {sorted(_VALID_KINDS)}"
            raise ValueError(msg)
        if self.source not in _VALID_SOURCES:
            msg = f"Invalid source '{self.source}' for field '{self.name}': must be one of {sorted(_VALID_SOURCES)}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "kind": self.kind, "label": self.label, "source": self.source}
        if self.hint:
            data["hint"] = self.hint
        if self.min_length:
            data["min_length"] = self.min_length
        if self.min_value is not None:
            data["min_value"] = self.min_value
        if self.must_be_true:
            data["must_be_true"] = True
        if self.required_if:
            data["required_if"] = self.required_if
        return data

    def is_filled(self, value: Any) -> bool:
        """Whether *value* satisfies this field.

        None, blank strings, and values of the wrong shape are unfilled.
        Numbers must be positive unless a minimum is given; booleans count as
        set whenever they are not None, unless the field must be True.
        """
        if value is None:
            return False
        if self.kind == "text":
            return isinstance(value, str) and len(value.strip()) >= max(1, self.min_length)
        if self.kind == "number":
            if isinstance(value, bool) or not isinstance(value, int | float):
                return False
            if self.min_value is None:
                return value > 0
            return value >= self.min_value
        if self.kind == "boolean":
            if not isinstance(value, bool):
                return False
            return value if self.must_be_true else True
        return isinstance(value, str) and value.strip() != ""

    def coerce(self, value: Any) -> Any:
        """Convert a caller-supplied value (often a CLI string) to this field's kind.

        Raises ValidationError when the value cannot represent the kind.
        """
        if value is None:
            return None
        if self.kind == "number":
            if isinstance(value, bool):
                msg = f"Field '{self.name}' must be a number, got a boolean"
                raise ValidationError(msg, fields=[self.name])
            if isinstance(value, int | float):
                return value
            if isinstance(value, str):
                try:
                    number = float(value.strip())
                except ValueError:
                    msg = f"Field '{self.name}' must be a number, got '{value}'"
                    raise ValidationError(msg, fields=[self.name]) from None
                return int(number) if number.is_integer() else number
        elif self.kind == "boolean":
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.strip().lower() in _BOOL_TRUE:
                return True
            if isinstance(value, str) and value.strip().lower() in _BOOL_FALSE:
                return False
        elif isinstance(value, str):
            return value
        msg = f"Field '{self.name}' expects a {self.kind} value, got {type(value).__name__}"
        raise ValidationError(msg, fields=[self.name])


@dataclass(frozen=True)
class PhaseDefinition:
    """One phase of a type's lifecycle and the fields needed to enter it."""

    name: str
    label: str
    is_terminal: bool = False
    review_gated: bool = False
    required_fields: tuple[FieldSchema, ...] = ()
    optional_fields: tuple[FieldSchema, ...] = ()

    def __post_init__(self) -> None:
        if not _NAME_PATTERN.match(self.name):
            msg = f"Invalid phase name '{self.name}': must match ^[a-z][a-z0-9_]{{0,63}}$"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "is_terminal": self.is_terminal,
            "review_gated": self.review_gated,
            "required_fields": [f.to_dict() for f in self.required_fields],
            "optional_fields": [f.to_dict() for f in self.optional_fields],
        }


@dataclass(frozen=True)
class Workflow:
    """Complete lifecycle definition for a work-item type.

    ``phases`` is the primary linear line. ``branch_phases`` are side exits
    (concept ``rejected``) reachable from any non-terminal phase.
    """

    type: str
    display_name: str
    description: str
    initial_phase: str
    phases: tuple[PhaseDefinition, ...]
    branch_phases: tuple[PhaseDefinition, ...]
    fields_schema: tuple[FieldSchema, ...]

    @property
    def phase_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases) + tuple(p.name for p in self.branch_phases)

    @property
    def linear_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.phases)

    def get_phase(self, name: str) -> PhaseDefinition | None:
        for p in (*self.phases, *self.branch_phases):
            if p.name == name:
                return p
        return None

    def get_field(self, name: str) -> FieldSchema | None:
        for f in self.fields_schema:
            if f.name == name:
                return f
        return None

    def editable_fields(self) -> tuple[FieldSchema, ...]:
        """Fields stored in the work item's ``fields`` JSON."""
        return tuple(f for f in self.fields_schema if f.source == "fields")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "display_name": self.display_name,
            "description": self.description,
            "initial_phase": self.initial_phase,
            "phases": [p.to_dict() for p in self.phases],
            "branch_phases": [p.to_dict() for p in self.branch_phases],
            "fields_schema": [f.to_dict() for f in self.fields_schema],
        }


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PhaseRegistry:
    """Parses and queries the per-type lifecycle tables.

    Workflows are parsed once at construction. Construction fails unless
    every ``WorkItemType`` has exactly one workflow, so adding a type is a
    change to the Literal plus one data entry.
    """

    def __init__(self, data: dict[str, dict[str, Any]] | None = None) -> None:
        if data is None:
            from waymark.phases_data import BUILT_IN_WORKFLOWS

            data = BUILT_IN_WORKFLOWS
        declared = set(WORK_ITEM_TYPES)
        provided = set(data)
        if declared != provided:
            missing = sorted(declared - provided)
            unknown = sorted(provided - declared)
            msg = f"Workflow table does not match work item types (missing: {missing}, unknown: {unknown})"
            raise ValueError(msg)
        self._workflows: dict[str, Workflow] = {name: self.parse_workflow(raw) for name, raw in data.items()}

    @staticmethod
    def parse_workflow(raw: dict[str, Any]) -> Workflow:
        """Parse a workflow from a JSON-compatible dict.

        Raises:
            ValueError: If the definition is malformed or references unknown fields.
            KeyError: If required keys are missing from the dict.
        """
        type_name = raw["type"]
        if not _NAME_PATTERN.match(type_name):
            msg = f"Invalid type name '{type_name}'"
            raise ValueError(msg)

        raw_schema = raw.get("fields_schema") or []
        schema = tuple(
            FieldSchema(
                name=f["name"],
                kind=f["kind"],
                label=f.get("label", f["name"]),
                hint=f.get("hint", ""),
                source=f.get("source", "fields"),
                min_length=f.get("min_length", 0),
                min_value=f.get("min_value"),
                must_be_true=f.get("must_be_true", False),
            )
            for f in raw_schema
        )
        by_name = {f.name: f for f in schema}
        if len(by_name) != len(schema):
            msg = f"Type '{type_name}': duplicate field names in fields_schema"
            raise ValueError(msg)

        def _requirements(phase_name: str, entries: list[dict[str, Any]]) -> tuple[FieldSchema, ...]:
            result: list[FieldSchema] = []
            for entry in entries:
                base = by_name.get(entry["field"])
                if base is None:
                    msg = f"Type '{type_name}': phase '{phase_name}' references unknown field '{entry['field']}'"
                    raise ValueError(msg)
                condition = entry.get("required_if")
                if condition is not None:
                    cond_field = by_name.get(condition)
                    if cond_field is None or cond_field.kind != "boolean":
                        msg = (
                            f"Type '{type_name}': phase '{phase_name}' makes '{entry['field']}' "
                            f"conditional on '{condition}', which is not a boolean field"
                        )
                        raise ValueError(msg)
                keys = ("min_length", "min_value", "must_be_true", "required_if", "hint", "label")
                overrides = {k: entry[k] for k in keys if k in entry}
                result.append(_dc_replace(base, **overrides) if overrides else base)
            return tuple(result)

        def _phase(p: dict[str, Any]) -> PhaseDefinition:
            return PhaseDefinition(
                name=p["name"],
                label=p.get("label", p["name"].title()),
                is_terminal=bool(p.get("terminal", False)),
                review_gated=bool(p.get("review_gated", False)),
                required_fields=_requirements(p["name"], p.get("required", [])),
                optional_fields=_requirements(p["name"], p.get("optional", [])),
            )

        phases = tuple(_phase(p) for p in raw["phases"])
        branches = tuple(_phase(p) for p in raw.get("branch_phases", []))
        if not phases:
            msg = f"Type '{type_name}' must define at least one phase"
            raise ValueError(msg)
        names = [p.name for p in (*phases, *branches)]
        if len(set(names)) != len(names):
            msg = f"Type '{type_name}': duplicate phase names"
            raise ValueError(msg)
        initial = raw["initial_phase"]
        if initial != phases[0].name:
            msg = f"Type '{type_name}': initial phase '{initial}' must be the first phase"
            raise ValueError(msg)
        for b in branches:
            if not b.is_terminal:
                msg = f"Type '{type_name}': branch phase '{b.name}' must be terminal"
                raise ValueError(msg)

        logger.debug("Parsed workflow for type: %s", type_name)
        return Workflow(
            type=type_name,
            display_name=raw.get("display_name", type_name.title()),
            description=raw.get("description", ""),
            initial_phase=initial,
            phases=phases,
            branch_phases=branches,
            fields_schema=schema,
        )

    # -- Queries -------------------------------------------------------------

    def list_workflows(self) -> list[Workflow]:
        return list(self._workflows.values())

    def get_workflow(self, work_item_type: str) -> Workflow:
        wf = self._workflows.get(work_item_type)
        if wf is None:
            msg = f"Unknown work item type '{work_item_type}'. Valid types: {', '.join(WORK_ITEM_TYPES)}"
            raise ValidationError(msg, fields=["type"])
        return wf

    def phase_set(self, work_item_type: str) -> tuple[str, ...]:
        """Ordered phase names: the primary line, then branch phases."""
        return self.get_workflow(work_item_type).phase_names

    def phase_config(self, work_item_type: str, phase: str) -> PhaseDefinition:
        wf = self.get_workflow(work_item_type)
        definition = wf.get_phase(phase)
        if definition is None:
            msg = f"Unknown phase '{phase}' for type '{work_item_type}'. Valid phases: {', '.join(wf.phase_names)}"
            raise ValidationError(msg, fields=["phase"])
        return definition

    def initial_phase(self, work_item_type: str) -> str:
        return self.get_workflow(work_item_type).initial_phase

    def is_terminal(self, work_item_type: str, phase: str) -> bool:
        return self.phase_config(work_item_type, phase).is_terminal

    def next_phase(self, work_item_type: str, phase: str) -> str | None:
        """The forward-adjacent phase on the primary line, or None."""
        wf = self.get_workflow(work_item_type)
        line = wf.linear_names
        if phase not in line or self.is_terminal(work_item_type, phase):
            return None
        idx = line.index(phase)
        return line[idx + 1] if idx + 1 < len(line) else None

    def previous_phase(self, work_item_type: str, phase: str) -> str | None:
        wf = self.get_workflow(work_item_type)
        line = wf.linear_names
        if phase not in line:
            return None
        idx = line.index(phase)
        return line[idx - 1] if idx > 0 else None

    def can_transition(self, work_item_type: str, from_phase: str, to_phase: str) -> bool:
        """Single-step legality check.

        True iff *to_phase* is forward-adjacent to *from_phase*, one step
        behind it, or a branch phase reached from a non-terminal phase.
        Nothing leaves a terminal phase.
        """
        wf = self._workflows.get(work_item_type)
        if wf is None:
            return False
        src = wf.get_phase(from_phase)
        dst = wf.get_phase(to_phase)
        if src is None or dst is None or from_phase == to_phase or src.is_terminal:
            return False
        if dst in wf.branch_phases:
            return True
        line = wf.linear_names
        if from_phase not in line:
            return False
        return abs(line.index(to_phase) - line.index(from_phase)) == 1

    def allowed_targets(self, work_item_type: str, from_phase: str) -> list[str]:
        wf = self.get_workflow(work_item_type)
        return [p for p in wf.phase_names if self.can_transition(work_item_type, from_phase, p)]

    def is_forward(self, work_item_type: str, from_phase: str, to_phase: str) -> bool:
        """Whether the move advances the item (next phase on the line or a branch exit)."""
        wf = self.get_workflow(work_item_type)
        if to_phase in (b.name for b in wf.branch_phases):
            return True
        line = wf.linear_names
        if from_phase not in line or to_phase not in line:
            return False
        return line.index(to_phase) > line.index(from_phase)

    def validate_transition(self, work_item_type: str, from_phase: str, to_phase: str) -> None:
        """Raise ValidationError explaining why a move is not a legal single step."""
        wf = self.get_workflow(work_item_type)
        src = self.phase_config(work_item_type, from_phase)
        self.phase_config(work_item_type, to_phase)
        if self.can_transition(work_item_type, from_phase, to_phase):
            return
        if from_phase == to_phase:
            msg = f"Work item is already in phase '{to_phase}'"
        elif src.is_terminal:
            msg = f"Phase '{from_phase}' is terminal for type '{work_item_type}'; no further transitions are allowed"
            if wf.type == "feature":
                msg += ". Enhance the feature to start a new version instead"
        else:
            allowed = ", ".join(self.allowed_targets(work_item_type, from_phase)) or "(none)"
            msg = (
                f"Transition '{from_phase}' -> '{to_phase}' is not allowed for type '{work_item_type}'. "
                f"Allowed targets: {allowed}"
            )
        raise ValidationError(msg, fields=["phase"])


_default_registry: PhaseRegistry | None = None


def get_registry() -> PhaseRegistry:
    """Shared registry for the built-in workflows, created on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = PhaseRegistry()
    return _default_registry


def phase_set(work_item_type: str) -> tuple[str, ...]:
    return get_registry().phase_set(work_item_type)


def phase_config(work_item_type: str, phase: str) -> PhaseDefinition:
    return get_registry().phase_config(work_item_type, phase)


def can_transition(work_item_type: str, from_phase: str, to_phase: str) -> bool:
    return get_registry().can_transition(work_item_type, from_phase, to_phase)
