"""TypedDicts for the lifecycle engine: readiness, bug advance checks, version chains, errors."""

from __future__ import annotations

from typing import TypedDict

from waymark.types.core import ISOTimestamp


class MissingField(TypedDict):
    field: str
    label: str
    hint: str
    required: bool


class ReadinessBreakdown(TypedDict):
    required_percent: int
    optional_percent: int


class TimelineSignal(TypedDict):
    total: int
    completed: int


class ReadinessReport(TypedDict):
    """Result of ``compute_readiness()``.

    ``missing_fields`` lists required fields only; hints for missing optional
    fields are surfaced through ``suggestions``.
    """

    work_item_type: str
    current_phase: str
    next_phase: str | None
    is_terminal: bool
    readiness_percent: int
    breakdown: ReadinessBreakdown
    missing_fields: list[MissingField]
    completed_fields: list[str]
    blockers: list[str]
    suggestions: list[str]
    can_upgrade: bool
    timeline: TimelineSignal


class AdvanceCheck(TypedDict):
    """Result of ``bug_workflow.can_advance_phase()``."""

    can_advance: bool
    blockers: list[str]


class VersionEntry(TypedDict):
    """One member of a version chain, ordered by ``version``."""

    id: str
    name: str
    version: int
    phase: str
    is_enhancement: bool
    enhances_work_item_id: str | None
    version_notes: str
    created_at: ISOTimestamp
    is_current: bool
    is_latest: bool


class ErrorDict(TypedDict):
    kind: str
    message: str
    fields: list[str]
