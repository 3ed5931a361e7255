"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .waymark/config.json."""

    prefix: str
    version: int
    default_review_enabled: bool


class WorkItemDict(TypedDict):
    id: str
    name: str
    type: str
    phase: str
    phase_label: str
    is_terminal: bool
    purpose: str
    fields: dict[str, Any]
    bug_metadata: dict[str, Any]
    is_enhancement: bool
    enhances_work_item_id: str | None
    version: int
    version_notes: str
    source_concept_id: str | None
    rejection_reason: str
    archived: bool
    review_enabled: bool
    review_status: str | None
    review_requested_by: str
    review_requested_at: ISOTimestamp | None
    review_completed_by: str
    review_completed_at: ISOTimestamp | None
    review_reason: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp


class TimelineItemDict(TypedDict):
    id: str
    work_item_id: str
    title: str
    horizon: str
    status: str
    difficulty: str
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
