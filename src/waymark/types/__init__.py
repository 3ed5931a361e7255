# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; doing so creates circular imports.
"""Typed return-value contracts for waymark core and API layers."""

from __future__ import annotations

from waymark.types.core import (
    ISOTimestamp,
    ProjectConfig,
    TimelineItemDict,
    WorkItemDict,
)
from waymark.types.events import EventRecord, EventRecordWithName
from waymark.types.lifecycle import (
    AdvanceCheck,
    ErrorDict,
    MissingField,
    ReadinessBreakdown,
    ReadinessReport,
    VersionEntry,
)

__all__ = [
    "AdvanceCheck",
    "ErrorDict",
    "EventRecord",
    "EventRecordWithName",
    "ISOTimestamp",
    "MissingField",
    "ProjectConfig",
    "ReadinessBreakdown",
    "ReadinessReport",
    "TimelineItemDict",
    "VersionEntry",
    "WorkItemDict",
]
