"""TypedDicts for db_events.py return types."""

from __future__ import annotations

from typing import TypedDict

from waymark.types.core import ISOTimestamp


class EventRecord(TypedDict):
    """Row from the events table (SELECT * FROM events).

    Returned by ``get_work_item_events()``.
    """

    id: int
    work_item_id: str
    event_type: str
    actor: str
    old_value: str | None
    new_value: str | None
    comment: str
    created_at: ISOTimestamp


class EventRecordWithName(EventRecord):
    """Event row joined with its work item's name.

    Returned by ``get_recent_events()``.
    """

    work_item_name: str
