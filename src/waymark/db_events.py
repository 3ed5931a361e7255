"""EventsMixin — audit event recording and retrieval.

Every state change on a work item appends one row to ``events``. All
methods access ``self.conn`` and ``self.get_work_item()`` via Python's MRO
when composed into ``WaymarkDB``.
"""

from __future__ import annotations

from typing import cast

from waymark.db_base import DBMixinProtocol, _now_iso
from waymark.types.events import EventRecord, EventRecordWithName


class EventsMixin(DBMixinProtocol):
    """Event recording and history queries.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Callers own the transaction; ``_record_event`` never commits.
    """

    def _record_event(
        self,
        work_item_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
        comment: str = "",
    ) -> None:
        self.conn.execute(
            "INSERT INTO events (work_item_id, event_type, actor, old_value, new_value, comment, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (work_item_id, event_type, actor, old_value, new_value, comment, _now_iso()),
        )

    def get_recent_events(self, limit: int = 20) -> list[EventRecordWithName]:
        rows = self.conn.execute(
            "SELECT e.*, w.name as work_item_name FROM events e "
            "JOIN work_items w ON e.work_item_id = w.id "
            "ORDER BY e.created_at DESC, e.id DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return cast(list[EventRecordWithName], [dict(r) for r in rows])

    def get_work_item_events(self, work_item_id: str, *, limit: int = 50) -> list[EventRecord]:
        """Get events for a specific work item, newest first."""
        self.get_work_item(work_item_id)  # raises NotFoundError if missing
        rows = self.conn.execute(
            "SELECT * FROM events WHERE work_item_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (work_item_id, limit),
        ).fetchall()
        return cast(list[EventRecord], [dict(r) for r in rows])
