"""TimelineMixin — planned work under a work item.

Timeline items are a readiness signal only: their count feeds the computed
``has_scope`` field and the completed count is reported alongside the score.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Literal, get_args

from waymark.db_base import DBMixinProtocol, _now_iso
from waymark.errors import NotFoundError, ValidationError
from waymark.types.core import TimelineItemDict

logger = logging.getLogger(__name__)

Horizon = Literal["near_term", "mid_term", "long_term"]
TimelineStatus = Literal["not_started", "in_progress", "completed", "blocked"]
Difficulty = Literal["easy", "medium", "hard"]

VALID_HORIZONS: tuple[str, ...] = get_args(Horizon)
VALID_TIMELINE_STATUSES: tuple[str, ...] = get_args(TimelineStatus)
VALID_DIFFICULTIES: tuple[str, ...] = get_args(Difficulty)


@dataclass
class TimelineItem:
    id: str
    work_item_id: str
    title: str
    horizon: str = "near_term"
    status: str = "not_started"
    difficulty: str = "medium"
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> TimelineItemDict:
        return {
            "id": self.id,
            "work_item_id": self.work_item_id,
            "title": self.title,
            "horizon": self.horizon,
            "status": self.status,
            "difficulty": self.difficulty,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
        }


def _check_choice(name: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        msg = f"Invalid {name} '{value}'. Valid values: {', '.join(choices)}"
        raise ValidationError(msg, fields=[name])


def _build_timeline_item(row: sqlite3.Row) -> TimelineItem:
    return TimelineItem(
        id=row["id"],
        work_item_id=row["work_item_id"],
        title=row["title"],
        horizon=row["horizon"],
        status=row["status"],
        difficulty=row["difficulty"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class TimelineMixin(DBMixinProtocol):
    """Timeline item CRUD and the counts readiness needs."""

    def add_timeline_item(
        self,
        work_item_id: str,
        title: str,
        *,
        horizon: str = "near_term",
        status: str = "not_started",
        difficulty: str = "medium",
        actor: str = "",
    ) -> TimelineItem:
        self.get_work_item(work_item_id)
        if not title or not title.strip():
            msg = "Timeline item title cannot be empty"
            raise ValidationError(msg, fields=["title"])
        _check_choice("horizon", horizon, VALID_HORIZONS)
        _check_choice("status", status, VALID_TIMELINE_STATUSES)
        _check_choice("difficulty", difficulty, VALID_DIFFICULTIES)

        item_id = self._generate_unique_id("timeline_items", "tl")
        now = _now_iso()
        try:
            self.conn.execute(
                "INSERT INTO timeline_items (id, work_item_id, title, horizon, status, difficulty, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (item_id, work_item_id, title.strip(), horizon, status, difficulty, now, now),
            )
            self._record_event(work_item_id, "timeline_item_added", actor=actor, new_value=title.strip(), comment=item_id)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_timeline_item(item_id)

    def get_timeline_item(self, item_id: str) -> TimelineItem:
        row = self.conn.execute("SELECT * FROM timeline_items WHERE id = ?", (item_id,)).fetchone()
        if row is None:
            msg = f"Timeline item not found: {item_id}"
            raise NotFoundError(msg)
        return _build_timeline_item(row)

    def list_timeline_items(self, work_item_id: str, *, horizon: str | None = None) -> list[TimelineItem]:
        self.get_work_item(work_item_id)
        sql = "SELECT * FROM timeline_items WHERE work_item_id = ?"
        params: list[Any] = [work_item_id]
        if horizon is not None:
            _check_choice("horizon", horizon, VALID_HORIZONS)
            sql += " AND horizon = ?"
            params.append(horizon)
        rows = self.conn.execute(sql + " ORDER BY created_at, rowid", params).fetchall()
        return [_build_timeline_item(r) for r in rows]

    def update_timeline_item(
        self,
        item_id: str,
        *,
        title: str | None = None,
        horizon: str | None = None,
        status: str | None = None,
        difficulty: str | None = None,
        actor: str = "",
    ) -> TimelineItem:
        current = self.get_timeline_item(item_id)
        updates: list[str] = []
        params: list[Any] = []
        if title is not None:
            if not title.strip():
                msg = "Timeline item title cannot be empty"
                raise ValidationError(msg, fields=["title"])
            updates.append("title = ?")
            params.append(title.strip())
        for name, value, choices in (
            ("horizon", horizon, VALID_HORIZONS),
            ("status", status, VALID_TIMELINE_STATUSES),
            ("difficulty", difficulty, VALID_DIFFICULTIES),
        ):
            if value is not None:
                _check_choice(name, value, choices)
                updates.append(f"{name} = ?")
                params.append(value)
        if not updates:
            return current

        updates.append("updated_at = ?")
        params.extend([_now_iso(), item_id])
        try:
            self.conn.execute(f"UPDATE timeline_items SET {', '.join(updates)} WHERE id = ?", params)
            self._record_event(
                current.work_item_id,
                "timeline_item_updated",
                actor=actor,
                old_value=current.status,
                new_value=status or current.status,
                comment=item_id,
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_timeline_item(item_id)

    def remove_timeline_item(self, item_id: str, *, actor: str = "") -> None:
        current = self.get_timeline_item(item_id)
        try:
            self.conn.execute("DELETE FROM timeline_items WHERE id = ?", (item_id,))
            self._record_event(
                current.work_item_id, "timeline_item_removed", actor=actor, old_value=current.title, comment=item_id
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    def timeline_counts(self, work_item_id: str) -> tuple[int, int]:
        """Return ``(total, completed)`` timeline item counts for a work item."""
        row = self.conn.execute(
            "SELECT COUNT(*) AS total, COALESCE(SUM(CASE WHEN status = 'completed' THEN 1 ELSE 0 END), 0) AS completed "
            "FROM timeline_items WHERE work_item_id = ?",
            (work_item_id,),
        ).fetchone()
        return int(row["total"]), int(row["completed"])
