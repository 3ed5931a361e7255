"""Shared utilities, types, and Protocol for DB mixins."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from waymark.core import WorkItem
    from waymark.phases import PhaseRegistry
    from waymark.review import RolePolicy


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class DBMixinProtocol(Protocol):
    """Shared attributes and methods that DB mixins access via self.

    Mixins inherit this Protocol so mypy can type-check self.conn,
    self.get_work_item(), etc. without ``type: ignore`` on every call.
    Actual implementations are provided by WaymarkDB at composition time.
    """

    db_path: Path
    prefix: str
    default_review_enabled: bool
    phases: PhaseRegistry
    role_policy: RolePolicy
    _conn: sqlite3.Connection | None

    @property
    def conn(self) -> sqlite3.Connection: ...

    def get_work_item(self, work_item_id: str) -> WorkItem: ...

    def _generate_unique_id(self, table: str, infix: str = "") -> str: ...

    def _record_event(
        self,
        work_item_id: str,
        event_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
        comment: str = "",
    ) -> None: ...
