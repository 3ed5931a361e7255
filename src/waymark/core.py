"""Core database operations for the waymark lifecycle engine.

Single source of truth for all SQLite operations. Both the CLI and the HTTP
API import from this module. No daemon, no sync — just direct SQLite with
WAL mode.

Covers work item CRUD here; timeline items, audit events, review actions,
versioning and phase transitions live in mixins composed into WaymarkDB.

Convention-based discovery: each project has a `.waymark/` directory
containing `waymark.db` (SQLite) and `config.json` (id prefix, version,
review default).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from waymark.bug_workflow import BugMetadata, parse_bug_metadata
from waymark.db_base import _now_iso
from waymark.db_events import EventsMixin
from waymark.db_lifecycle import LifecycleMixin
from waymark.db_review import ReviewMixin
from waymark.db_schema import CURRENT_SCHEMA_VERSION, SCHEMA_SQL
from waymark.db_timeline import TimelineItem, TimelineMixin  # noqa: F401 -- re-exported
from waymark.db_versions import VersionsMixin
from waymark.errors import ConflictError, NotFoundError, ValidationError
from waymark.logging import work_item_extra
from waymark.phases import PhaseRegistry, get_registry
from waymark.review import DEFAULT_ROLE_POLICY, RolePolicy, supports_review
from waymark.types.core import ProjectConfig, WorkItemDict

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

WAYMARK_DIR_NAME = ".waymark"
DB_FILENAME = "waymark.db"
CONFIG_FILENAME = "config.json"


def find_waymark_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for .waymark/ directory.

    Returns the .waymark/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / WAYMARK_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {WAYMARK_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def read_config(waymark_dir: Path) -> ProjectConfig:
    """Read .waymark/config.json. Returns defaults if missing or corrupt."""
    defaults = ProjectConfig(prefix="waymark", version=1, default_review_enabled=False)
    config_path = waymark_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        loaded = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(loaded, dict):
        logger.warning("Ignoring %s: expected a JSON object", config_path)
        return defaults
    result: ProjectConfig = {**defaults, **loaded}  # type: ignore[typeddict-item]
    return result


def write_config(waymark_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .waymark/config.json."""
    config_path = waymark_dir / CONFIG_FILENAME
    config_path.write_text(json.dumps(config, indent=2) + "\n")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class WorkItem:
    id: str
    name: str
    type: str
    phase: str
    purpose: str = ""
    fields: dict[str, Any] = field(default_factory=dict)
    bug_metadata: BugMetadata = field(default_factory=BugMetadata)
    is_enhancement: bool = False
    enhances_work_item_id: str | None = None
    version: int = 1
    version_notes: str = ""
    source_concept_id: str | None = None
    rejection_reason: str = ""
    archived: bool = False
    review_enabled: bool = False
    review_status: str | None = None
    review_requested_by: str = ""
    review_requested_at: str | None = None
    review_completed_by: str = ""
    review_completed_at: str | None = None
    review_reason: str = ""
    created_at: str = ""
    updated_at: str = ""
    # Computed (not stored directly)
    phase_label: str = ""
    is_terminal: bool = False

    def to_dict(self) -> WorkItemDict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "phase": self.phase,
            "phase_label": self.phase_label,
            "is_terminal": self.is_terminal,
            "purpose": self.purpose,
            "fields": self.fields,
            "bug_metadata": self.bug_metadata.to_dict() if self.type == "bug" else {},
            "is_enhancement": self.is_enhancement,
            "enhances_work_item_id": self.enhances_work_item_id,
            "version": self.version,
            "version_notes": self.version_notes,
            "source_concept_id": self.source_concept_id,
            "rejection_reason": self.rejection_reason,
            "archived": self.archived,
            "review_enabled": self.review_enabled,
            "review_status": self.review_status,
            "review_requested_by": self.review_requested_by,
            "review_requested_at": self.review_requested_at,  # type: ignore[typeddict-item]
            "review_completed_by": self.review_completed_by,
            "review_completed_at": self.review_completed_at,  # type: ignore[typeddict-item]
            "review_reason": self.review_reason,
            "created_at": self.created_at,  # type: ignore[typeddict-item]
            "updated_at": self.updated_at,  # type: ignore[typeddict-item]
        }


# ---------------------------------------------------------------------------
# WaymarkDB
# ---------------------------------------------------------------------------


class WaymarkDB(EventsMixin, TimelineMixin, ReviewMixin, VersionsMixin, LifecycleMixin):
    """Direct SQLite operations. No daemon, no sync. Importable by CLI and API."""

    def __init__(
        self,
        db_path: str | Path,
        *,
        prefix: str = "waymark",
        default_review_enabled: bool = False,
        phase_registry: PhaseRegistry | None = None,
        role_policy: RolePolicy | None = None,
        check_same_thread: bool = True,
    ) -> None:
        self.db_path = Path(db_path)
        self.prefix = prefix
        self.default_review_enabled = default_review_enabled
        self.phases = phase_registry or get_registry()
        self.role_policy = role_policy or DEFAULT_ROLE_POLICY
        self._conn: sqlite3.Connection | None = None
        self._check_same_thread = check_same_thread

    @classmethod
    def from_project(cls, project_path: Path | None = None, *, check_same_thread: bool = True) -> WaymarkDB:
        """Create a WaymarkDB by discovering .waymark/ from project_path (or cwd)."""
        waymark_dir = find_waymark_root(project_path)
        config = read_config(waymark_dir)
        db = cls(
            waymark_dir / DB_FILENAME,
            prefix=config.get("prefix", "waymark"),
            default_review_enabled=bool(config.get("default_review_enabled", False)),
            check_same_thread=check_same_thread,
        )
        db.initialize()
        return db

    def __enter__(self) -> WaymarkDB:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level="DEFERRED",
                check_same_thread=self._check_same_thread,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.execute("PRAGMA busy_timeout=5000")
        return self._conn

    def reconnect(self, *, check_same_thread: bool = True) -> None:
        """Close the current connection; the next access reopens it with *check_same_thread*."""
        self.close()
        self._check_same_thread = check_same_thread

    def initialize(self) -> None:
        """Create tables on a fresh database and stamp the schema version."""
        current_version = self.get_schema_version()
        if current_version == 0:
            self.conn.executescript(SCHEMA_SQL)
            self.conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION}")
        elif current_version > CURRENT_SCHEMA_VERSION:
            logger.warning(
                "Database %s has schema version %d, newer than supported %d",
                self.db_path,
                current_version,
                CURRENT_SCHEMA_VERSION,
            )
        self.conn.commit()

    def get_schema_version(self) -> int:
        """Return the current schema version from PRAGMA user_version."""
        result: int = self.conn.execute("PRAGMA user_version").fetchone()[0]
        return result

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _generate_unique_id(self, table: str, infix: str = "") -> str:
        """Generate a unique ID using O(1) EXISTS checks against the PK index.

        *table* is always a hardcoded literal at the call site (never user input).
        """
        sep = f"-{infix}-" if infix else "-"
        for _ in range(10):
            candidate = f"{self.prefix}{sep}{uuid.uuid4().hex[:10]}"
            if self.conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (candidate,)).fetchone() is None:
                return candidate
        return f"{self.prefix}{sep}{uuid.uuid4().hex[:16]}"

    # -- Field validation ----------------------------------------------------

    def _validate_fields(self, work_item_type: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Check field keys against the type's catalog and coerce values.

        ``None`` values are kept so callers can use them to clear a field.
        """
        if not isinstance(fields, dict):
            msg = "fields must be an object"
            raise ValidationError(msg, fields=["fields"])
        workflow = self.phases.get_workflow(work_item_type)
        editable = {f.name: f for f in workflow.editable_fields()}
        cleaned: dict[str, Any] = {}
        for key, value in fields.items():
            if not isinstance(key, str) or not key.strip():
                msg = "Field key cannot be empty"
                raise ValidationError(msg, fields=["fields"])
            spec = editable.get(key)
            if spec is None:
                msg = f"Unknown field '{key}' for type '{work_item_type}'. Valid fields: {', '.join(sorted(editable))}"
                raise ValidationError(msg, fields=[key])
            cleaned[key] = spec.coerce(value)
        return cleaned

    # -- Work item CRUD ------------------------------------------------------

    def _insert_work_item(
        self,
        *,
        name: str,
        type: str,
        purpose: str = "",
        fields: dict[str, Any] | None = None,
        bug_metadata: BugMetadata | None = None,
        review_enabled: bool = False,
        is_enhancement: bool = False,
        enhances_work_item_id: str | None = None,
        version: int = 1,
        version_notes: str = "",
        source_concept_id: str | None = None,
    ) -> str:
        """INSERT a work item in its type's initial phase. Caller owns the transaction."""
        work_item_id = self._generate_unique_id("work_items")
        now = _now_iso()
        metadata = bug_metadata.to_dict() if bug_metadata is not None else {}
        self.conn.execute(
            "INSERT INTO work_items (id, name, type, phase, purpose, fields, bug_metadata, is_enhancement, "
            "enhances_work_item_id, version, version_notes, source_concept_id, review_enabled, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                work_item_id,
                name,
                type,
                self.phases.initial_phase(type),
                purpose,
                json.dumps(fields or {}),
                json.dumps(metadata),
                int(is_enhancement),
                enhances_work_item_id,
                version,
                version_notes,
                source_concept_id,
                int(review_enabled),
                now,
                now,
            ),
        )
        return work_item_id

    def create_work_item(
        self,
        name: str,
        *,
        type: str = "feature",
        purpose: str = "",
        fields: dict[str, Any] | None = None,
        bug_metadata: dict[str, Any] | None = None,
        review_enabled: bool | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Create a work item in its type's initial phase with ``version = 1``."""
        if not name or not name.strip():
            msg = "Name cannot be empty"
            raise ValidationError(msg, fields=["name"])
        self.phases.get_workflow(type)  # raises ValidationError for unknown types
        cleaned = {k: v for k, v in self._validate_fields(type, fields or {}).items() if v is not None}
        if bug_metadata and type != "bug":
            msg = f"bug_metadata is only valid for bug work items, not {type}"
            raise ValidationError(msg, fields=["bug_metadata"])
        metadata = parse_bug_metadata(bug_metadata) if type == "bug" else None
        if review_enabled is None:
            review_enabled = self.default_review_enabled and supports_review(type)
        elif review_enabled and not supports_review(type):
            msg = f"Review is not supported for {type} work items"
            raise ValidationError(msg, fields=["review_enabled"])

        try:
            work_item_id = self._insert_work_item(
                name=name.strip(),
                type=type,
                purpose=purpose,
                fields=cleaned,
                bug_metadata=metadata,
                review_enabled=review_enabled,
            )
            self._record_event(work_item_id, "created", actor=actor, new_value=name.strip())
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.debug("Created %s %s", type, work_item_id)
        return self.get_work_item(work_item_id)

    def get_work_item(self, work_item_id: str) -> WorkItem:
        row = self.conn.execute("SELECT * FROM work_items WHERE id = ?", (work_item_id,)).fetchone()
        if row is None:
            msg = f"Work item not found: {work_item_id}"
            raise NotFoundError(msg)
        return self._build_work_item(row)

    def _build_work_item(self, row: sqlite3.Row) -> WorkItem:
        definition = self.phases.get_workflow(row["type"]).get_phase(row["phase"])
        if definition is None:
            logger.warning("Work item %s has phase '%s' unknown to type '%s'", row["id"], row["phase"], row["type"])
        raw_metadata = json.loads(row["bug_metadata"]) if row["bug_metadata"] else {}
        return WorkItem(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            phase=row["phase"],
            purpose=row["purpose"] or "",
            fields=json.loads(row["fields"]) if row["fields"] else {},
            bug_metadata=parse_bug_metadata(raw_metadata) if row["type"] == "bug" else BugMetadata(),
            is_enhancement=bool(row["is_enhancement"]),
            enhances_work_item_id=row["enhances_work_item_id"],
            version=row["version"],
            version_notes=row["version_notes"] or "",
            source_concept_id=row["source_concept_id"],
            rejection_reason=row["rejection_reason"] or "",
            archived=bool(row["archived"]),
            review_enabled=bool(row["review_enabled"]),
            review_status=row["review_status"],
            review_requested_by=row["review_requested_by"] or "",
            review_requested_at=row["review_requested_at"],
            review_completed_by=row["review_completed_by"] or "",
            review_completed_at=row["review_completed_at"],
            review_reason=row["review_reason"] or "",
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            phase_label=definition.label if definition else row["phase"],
            is_terminal=definition.is_terminal if definition else False,
        )

    def list_work_items(
        self,
        *,
        type: str | None = None,
        phase: str | None = None,
        include_archived: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> list[WorkItem]:
        if limit < 0:
            limit = 100
        if offset < 0:
            offset = 0
        conditions: list[str] = []
        params: list[Any] = []
        if type is not None:
            conditions.append("type = ?")
            params.append(type)
        if phase is not None:
            conditions.append("phase = ?")
            params.append(phase)
        if not include_archived:
            conditions.append("archived = 0")

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        params.extend([limit, offset])
        rows = self.conn.execute(
            f"SELECT * FROM work_items{where} ORDER BY created_at, rowid LIMIT ? OFFSET ?",
            params,
        ).fetchall()
        return [self._build_work_item(r) for r in rows]

    def update_work_item(
        self,
        work_item_id: str,
        *,
        name: str | None = None,
        purpose: str | None = None,
        fields: dict[str, Any] | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Edit a work item's name, purpose or type-specific fields.

        Phase, review and lineage are changed only through their dedicated
        operations. A field set to None is removed.
        """
        current = self.get_work_item(work_item_id)

        # --- Validate all inputs BEFORE any writes ---
        if name is not None and not name.strip():
            msg = "Name cannot be empty"
            raise ValidationError(msg, fields=["name"])
        merged = dict(current.fields)
        changed: list[str] = []
        if fields:
            for key, value in self._validate_fields(current.type, fields).items():
                if value is None:
                    if key in merged:
                        del merged[key]
                        changed.append(key)
                elif merged.get(key) != value:
                    merged[key] = value
                    changed.append(key)

        updates: list[str] = []
        params: list[Any] = []
        if name is not None and name.strip() != current.name:
            updates.append("name = ?")
            params.append(name.strip())
            changed.insert(0, "name")
        if purpose is not None and purpose != current.purpose:
            updates.append("purpose = ?")
            params.append(purpose)
            changed.insert(0, "purpose")
        if merged != current.fields:
            updates.append("fields = ?")
            params.append(json.dumps(merged))

        if not updates:
            return current

        updates.append("updated_at = ?")
        params.append(_now_iso())
        params.append(work_item_id)
        try:
            self.conn.execute(f"UPDATE work_items SET {', '.join(updates)} WHERE id = ?", params)
            self._record_event(work_item_id, "updated", actor=actor, comment=", ".join(changed))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_work_item(work_item_id)

    def delete_work_item(self, work_item_id: str, *, actor: str = "") -> None:
        """Delete a work item with its timeline items and events.

        Refused while a later version still enhances this item, since the
        chain would lose its link to the root.
        """
        item = self.get_work_item(work_item_id)
        child = self.conn.execute(
            "SELECT id FROM work_items WHERE enhances_work_item_id = ?",
            (work_item_id,),
        ).fetchone()
        if child is not None:
            msg = f"Cannot delete {work_item_id}: version {item.version + 1} ({child['id']}) enhances it"
            raise ConflictError(msg)
        try:
            self.conn.execute("DELETE FROM work_items WHERE id = ?", (work_item_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info(
            "Deleted %s %s (actor=%s)",
            item.type,
            work_item_id,
            actor or "-",
            extra=work_item_extra(work_item_id, item.type, actor=actor),
        )
