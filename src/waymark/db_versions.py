"""VersionsMixin — enhancement chains and concept promotion.

An enhancement is a new feature work item one version above its parent,
linked through ``enhances_work_item_id``. A validated concept is promoted
into a feature linked through ``source_concept_id``. Both links are
one-shot; unique partial indexes back that up at the database level.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from waymark.db_base import DBMixinProtocol
from waymark.errors import ConflictError, ValidationError
from waymark.logging import work_item_extra
from waymark.types.lifecycle import VersionEntry
from waymark.versions import ChainNode, can_enhance, collect_descendants, find_root, next_version, order_chain

if TYPE_CHECKING:
    from waymark.core import WorkItem

logger = logging.getLogger(__name__)


class VersionsMixin(DBMixinProtocol):
    """Enhancement, version chain traversal and concept promotion."""

    if TYPE_CHECKING:

        def _insert_work_item(
            self,
            *,
            name: str,
            type: str,
            purpose: str = "",
            review_enabled: bool = False,
            is_enhancement: bool = False,
            enhances_work_item_id: str | None = None,
            version: int = 1,
            version_notes: str = "",
            source_concept_id: str | None = None,
        ) -> str: ...

    def enhance_work_item(
        self,
        parent_id: str,
        version_notes: str,
        *,
        name: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Create the next version of a feature, starting back in its initial phase."""
        parent = self.get_work_item(parent_id)
        if not can_enhance(parent.phase, parent.type, self.phases):
            if parent.type != "feature":
                msg = f"Only features can be enhanced, not {parent.type}"
            else:
                msg = f"Feature {parent_id} is still in '{parent.phase}'; move it past design before enhancing"
            raise ValidationError(msg, fields=["phase"])
        if not version_notes or not version_notes.strip():
            msg = "Version notes cannot be empty"
            raise ValidationError(msg, fields=["version_notes"])
        if name is not None and not name.strip():
            msg = "Name cannot be empty"
            raise ValidationError(msg, fields=["name"])

        existing = self.conn.execute(
            "SELECT id, version FROM work_items WHERE enhances_work_item_id = ?",
            (parent_id,),
        ).fetchone()
        if existing is not None:
            msg = f"{parent_id} has already been enhanced as version {existing['version']} ({existing['id']})"
            raise ConflictError(msg, fields=["enhances_work_item_id"])

        version = next_version(parent.version)
        try:
            child_id = self._insert_work_item(
                name=(name or parent.name).strip(),
                type="feature",
                review_enabled=self.default_review_enabled,
                is_enhancement=True,
                enhances_work_item_id=parent_id,
                version=version,
                version_notes=version_notes.strip(),
            )
            self._record_event(child_id, "enhancement_created", actor=actor, old_value=parent_id, new_value=str(version))
            self._record_event(parent_id, "enhanced", actor=actor, new_value=child_id, comment=version_notes.strip())
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"{parent_id} was enhanced concurrently"
            raise ConflictError(msg, fields=["enhances_work_item_id"]) from exc
        except Exception:
            self.conn.rollback()
            raise

        logger.info(
            "Enhanced %s into %s (v%d)",
            parent_id,
            child_id,
            version,
            extra=work_item_extra(child_id, "feature", actor=actor, version=version),
        )
        return self.get_work_item(child_id)

    def build_version_chain(self, work_item_id: str) -> list[VersionEntry]:
        """Every version related to *work_item_id*, oldest first."""
        self.get_work_item(work_item_id)

        def parent_of(item_id: str) -> str | None:
            row = self.conn.execute("SELECT enhances_work_item_id FROM work_items WHERE id = ?", (item_id,)).fetchone()
            return row["enhances_work_item_id"] if row is not None else None

        def children_of(item_id: str) -> list[str]:
            rows = self.conn.execute(
                "SELECT id FROM work_items WHERE enhances_work_item_id = ? ORDER BY version, created_at",
                (item_id,),
            ).fetchall()
            return [r["id"] for r in rows]

        root = find_root(work_item_id, parent_of)
        member_ids = collect_descendants(root, children_of)
        placeholders = ",".join("?" * len(member_ids))
        rows = self.conn.execute(
            "SELECT id, name, version, phase, is_enhancement, enhances_work_item_id, version_notes, created_at "
            f"FROM work_items WHERE id IN ({placeholders})",
            member_ids,
        ).fetchall()
        nodes = [
            ChainNode(
                id=r["id"],
                name=r["name"],
                version=r["version"],
                phase=r["phase"],
                is_enhancement=bool(r["is_enhancement"]),
                enhances_work_item_id=r["enhances_work_item_id"],
                version_notes=r["version_notes"] or "",
                created_at=r["created_at"],
            )
            for r in rows
        ]
        return order_chain(nodes, work_item_id)

    def promote_concept(
        self,
        concept_id: str,
        *,
        name: str | None = None,
        purpose: str | None = None,
        actor: str = "",
    ) -> WorkItem:
        """Create a feature from a validated concept. A concept is promoted at most once."""
        concept = self.get_work_item(concept_id)
        if concept.type != "concept":
            msg = f"Only concepts can be promoted, not {concept.type}"
            raise ValidationError(msg, fields=["type"])
        if concept.phase != "validated":
            msg = f"Concept {concept_id} must be validated before promotion (current phase: {concept.phase})"
            raise ValidationError(msg, fields=["phase"])
        if name is not None and not name.strip():
            msg = "Name cannot be empty"
            raise ValidationError(msg, fields=["name"])

        existing = self.conn.execute(
            "SELECT id FROM work_items WHERE source_concept_id = ?",
            (concept_id,),
        ).fetchone()
        if existing is not None:
            msg = f"Concept {concept_id} was already promoted to {existing['id']}"
            raise ConflictError(msg, fields=["source_concept_id"])

        if purpose is None:
            purpose = concept.purpose or str(concept.fields.get("hypothesis", ""))
        try:
            feature_id = self._insert_work_item(
                name=(name or concept.name).strip(),
                type="feature",
                review_enabled=self.default_review_enabled,
                purpose=purpose,
                source_concept_id=concept_id,
            )
            self._record_event(concept_id, "promoted", actor=actor, new_value=feature_id)
            self._record_event(feature_id, "promoted_from_concept", actor=actor, old_value=concept_id)
            self.conn.commit()
        except sqlite3.IntegrityError as exc:
            self.conn.rollback()
            msg = f"Concept {concept_id} was promoted concurrently"
            raise ConflictError(msg, fields=["source_concept_id"]) from exc
        except Exception:
            self.conn.rollback()
            raise

        logger.info(
            "Promoted concept %s to feature %s",
            concept_id,
            feature_id,
            extra=work_item_extra(feature_id, "feature", actor=actor),
        )
        return self.get_work_item(feature_id)
