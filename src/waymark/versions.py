"""Version chain arithmetic and traversal.

A feature that has shipped something can be enhanced into a new work item
with the next version number. Versions link to their immediate parent via
``enhances_work_item_id``; the chain is derived by walking those links.

Pure functions only. The database layer supplies lookups as callables.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from waymark.errors import ValidationError
from waymark.phases import PhaseRegistry, get_registry
from waymark.types.lifecycle import VersionEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChainNode:
    id: str
    name: str
    version: int
    phase: str
    is_enhancement: bool
    enhances_work_item_id: str | None
    version_notes: str
    created_at: str


def can_enhance(phase: str, work_item_type: str, registry: PhaseRegistry | None = None) -> bool:
    """Only features that have left their initial phase can be enhanced."""
    if work_item_type != "feature":
        return False
    registry = registry or get_registry()
    return phase in registry.phase_set("feature") and phase != registry.initial_phase("feature")


def next_version(parent_version: int) -> int:
    if parent_version < 1:
        msg = f"Version numbers start at 1, got {parent_version}"
        raise ValidationError(msg, fields=["version"])
    return parent_version + 1


def find_root(start_id: str, parent_of: Callable[[str], str | None]) -> str:
    """Follow parent links from *start_id* to the chain root.

    Raises ValidationError if the links loop back on themselves.
    """
    seen = {start_id}
    current = start_id
    while (parent := parent_of(current)) is not None:
        if parent in seen:
            msg = f"Version chain for {start_id} contains a cycle at {parent}"
            raise ValidationError(msg)
        seen.add(parent)
        current = parent
    return current


def collect_descendants(root_id: str, children_of: Callable[[str], list[str]]) -> list[str]:
    """Breadth-first list of *root_id* and every version derived from it."""
    ordered = [root_id]
    seen = {root_id}
    queue = deque([root_id])
    while queue:
        for child in children_of(queue.popleft()):
            if child in seen:
                continue
            seen.add(child)
            ordered.append(child)
            queue.append(child)
    return ordered


def order_chain(nodes: Iterable[ChainNode], current_id: str) -> list[VersionEntry]:
    """Order chain members by version and mark the current and latest entries.

    Raises ValidationError unless the members share exactly one root and each
    version is one more than the version it enhances.
    """
    members = sorted(nodes, key=lambda n: (n.version, n.created_at))
    if not members:
        return []
    by_id = {n.id: n for n in members}
    roots = [n.id for n in members if n.enhances_work_item_id not in by_id]
    if len(roots) != 1:
        logger.warning("Version chain for %s has %d roots: %s", current_id, len(roots), roots)
        msg = f"Version chain for {current_id} must have exactly one root, found {len(roots)}: {', '.join(roots)}"
        raise ValidationError(msg, fields=["enhances_work_item_id"])
    for n in members:
        parent = by_id.get(n.enhances_work_item_id or "")
        if parent is not None and n.version != parent.version + 1:
            msg = f"{n.id} is v{n.version} but enhances {parent.id} (v{parent.version}); expected v{parent.version + 1}"
            raise ValidationError(msg, fields=["version"])
    latest_id = members[-1].id
    return [
        {
            "id": n.id,
            "name": n.name,
            "version": n.version,
            "phase": n.phase,
            "is_enhancement": n.is_enhancement,
            "enhances_work_item_id": n.enhances_work_item_id,
            "version_notes": n.version_notes,
            "created_at": n.created_at,  # type: ignore[typeddict-item]
            "is_current": n.id == current_id,
            "is_latest": n.id == latest_id,
        }
        for n in members
    ]
