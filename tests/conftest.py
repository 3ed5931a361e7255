"""Shared pytest fixtures for waymark tests."""

from __future__ import annotations

from collections.abc import Generator
from dataclasses import dataclass
from pathlib import Path

import pytest
from click.testing import CliRunner

from waymark.core import DB_FILENAME, WAYMARK_DIR_NAME, WaymarkDB, write_config
from tests._db_factory import advance_feature, make_db


@dataclass
class PopulatedDB:
    """A WaymarkDB plus the IDs of the items ``populated_db`` created."""

    db: WaymarkDB
    ids: dict[str, str]


@pytest.fixture
def db(tmp_path: Path) -> Generator[WaymarkDB, None, None]:
    """Fresh WaymarkDB for each test."""
    d = make_db(tmp_path)
    yield d
    d.close()


@pytest.fixture
def populated_db(db: WaymarkDB) -> PopulatedDB:
    """WaymarkDB pre-populated with one item of each kind.

    Creates:
    - feature "Checkout" in design
    - feature "Search" advanced to refine, review enabled
    - concept "Dark mode" in ideation
    - bug "Crash on save" in triage
    """
    checkout = db.create_work_item("Checkout", type="feature")
    search = db.create_work_item("Search", type="feature", review_enabled=True)
    advance_feature(db, search.id, "refine")
    concept = db.create_work_item("Dark mode", type="concept")
    bug = db.create_work_item("Crash on save", type="bug")
    return PopulatedDB(
        db=db,
        ids={"checkout": checkout.id, "search": search.id, "concept": concept.id, "bug": bug.id},
    )


@pytest.fixture
def waymark_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a waymark project (.waymark/ with config + db).

    Returns the project root (parent of .waymark/).
    """
    waymark_dir = tmp_path / WAYMARK_DIR_NAME
    waymark_dir.mkdir()
    write_config(waymark_dir, {"prefix": "proj", "version": 1, "default_review_enabled": False})

    d = WaymarkDB(waymark_dir / DB_FILENAME, prefix="proj")
    d.initialize()
    d.close()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    """Click CLI test runner."""
    return CliRunner()
