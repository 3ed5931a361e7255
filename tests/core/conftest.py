"""Fixtures for core DB tests."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from waymark.core import WaymarkDB
from tests._db_factory import make_db


@pytest.fixture
def review_db(tmp_path: Path) -> Generator[WaymarkDB, None, None]:
    """WaymarkDB whose new features and bugs have review enabled by default."""
    d = make_db(tmp_path, default_review_enabled=True)
    yield d
    d.close()
