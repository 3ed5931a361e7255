"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

import waymark.api as api_module
from waymark.api import create_app
from tests.conftest import PopulatedDB


@pytest.fixture
def api_db(populated_db: PopulatedDB) -> PopulatedDB:
    """Use the populated_db fixture for API tests.

    Reconnects the underlying DB with check_same_thread=False so handlers
    can run wherever the ASGI transport schedules them. Returns the full
    PopulatedDB wrapper so tests can access ``.db`` and ``.ids``.
    """
    populated_db.db.reconnect(check_same_thread=False)
    return populated_db


@pytest.fixture
async def client(api_db: PopulatedDB) -> AsyncIterator[AsyncClient]:
    """Create a test client backed by the populated single-project DB."""
    api_module._db = api_db.db
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    api_module._db = None
