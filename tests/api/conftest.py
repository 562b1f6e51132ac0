"""Fixtures for HTTP API tests (FastAPI)."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

import pytest
from httpx import ASGITransport, AsyncClient

import issueloom.dashboard as dash_module
from issueloom.core import IssueloomDB
from issueloom.dashboard import create_app
from issueloom.guard import CSRF_HEADER, CsrfTokenStore


class PopulatedDB(Protocol):
    db: IssueloomDB
    ids: dict[str, str]


@pytest.fixture
def dashboard_db(populated_db: PopulatedDB) -> PopulatedDB:
    """Use the populated_db fixture for API tests.

    Reconnects the underlying DB with check_same_thread=False so handlers
    may run off the thread that created it.
    """
    populated_db.db.reconnect(check_same_thread=False)
    return populated_db


@pytest.fixture
def token_store() -> CsrfTokenStore:
    return CsrfTokenStore()


@pytest.fixture
async def client(dashboard_db: PopulatedDB, token_store: CsrfTokenStore) -> AsyncIterator[AsyncClient]:
    """Test client with a loopback Host header and a fresh token store."""
    dash_module._db = dashboard_db.db
    app = create_app(token_store=token_store)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as c:
        yield c
    dash_module._db = None


@pytest.fixture
async def csrf(client: AsyncClient) -> dict[str, str]:
    """Headers carrying a freshly issued CSRF token."""
    resp = await client.get("/api/csrf-token")
    return {CSRF_HEADER: resp.json()["token"]}
