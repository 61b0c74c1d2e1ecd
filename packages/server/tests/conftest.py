"""
Shared fixtures.

The database URL must be set before any backoffice module is imported, so it
is configured at module import time: a temporary SQLite file via aiosqlite.
"""

from __future__ import annotations

import os
import tempfile
import uuid

_db_fd, _db_path = tempfile.mkstemp(suffix=".db")
os.close(_db_fd)
os.environ.setdefault("BO_DATABASE_URL", f"sqlite+aiosqlite:///{_db_path}")
os.environ.setdefault("BO_LOG_FORMAT", "text")
os.environ.setdefault("BO_AUTHZ_LOOKUP_TIMEOUT_SECONDS", "2")

import pytest
from httpx import ASGITransport, AsyncClient

from backoffice.authz import AccessResolver, CapabilityGate, MemoryAccessStore, Principal
from backoffice.core.database import drop_db, engine, get_session_context, init_db
from backoffice.models.user import User


def pytest_sessionfinish(session, exitstatus):
    try:
        os.unlink(_db_path)
    except OSError:
        pass


# ---------------------------------------------------------------------------
# In-process store fixtures (no DB)
# ---------------------------------------------------------------------------

@pytest.fixture
def store() -> MemoryAccessStore:
    return MemoryAccessStore()


@pytest.fixture
def resolver(store) -> AccessResolver:
    return AccessResolver(store, lookup_timeout=1.0)


@pytest.fixture
def gate(resolver) -> CapabilityGate:
    return CapabilityGate(resolver)


@pytest.fixture
def principal_for():
    def _make(user_id: uuid.UUID, *, operator: bool = False) -> Principal:
        return Principal(user_id=user_id, is_operator=operator)
    return _make


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
async def db():
    await init_db()
    yield
    await drop_db()
    await engine.dispose()


@pytest.fixture
async def make_user(db):
    """Factory creating persisted users."""

    async def _make(email: str | None = None, *, operator: bool = False) -> User:
        user = User(email=email or f"{uuid.uuid4().hex[:10]}@acme-corp.io", is_operator=operator)
        async with get_session_context() as session:
            session.add(user)
            await session.flush()
        return user

    return _make


@pytest.fixture
async def client(db):
    from backoffice.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    """Authorization header for a user (validated upstream; Bearer <uuid>)."""

    def _headers(user) -> dict:
        user_id = user if isinstance(user, uuid.UUID) else user.id
        return {"Authorization": f"Bearer {user_id}"}

    return _headers
