"""
tests/conftest.py -- Shared test fixtures for HRM API integration tests.

This module provides:
  - _make_test_stores(): isolated named shared-memory DBs per test module
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api: an ApiHarness with a TestClient and one seeded account + token per role

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

DEBUG, RATE_LIMIT_ENABLED and ALLOWED_HOSTS must be set before any app
import: get_settings() is read at import time by auth.tokens, api.limiter and
api.main.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["*"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from directory.store import DirectoryStore

# Seeded accounts: role -> (email, password)
SEED_ACCOUNTS: dict[Role, tuple[str, str]] = {
    Role.admin: ("admin@corp.com", "adminpass123"),
    Role.HR: ("hr@corp.com", "hrpass123"),
    Role.employee: ("staff@corp.com", "staffpass123"),
}


@dataclass
class ApiHarness:
    """Everything an integration test needs: the client, both stores, and per-role credentials."""

    client: TestClient
    user_store: UserStore
    directory: DirectoryStore
    tokens: dict[Role, str] = field(default_factory=dict)
    user_ids: dict[Role, int] = field(default_factory=dict)
    accounts: dict[Role, tuple[str, str]] = field(default_factory=lambda: dict(SEED_ACCOUNTS))

    def headers(self, role: Role) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[role]}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, DirectoryStore]:
    """Create stores on one named shared-memory SQLite database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = f"sqlite:///file:test_hrm_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(url), DirectoryStore(url)


def _patch_lifespan(user_store: UserStore, directory: DirectoryStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.directory = directory
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api(request) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness backed by isolated in-memory stores.

    One account per role is created before the client starts, with a
    long-lived token for each. Tests share the module's database, so they
    use unique names and emails for the records they create.
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, directory = _make_test_stores(suffix)

    tokens: dict[Role, str] = {}
    user_ids: dict[Role, int] = {}
    for role, (email, password) in SEED_ACCOUNTS.items():
        uid = user_store.create_user(User(email=email, role=role.value, hashed_password=hash_password(password)))
        user_ids[role] = uid
        tokens[role] = create_access_token(uid, role)

    app.router.lifespan_context = _patch_lifespan(user_store, directory)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(
            client=client,
            user_store=user_store,
            directory=directory,
            tokens=tokens,
            user_ids=user_ids,
        )

    user_store.close()
    directory.close()
