"""
tests/conftest.py -- Shared test fixtures for Proposal Tracker integration tests.

This module provides:
  - make_test_stores(): isolated in-memory DB with both stores on one engine
  - patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_env: TestClient plus two operators, an observer and their tokens
  - web_client: TestClient with follow_redirects=False for page/gatekeeper tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. A
"keeper" connection is held open for the fixture's lifetime so the database
is not dropped when the pool happens to close its last connection.

Environment must be set before any application import:
  DEBUG=true               -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4          -- keeps password hashing fast
  LOGIN_RATE_LIMIT         -- high enough that the suite never trips it
  DATABASE_URL             -- in-memory, so nothing touches the real DB file
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DATABASE_URL", "sqlite:///file:proptrack_default?mode=memory&cache=shared&uri=true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from asgi import app
from auth.models import ROLE_OBSERVER, ROLE_OPERATOR, Account
from auth.store import AccountStore
from auth.tokens import create_access_token, hash_password
from core.db import build_engine
from tracker.store import SubmissionStore

PASSWORD = "correct-horse-1"


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def memory_db_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def make_test_stores(db_name: str) -> tuple[Engine, AccountStore, SubmissionStore]:
    """Create both stores over one isolated named shared-memory database."""
    engine = build_engine(memory_db_url(db_name))
    return engine, AccountStore(engine), SubmissionStore(engine)


def patch_lifespan(engine: Engine, accounts: AccountStore, submissions: SubmissionStore):
    """Return a lifespan that installs the test stores instead of the real ones."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        app.state.account_store = accounts
        app.state.submission_store = submissions
        yield

    return test_lifespan


def add_account(store: AccountStore, email: str, role: str, password: str = PASSWORD) -> int:
    return store.create_account(Account(email=email, hashed_password=hash_password(password), role=role))


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@dataclass
class ApiEnv:
    client: TestClient
    accounts: AccountStore
    submissions: SubmissionStore
    operator_id: int
    operator_token: str
    other_operator_id: int
    other_operator_token: str
    observer_id: int
    observer_token: str


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv backed by a database private to the test module.

    Accounts:
      op-a@example.com   operator (the primary operator: created first)
      op-b@example.com   operator
      viewer@example.com observer
    All share the password PASSWORD.
    """
    db_name = "test_" + request.module.__name__.rsplit(".", 1)[-1]
    engine, accounts, submissions = make_test_stores(db_name)
    keeper = engine.connect()

    op_a = add_account(accounts, "op-a@example.com", ROLE_OPERATOR)
    op_b = add_account(accounts, "op-b@example.com", ROLE_OPERATOR)
    viewer = add_account(accounts, "viewer@example.com", ROLE_OBSERVER)

    app.router.lifespan_context = patch_lifespan(engine, accounts, submissions)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiEnv(
            client=client,
            accounts=accounts,
            submissions=submissions,
            operator_id=op_a,
            operator_token=create_access_token(op_a, "op-a@example.com", ROLE_OPERATOR),
            other_operator_id=op_b,
            other_operator_token=create_access_token(op_b, "op-b@example.com", ROLE_OPERATOR),
            observer_id=viewer,
            observer_token=create_access_token(viewer, "viewer@example.com", ROLE_OBSERVER),
        )

    keeper.close()
    engine.dispose()


@pytest.fixture(scope="module")
def web_client(request) -> Generator[tuple[TestClient, str], None, None]:
    """Yield (client, operator_token) with redirects left unfollowed.

    follow_redirects=False is essential: the tests assert on redirect
    locations, which are invisible once the client follows them.
    """
    db_name = "test_web_" + request.module.__name__.rsplit(".", 1)[-1]
    engine, accounts, submissions = make_test_stores(db_name)
    keeper = engine.connect()
    uid = add_account(accounts, "web@example.com", ROLE_OPERATOR)
    token = create_access_token(uid, "web@example.com", ROLE_OPERATOR)

    app.router.lifespan_context = patch_lifespan(engine, accounts, submissions)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield client, token

    keeper.close()
    engine.dispose()
