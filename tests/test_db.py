"""
tests/test_db.py -- Process-wide engine handle in core/db.py.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from conftest import memory_db_url
from core import db


@pytest.fixture
def fresh_engine_slot(monkeypatch):
    """Run with no cached engine and dispose whatever the test creates."""
    monkeypatch.setattr(db, "_engine", None)
    yield
    db.dispose_engine()


def test_get_engine_is_memoized(fresh_engine_slot) -> None:
    first = db.get_engine()
    assert db.get_engine() is first


def test_dispose_resets_the_slot(fresh_engine_slot) -> None:
    first = db.get_engine()
    db.dispose_engine()
    assert db._engine is None
    assert db.get_engine() is not first


def test_dispose_without_engine_is_a_no_op(fresh_engine_slot) -> None:
    db.dispose_engine()
    assert db._engine is None


def test_build_engine_is_not_cached(fresh_engine_slot) -> None:
    engine = db.build_engine(memory_db_url("test_db_build"))
    try:
        assert db._engine is None
        assert db.ping(engine)
    finally:
        engine.dispose()


def test_ping_reports_failure() -> None:
    engine = MagicMock()
    engine.connect.side_effect = OperationalError("SELECT 1", {}, Exception("unreachable"))
    assert db.ping(engine) is False
