"""
core/db.py -- Process-wide database connection handle.

Every store shares one SQLAlchemy Engine (and therefore one connection pool).
Creating an engine per request would exhaust connections under load, so the
engine is memoized the first time get_engine() is called.

Initialization is double-checked: the lock is only taken while no engine
exists yet, so steady-state calls never contend. If engine creation raises,
nothing is cached and the next call tries again.

Usage:
    engine = get_engine()                       # DATABASE_URL from settings
    engine = build_engine("sqlite:///:memory:") # explicit, for tests/tools
    dispose_engine()                            # at shutdown

Layer rule: core/ only.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url

from core.config import get_settings

logger = logging.getLogger("proptrack.db")

_engine: Optional[Engine] = None
_engine_lock = threading.Lock()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def build_engine(db_url: str, timeout_seconds: Optional[int] = None) -> Engine:
    """Create a configured Engine for db_url without caching it."""
    timeout = timeout_seconds if timeout_seconds is not None else get_settings().db_timeout_seconds
    url = make_url(db_url)
    # Never log credentials embedded in the URL.
    logger.info("Connecting to database %s", url.render_as_string(hide_password=True))
    if url.get_backend_name() == "sqlite":
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)
        return engine
    return create_engine(db_url, pool_pre_ping=True, pool_timeout=timeout)


def get_engine() -> Engine:
    """Return the process-wide Engine, creating it on first use."""
    global _engine
    engine = _engine
    if engine is not None:
        return engine
    with _engine_lock:
        if _engine is None:
            _engine = build_engine(get_settings().database_url)
            logger.info("Database engine initialized")
        return _engine


def dispose_engine() -> None:
    """Dispose the cached Engine (if any) so the next get_engine() rebuilds it."""
    global _engine
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None


def ping(engine: Engine) -> bool:
    """Return True if a trivial query succeeds on engine."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("Database ping failed")
        return False
