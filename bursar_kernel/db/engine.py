"""
Engine and session setup.

One process-wide engine, created by ``init_engine_from_url``.  PostgreSQL
and SQLite are both supported; each enforces the partial unique index
that allows one live salary payment per staff member and period.

SQLite specifics:
    - in-memory URLs share a single connection (``StaticPool``) so every
      session sees the same database;
    - foreign keys are switched on for each new connection.
"""

from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from bursar_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_IN_MEMORY_SQLITE = ("sqlite://", "sqlite:///", "sqlite:///:memory:")

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _engine_options(database_url: str, echo: bool, pool_size: int) -> dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {
            "echo": echo,
            "pool_size": pool_size,
            "pool_pre_ping": True,
            "isolation_level": "READ COMMITTED",
        }
    options: dict[str, Any] = {
        "echo": echo,
        "connect_args": {"check_same_thread": False},
    }
    if database_url in _IN_MEMORY_SQLITE:
        options["poolclass"] = StaticPool
    return options


def init_engine_from_url(database_url: str, echo: bool = False, pool_size: int = 5) -> Engine:
    """
    Create the process-wide engine, replacing any previous one.

    Args:
        database_url: ``postgresql+psycopg://...`` or ``sqlite://`` style URL.
        echo: Log every SQL statement.
        pool_size: Pooled connections (PostgreSQL only).
    """
    global _engine, _sessions
    reset_engine()

    _engine = create_engine(database_url, **_engine_options(database_url, echo, pool_size))
    if _engine.dialect.name == "sqlite":
        event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session bound to the current engine."""
    if _sessions is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _sessions()


def create_tables() -> None:
    from bursar_kernel.db.base import Base
    import bursar_kernel.models  # noqa: F401  (registers tables on Base.metadata)

    Base.metadata.create_all(get_engine())


def drop_tables() -> None:
    from bursar_kernel.db.base import Base
    import bursar_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose of the engine and forget the session factory."""
    global _engine, _sessions
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None
