"""
Pytest fixtures for the bursar test suite.

Provides:
- In-memory SQLite sessions with every table created (the live-period
  partial unique index included)
- A SqlAlchemyBursarStore bound to that session
- A deterministic clock and a recording notifier
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest

from bursar_config import set_active_config
from bursar_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from bursar_kernel.domain.clock import DeterministicClock
from bursar_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from bursar_services.sqlalchemy_store import SqlAlchemyBursarStore

TEST_ACTOR_ID = "actor-00000000-test"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _reset_active_config():
    """Each test starts from the packaged default configuration."""
    set_active_config(None)
    yield
    set_active_config(None)


@pytest.fixture
def captured_logs():
    """
    Capture bursar logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            service.record_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "fee_payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("bursar")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def session():
    """A session on a fresh in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    db_session = get_session()
    yield db_session
    db_session.close()
    drop_tables()
    reset_engine()


@pytest.fixture
def store(session):
    return SqlAlchemyBursarStore(session, actor_id=TEST_ACTOR_ID)


# =============================================================================
# Collaborators
# =============================================================================


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def of_kind(self, kind: str) -> list[str]:
        return [m for k, m in self.messages if k == kind]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2025, 3, 15, 9, 0, 0, tzinfo=timezone.utc))
