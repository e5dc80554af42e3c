"""Database layer - declarative base and engine setup."""

from bursar_kernel.db.base import Base, TrackedBase, new_id
from bursar_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
)

__all__ = [
    "Base",
    "TrackedBase",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "new_id",
    "reset_engine",
]
