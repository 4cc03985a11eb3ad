"""Database layer - engine, base classes and column types."""

from receivables_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from receivables_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    session_scope,
)
from receivables_kernel.db.types import AMOUNT_TYPE, RATE_TYPE

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "AMOUNT_TYPE",
    "RATE_TYPE",
]
