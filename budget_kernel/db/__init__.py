"""Database layer - engine, base classes, column types, immutability."""

from budget_kernel.db.base import UUID, Base, MoneyType, UTCDateTime, UUIDString
from budget_kernel.db.engine import create_tables, get_engine, get_session, session_scope

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "session_scope",
    "Base",
    "MoneyType",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
