"""Database layer - engine, base classes, types, unit of work."""

from cashflow_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from cashflow_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from cashflow_kernel.db.types import EncryptedAmount
from cashflow_kernel.db.unit_of_work import unit_of_work

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "session_scope",
    "unit_of_work",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "EncryptedAmount",
]
