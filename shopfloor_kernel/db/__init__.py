"""Database layer - engine, base classes, column types."""

from shopfloor_kernel.db.base import UUID, Base, TenantScopedBase, TrackedBase, UUIDString
from shopfloor_kernel.db.engine import create_tables, get_engine, get_session
from shopfloor_kernel.db.types import ZERO, to_decimal

__all__ = [
    "get_engine",
    "get_session",
    "create_tables",
    "Base",
    "TrackedBase",
    "TenantScopedBase",
    "UUIDString",
    "UUID",
    "ZERO",
    "to_decimal",
]
