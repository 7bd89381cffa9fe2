"""Database layer - engine, base classes, types, and immutability."""

from invoicing_kernel.db.base import Base, TrackedBase, UUIDString
from invoicing_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)
from invoicing_kernel.db.types import CENT, round_money

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "CENT",
    "round_money",
]
