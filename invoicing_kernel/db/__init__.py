"""Database layer - engine, base classes, types, and immutability listeners."""

from invoicing_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from invoicing_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
]
