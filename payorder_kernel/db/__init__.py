"""Database layer - engine, base classes, types, and the unit of work."""

from payorder_kernel.db.base import UUID, Base, RecordStatus, TrackedBase, UUIDString
from payorder_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
)
from payorder_kernel.db.types import money
from payorder_kernel.db.unit_of_work import UnitOfWork

__all__ = [
    "get_engine",
    "get_session_factory",
    "create_tables",
    "Base",
    "TrackedBase",
    "RecordStatus",
    "UUIDString",
    "UUID",
    "money",
    "UnitOfWork",
]
