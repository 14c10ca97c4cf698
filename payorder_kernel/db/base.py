"""
Module: payorder_kernel.db.base
Responsibility: Declarative base classes for all SQLAlchemy ORM models.  Provides
    the UUID primary key convention, type annotation map for consistent column
    types, and the TrackedBase mixin carrying the uniform audit shape.
Architecture position: Kernel > DB.  This is the lowest-level import target
    within the kernel.  ALL model files import from here.  This module MUST NOT
    import from models/, services/, selectors/, or domain/.

Invariants enforced:
    - UUID primary keys: every kernel-owned row carries a uuid4 identifier
      that doubles as its external identifier (the "guid" handed to the
      presentation layer).
    - Decimal precision: Decimal maps to Numeric(38, 9).  NEVER float.
    - Audit shape: TrackedBase provides record_status, created_at,
      updated_at, created_by_id and updated_by_id on every table.
    - Soft delete is a lifecycle flag (RecordStatus) kept separate from any
      workflow state, so "deleted" and "rejected" never conflate.

Audit relevance:
    created_by_id / updated_by_id hold the numeric user id supplied by the
    identity collaborator on every call.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID type stored as String(36) for cross-database portability.

    Guarantees:
        - process_bind_param: UUID -> str on INSERT/UPDATE.
        - process_result_value: str -> UUID on SELECT.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class RecordStatus(str, Enum):
    """Row lifecycle, independent of business workflow state."""

    ACTIVE = "active"
    DELETED = "deleted"


class Base(DeclarativeBase):
    """
    Declarative base for all SQLAlchemy models.

    Guarantees:
        - id is a uuid4-generated UUID stored as String(36), unless a model
          overrides it with an integer identity key (upstream master data).
        - Decimal maps to Numeric(38, 9).
        - datetime maps to DateTime(timezone=True).
        - int maps to BIGINT (INTEGER on SQLite).
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger().with_variant(Integer(), "sqlite"),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with lifecycle flag, audit timestamps and actor tracking.

    Contract:
        Every table in the system carries this audit shape.  The timestamps
        and updated_by_id are audit metadata: they are explicitly allowed to
        change even on rows whose business columns are immutable.

    Guarantees:
        - record_status defaults to ACTIVE; soft delete flips it to DELETED.
        - created_at is set on INSERT and never changes.
        - updated_at auto-updates on every UPDATE.
        - created_by_id is required -- every row has a creator.
    """

    __abstract__ = True

    record_status: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=RecordStatus.ACTIVE.value,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[int] = mapped_column(nullable=False)

    updated_by_id: Mapped[int | None] = mapped_column(nullable=True)

    @property
    def is_active(self) -> bool:
        return self.record_status == RecordStatus.ACTIVE.value

    def soft_delete(self, actor_id: int) -> None:
        """Flip the lifecycle flag to DELETED."""
        self.record_status = RecordStatus.DELETED.value
        self.updated_by_id = actor_id


# Re-export UUID for convenience
UUID = PyUUID
