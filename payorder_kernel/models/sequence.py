"""Named sequence counters backing order number allocation."""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from payorder_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence (one per site/bank pair) with its current
    value.  Row-level locking keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
