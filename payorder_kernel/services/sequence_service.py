"""
SequenceService -- monotonic order number allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers per site/bank pair for
    payment order numbers.  Uses a dedicated counter table with row-level
    locking (``SELECT ... FOR UPDATE``) to guarantee uniqueness and ordering
    under concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by BatchBuilder when it allocates an order number.

Invariants enforced:
    - The locked counter row is the sole source of truth for the next
      value.  MAX(order_number)+1 is never used.
    - The increment is only visible after the caller's transaction commits.
      Rollback returns the value.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and re-read).
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payorder_kernel.logging_config import get_logger
from payorder_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


def order_sequence_name(site_id: int, bank_id: int) -> str:
    return f"payment_order:{site_id}:{bank_id}"


class SequenceService:
    """
    Transactional named sequences.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously committed for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use of this sequence.  A concurrent creator may win the
            # insert; the savepoint keeps the rest of the transaction intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never allocated."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
