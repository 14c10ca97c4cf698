"""
Module: payorder_kernel.db.unit_of_work
Responsibility: Explicit transaction boundary for every kernel write
    operation.  A UnitOfWork owns one Session for the duration of a
    ``with`` block: it commits on normal exit and rolls back on any
    exception.
Architecture position: Kernel > DB.  May import from db/engine.py,
    exceptions.py and logging_config.py.  Services receive a UnitOfWork
    from their caller and only ever flush through ``uow.session``.

Invariants enforced:
    - All-or-nothing: header, memberships, ledger rows and approver
      snapshots written inside one unit of work commit together or not
      at all.
    - Raw SQLAlchemy errors never leave the unit of work.  They are
      rolled back and re-raised as PersistenceError, flagged transient
      for OperationalError (lost connection, lock timeout, deadlock).

Failure modes:
    - PersistenceError on any SQLAlchemyError raised inside the block or
      at commit time.
    - Kernel exceptions (PaymentOrderError) raised inside the block pass
      through unchanged after rollback.
"""

from __future__ import annotations

from types import TracebackType
from uuid import uuid4

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from payorder_kernel.exceptions import PersistenceError
from payorder_kernel.logging_config import get_logger

logger = get_logger("db.unit_of_work")


class UnitOfWork:
    """
    One transaction, one session.

    Contract:
        Enter to open a session and begin a transaction; exit commits or
        rolls back.  A UnitOfWork is single-use.

    Guarantees:
        - The session is always closed on exit.
        - ``uow.id`` is a fresh identifier usable as a correlation id.

    Non-goals:
        - No nested units of work.  Services that need a partial rollback
          use ``session.begin_nested()`` inside the block.
    """

    def __init__(self, session_factory: sessionmaker[Session], operation: str = "unit_of_work"):
        self._session_factory = session_factory
        self.operation = operation
        self.id = uuid4()
        self._session: Session | None = None

    @property
    def session(self) -> Session:
        if self._session is None:
            raise RuntimeError("UnitOfWork is not active; use it in a 'with' block")
        return self._session

    def __enter__(self) -> UnitOfWork:
        if self._session is not None:
            raise RuntimeError("UnitOfWork is already active")
        self._session = self._session_factory()
        self._session.begin()
        logger.debug(
            "unit_of_work_started",
            extra={"operation": self.operation, "uow_id": str(self.id)},
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        session = self.session
        try:
            if exc is not None:
                session.rollback()
                logger.info(
                    "unit_of_work_rolled_back",
                    extra={
                        "operation": self.operation,
                        "uow_id": str(self.id),
                        "error_type": type(exc).__name__,
                    },
                )
                if isinstance(exc, SQLAlchemyError):
                    raise self._wrap(exc) from exc
                return False

            try:
                session.commit()
            except SQLAlchemyError as err:
                session.rollback()
                raise self._wrap(err) from err
            logger.debug(
                "unit_of_work_committed",
                extra={"operation": self.operation, "uow_id": str(self.id)},
            )
            return False
        finally:
            session.close()
            self._session = None

    def flush(self) -> None:
        self.session.flush()

    def _wrap(self, err: SQLAlchemyError) -> PersistenceError:
        return PersistenceError(
            operation=self.operation,
            detail=f"{type(err).__name__}: {err}",
            transient=isinstance(err, OperationalError),
        )
