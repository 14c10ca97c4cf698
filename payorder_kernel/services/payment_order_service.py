"""
PaymentOrderService -- presentation-facing facade over the kernel.

Responsibility:
    Exposes every payment order operation as one call that opens its own
    UnitOfWork, runs the kernel service inside it, and converts the outcome
    into an ``OperationResult`` carrying a machine-readable code, a
    human-readable message and the payload.

Architecture position:
    Kernel > Services -- outermost kernel layer.  The only place where
    kernel exceptions are translated into results.

Invariants enforced:
    - One operation, one transaction: the result is returned only after
      the unit of work has committed or rolled back.
    - Store failures never leak detail to callers: they surface as
      PERSISTENCE_ERROR with a generic message, while the full exception
      is logged with its traceback.
    - Transient store failures are retried with bounded backoff; business
      refusals are returned on the first attempt.

Audit relevance:
    Every call binds a fresh correlation_id into LogContext so all log
    lines of one operation can be joined.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from payorder_kernel.db.unit_of_work import UnitOfWork
from payorder_kernel.domain.clock import Clock, SystemClock
from payorder_kernel.domain.payment_order import (
    DecisionOutcome,
    LiquidationGroup,
    OrderDetail,
    OrderSummary,
    PaymentOrderCreated,
)
from payorder_kernel.exceptions import (
    PaymentOrderError,
    PersistenceError,
    ValidationError,
)
from payorder_kernel.logging_config import LogContext, get_logger
from payorder_kernel.selectors.liquidation_selector import LiquidationSelector
from payorder_kernel.selectors.payment_order_selector import PaymentOrderSelector
from payorder_kernel.services.approval_engine import ApprovalEngine
from payorder_kernel.services.batch_builder import (
    DEFAULT_ORDER_NUMBER_PREFIX,
    DEFAULT_WORKFLOW_GROUP,
    BatchBuilder,
)
from payorder_kernel.services.cancellation_service import CancellationService
from payorder_kernel.services.retry_service import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_WAIT,
    DEFAULT_MIN_WAIT,
    run_with_retry,
)

logger = get_logger("services.payment_order")

T = TypeVar("T")

GENERIC_FAILURE_MESSAGE = "The operation could not be completed. Please try again."


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one facade call."""

    success: bool
    code: str
    message: str
    data: T | None = None

    @classmethod
    def ok(cls, data: T, message: str = "OK") -> OperationResult[T]:
        return cls(success=True, code="OK", message=message, data=data)

    @classmethod
    def failure(cls, code: str, message: str) -> OperationResult[T]:
        return cls(success=False, code=code, message=message)


class PaymentOrderService:
    """
    Facade for the presentation layer.

    Contract:
        Never raises for business or store failures; inspect
        ``result.success`` and ``result.code``.  Programming errors
        (anything that is not a PaymentOrderError) still propagate.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        order_number_prefix: str = DEFAULT_ORDER_NUMBER_PREFIX,
        workflow_group: str = DEFAULT_WORKFLOW_GROUP,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        min_wait: float = DEFAULT_MIN_WAIT,
        max_wait: float = DEFAULT_MAX_WAIT,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._builder = BatchBuilder(
            clock=self._clock,
            order_number_prefix=order_number_prefix,
            default_workflow_group=workflow_group,
        )
        self._engine = ApprovalEngine(clock=self._clock)
        self._cancellation = CancellationService()
        self._retry = {
            "max_attempts": max_attempts,
            "min_wait": min_wait,
            "max_wait": max_wait,
            "sleep": sleep,
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_pending_groups(
        self, site_id: int, bank_id: int | None = None,
    ) -> OperationResult[list[LiquidationGroup]]:
        """Liquidation groups with invoices not yet bound to an active order."""
        return self._execute(
            "list_pending_groups",
            lambda uow: LiquidationSelector(uow.session).list_groups(
                site_id, bank_id, unbatched_only=True,
            ),
            site_id=site_id,
        )

    def get_order(self, order_id: UUID | str) -> OperationResult[OrderDetail]:
        return self._execute(
            "get_order",
            lambda uow: PaymentOrderSelector(uow.session).get_detail(
                _parse_order_id(order_id)
            ),
            order_id=order_id,
        )

    def get_pending_for_user(self, user_id: int) -> OperationResult[list[OrderSummary]]:
        return self._execute(
            "get_pending_for_user",
            lambda uow: PaymentOrderSelector(uow.session).get_pending_for_user(user_id),
            actor_id=user_id,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(
        self,
        site_id: int,
        bank_id: int,
        liquidation_code: str,
        actor_id: int,
    ) -> OperationResult[PaymentOrderCreated]:
        result = self._execute(
            "create_order",
            lambda uow: self._builder.create_order(
                uow,
                site_id=site_id,
                bank_id=bank_id,
                liquidation_code=liquidation_code,
                actor_id=actor_id,
            ),
            site_id=site_id,
            actor_id=actor_id,
        )
        if result.success:
            return OperationResult.ok(
                result.data,
                f"Payment order {result.data.order_number} created.",
            )
        return result

    def approve(self, order_id: UUID | str, actor_id: int) -> OperationResult[DecisionOutcome]:
        result = self._execute(
            "approve",
            lambda uow: self._engine.approve(uow, _parse_order_id(order_id), actor_id),
            order_id=order_id,
            actor_id=actor_id,
        )
        if result.success:
            return OperationResult.ok(
                result.data,
                f"Payment order {result.data.order_number} is "
                f"{result.data.order_status.value}.",
            )
        return result

    def reject(
        self, order_id: UUID | str, actor_id: int, comment: str | None,
    ) -> OperationResult[DecisionOutcome]:
        result = self._execute(
            "reject",
            lambda uow: self._engine.reject(
                uow, _parse_order_id(order_id), actor_id, comment,
            ),
            order_id=order_id,
            actor_id=actor_id,
        )
        if result.success:
            return OperationResult.ok(
                result.data,
                f"Payment order {result.data.order_number} rejected.",
            )
        return result

    def cancel(
        self, order_id: UUID | str, actor_id: int, reason: str | None,
    ) -> OperationResult[list[int]]:
        return self._execute(
            "cancel",
            lambda uow: self._cancellation.cancel_order(
                uow, _parse_order_id(order_id), actor_id, reason,
            ),
            order_id=order_id,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        work: Callable[[UnitOfWork], Any],
        **context: Any,
    ) -> OperationResult:
        def attempt() -> Any:
            with UnitOfWork(self._session_factory, operation) as uow:
                return work(uow)

        with LogContext.bind(correlation_id=str(uuid4()), **context):
            t0 = time.monotonic()
            try:
                data = run_with_retry(attempt, **self._retry)
            except PersistenceError as err:
                logger.error(
                    "operation_failed",
                    extra={
                        "operation": operation,
                        "transient": err.transient,
                        "duration_ms": _elapsed_ms(t0),
                    },
                    exc_info=True,
                )
                return OperationResult.failure(err.code, GENERIC_FAILURE_MESSAGE)
            except PaymentOrderError as err:
                logger.info(
                    "operation_refused",
                    extra={
                        "operation": operation,
                        "code": err.code,
                        "duration_ms": _elapsed_ms(t0),
                    },
                )
                return OperationResult.failure(err.code, err.message)

            logger.debug(
                "operation_completed",
                extra={"operation": operation, "duration_ms": _elapsed_ms(t0)},
            )
            return OperationResult.ok(data)


def _parse_order_id(order_id: UUID | str) -> UUID:
    if isinstance(order_id, UUID):
        return order_id
    try:
        return UUID(str(order_id))
    except ValueError as err:
        raise ValidationError("order_id", f"'{order_id}' is not a valid identifier") from err


def _elapsed_ms(t0: float) -> float:
    return round((time.monotonic() - t0) * 1000, 2)
