"""
ApprovalEngine -- sequential, single-actor-per-step decisions on payment orders.

Responsibility:
    Applies one approve or reject decision to the current pending step of a
    payment order and moves the order through its state machine:
    ``pending -> partially_approved -> ... -> approved`` or ``rejected``.

Architecture position:
    Kernel > Services -- imperative shell.  Works inside the caller's
    UnitOfWork and never commits.

Invariants enforced:
    - Order: only the step at ``current_position`` can be decided.  An
      approver of a later step acting early is not authorized.
    - Authorization: the actor must be in the step's approver set frozen
      at order creation.
    - Exactly-once: the step is claimed with a conditional UPDATE
      (``... WHERE status = 'pending'``).  Of two concurrent decisions only
      one claims it; the other raises AlreadyDecidedError.  The header row
      lock (PostgreSQL) and the header version counter add two more
      guards.
    - Terminal closure: approved and rejected orders accept no decisions.

Failure modes:
    - PaymentOrderNotFoundError: unknown or cancelled order.
    - TerminalStateError: order already approved or rejected.
    - NotAuthorizedError: actor not in the current step's approver set.
    - AlreadyDecidedError: lost the race for the current step, including
      the case where the order moved on (or closed) while this call waited
      on the header lock.
    - ValidationError: rejection without a comment.

Audit relevance:
    Each decision writes decided_by_id, decided_at and comment onto the
    ledger row, and logs ``approval_recorded`` plus
    ``payment_order_approved`` / ``payment_order_rejected`` on terminal
    transitions.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.db.unit_of_work import UnitOfWork
from payorder_kernel.domain.clock import Clock, SystemClock
from payorder_kernel.domain.payment_order import (
    DECIDED_STEP_STATUSES,
    Decision,
    DecisionOutcome,
    OrderStatus,
    StepStatus,
    can_transition,
)
from payorder_kernel.exceptions import (
    AlreadyDecidedError,
    NotAuthorizedError,
    PaymentOrderNotFoundError,
    TerminalStateError,
    ValidationError,
)
from payorder_kernel.logging_config import LogContext, get_logger
from payorder_kernel.models.payment_order import (
    PaymentOrder,
    PaymentOrderApproval,
    PaymentOrderApprover,
)

logger = get_logger("services.approval_engine")

_ACTIVE = RecordStatus.ACTIVE.value


class ApprovalEngine:
    """
    Approve or reject the current step of a payment order.

    Contract:
        One call decides at most one step.  On success the ledger row is
        decided and frozen, and the header reflects the new state.

    Non-goals:
        - No delegation, substitution, parallel or branching steps.
        - Does NOT release invoices on rejection (cancellation does).
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def approve(self, uow: UnitOfWork, order_id: UUID, actor_id: int) -> DecisionOutcome:
        """Approve the current step; advance the chain or finish the order."""
        return self._decide(uow.session, order_id, actor_id, Decision.APPROVE, None)

    def reject(
        self,
        uow: UnitOfWork,
        order_id: UUID,
        actor_id: int,
        comment: str | None,
    ) -> DecisionOutcome:
        """
        Reject the current step, closing the order as REJECTED.

        Raises:
            ValidationError: ``comment`` is missing or only whitespace.
        """
        if comment is None or not comment.strip():
            raise ValidationError("comment", "a comment is required to reject")
        return self._decide(uow.session, order_id, actor_id, Decision.REJECT, comment.strip())

    # ------------------------------------------------------------------
    # Decision pipeline
    # ------------------------------------------------------------------

    def _decide(
        self,
        session: Session,
        order_id: UUID,
        actor_id: int,
        decision: Decision,
        comment: str | None,
    ) -> DecisionOutcome:
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            order = self._lock_order(session, order_id)
            self._check_open(session, order, actor_id, decision)
            step = self._current_step(session, order)
            self._check_authorized(session, order, step, actor_id)

            decided_at = self._clock.now()
            self._claim_step(session, order, step, actor_id, decision, decided_at, comment)
            next_position = self._advance(session, order, step, decision, actor_id)

            logger.info(
                "approval_recorded",
                extra={
                    "order_number": order.order_number,
                    "decision": decision.value,
                    "position": step.position,
                    "profile_code": step.profile_code,
                    "order_status": order.status,
                    "next_position": next_position,
                },
            )
            if order.is_terminal:
                logger.info(
                    f"payment_order_{order.status}",
                    extra={
                        "order_number": order.order_number,
                        "total": order.total,
                        "decided_position": step.position,
                    },
                )

            return DecisionOutcome(
                order_id=order.id,
                order_number=order.order_number,
                decision=decision,
                position=step.position,
                actor_id=actor_id,
                decided_at=decided_at,
                order_status=order.status_enum,
                next_position=next_position,
            )

    def _lock_order(self, session: Session, order_id: UUID) -> PaymentOrder:
        order = session.execute(
            select(PaymentOrder)
            .where(PaymentOrder.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None or not order.is_active:
            raise PaymentOrderNotFoundError(order_id)
        return order

    def _check_open(
        self, session: Session, order: PaymentOrder, actor_id: int, decision: Decision,
    ) -> None:
        if order.is_terminal:
            self._check_not_overtaken(session, order, actor_id)
            raise TerminalStateError(order.id, order.status, decision.value)

    def _current_step(self, session: Session, order: PaymentOrder) -> PaymentOrderApproval:
        step = session.execute(
            select(PaymentOrderApproval)
            .where(
                PaymentOrderApproval.order_id == order.id,
                PaymentOrderApproval.position == order.current_position,
                PaymentOrderApproval.record_status == _ACTIVE,
            )
            .options(selectinload(PaymentOrderApproval.approvers))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if step is None or step.status_enum != StepStatus.PENDING:
            raise AlreadyDecidedError(order.id, order.current_position)
        return step

    def _check_authorized(
        self, session: Session, order: PaymentOrder, step: PaymentOrderApproval, actor_id: int,
    ) -> None:
        if actor_id not in step.approver_ids:
            self._check_not_overtaken(session, order, actor_id)
            logger.warning(
                "approval_not_authorized",
                extra={
                    "order_number": order.order_number,
                    "position": step.position,
                    "profile_code": step.profile_code,
                },
            )
            raise NotAuthorizedError(
                order.id, actor_id, position=step.position, profile_code=step.profile_code,
            )

    def _check_not_overtaken(self, session: Session, order: PaymentOrder, actor_id: int) -> None:
        """
        Raise AlreadyDecidedError if another approver already decided a step
        this actor was allowed to decide.

        This is what a loser sees after waiting on the header lock: the
        pointer has moved on or the order has closed.  The actor's own
        earlier decisions do not count.
        """
        position = session.execute(
            select(PaymentOrderApproval.position)
            .join(
                PaymentOrderApprover,
                PaymentOrderApprover.approval_id == PaymentOrderApproval.id,
            )
            .where(
                PaymentOrderApproval.order_id == order.id,
                PaymentOrderApproval.record_status == _ACTIVE,
                PaymentOrderApproval.status.in_([s.value for s in DECIDED_STEP_STATUSES]),
                PaymentOrderApproval.decided_by_id != actor_id,
                PaymentOrderApprover.user_id == actor_id,
                PaymentOrderApprover.record_status == _ACTIVE,
            )
            .order_by(PaymentOrderApproval.position.desc())
            .limit(1)
        ).scalar_one_or_none()
        if position is not None:
            logger.info(
                "approval_step_already_decided",
                extra={"order_number": order.order_number, "position": position},
            )
            raise AlreadyDecidedError(order.id, position)

    def _claim_step(
        self,
        session: Session,
        order: PaymentOrder,
        step: PaymentOrderApproval,
        actor_id: int,
        decision: Decision,
        decided_at: datetime,
        comment: str | None,
    ) -> None:
        """Conditionally flip the step from PENDING; zero rows means we lost."""
        new_status = (
            StepStatus.APPROVED if decision == Decision.APPROVE else StepStatus.REJECTED
        )
        result = session.execute(
            update(PaymentOrderApproval)
            .where(
                PaymentOrderApproval.id == step.id,
                PaymentOrderApproval.status == StepStatus.PENDING.value,
            )
            .values(
                status=new_status.value,
                decided_by_id=actor_id,
                decided_at=decided_at,
                comment=comment,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "approval_step_already_decided",
                extra={"order_number": order.order_number, "position": step.position},
            )
            raise AlreadyDecidedError(order.id, step.position)
        session.refresh(step)

    def _advance(
        self,
        session: Session,
        order: PaymentOrder,
        step: PaymentOrderApproval,
        decision: Decision,
        actor_id: int,
    ) -> int | None:
        """Move the header to its next state.  Returns the new current position."""
        if decision == Decision.REJECT:
            target, next_position = OrderStatus.REJECTED, None
        else:
            next_step = session.execute(
                select(PaymentOrderApproval)
                .where(
                    PaymentOrderApproval.order_id == order.id,
                    PaymentOrderApproval.position == step.position + 1,
                    PaymentOrderApproval.record_status == _ACTIVE,
                )
            ).scalar_one_or_none()
            if next_step is None:
                target, next_position = OrderStatus.APPROVED, None
            else:
                next_step.status = StepStatus.PENDING.value
                next_step.updated_by_id = actor_id
                target, next_position = OrderStatus.PARTIALLY_APPROVED, next_step.position

        if not can_transition(order.status_enum, target):
            raise TerminalStateError(order.id, order.status, decision.value)

        order.status = target.value
        order.current_position = next_position
        order.updated_by_id = actor_id
        try:
            session.flush()
        except StaleDataError as err:
            raise AlreadyDecidedError(order.id, step.position) from err
        return next_position
