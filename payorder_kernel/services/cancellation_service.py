"""
CancellationService -- soft-delete a payment order and release its invoices.

Responsibility:
    Cancels a non-approved payment order by flipping the lifecycle flag of
    the header, its membership links, its ledger rows and their approver
    snapshots to DELETED in one unit of work.  Released invoices become
    batchable again.

Architecture position:
    Kernel > Services -- imperative shell.  Never commits.

Invariants enforced:
    - Approved orders are never cancelled.
    - Workflow state (status, decisions) is left untouched; only the
      lifecycle flag and audit columns change, so decided ledger rows keep
      their immutability.

Failure modes:
    - PaymentOrderNotFoundError: unknown or already cancelled order.
    - TerminalStateError: order is approved.
    - ValidationError: missing reason.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.db.unit_of_work import UnitOfWork
from payorder_kernel.domain.payment_order import OrderStatus
from payorder_kernel.exceptions import (
    PaymentOrderNotFoundError,
    TerminalStateError,
    ValidationError,
)
from payorder_kernel.logging_config import LogContext, get_logger
from payorder_kernel.models.payment_order import PaymentOrder, PaymentOrderApproval

logger = get_logger("services.cancellation")


class CancellationService:
    """Soft-delete payment orders."""

    def cancel_order(
        self,
        uow: UnitOfWork,
        order_id: UUID,
        actor_id: int,
        reason: str | None,
    ) -> list[int]:
        """
        Cancel an order.

        Returns:
            The invoice ids released for re-batching.
        """
        if reason is None or not reason.strip():
            raise ValidationError("reason", "a reason is required to cancel")

        session = uow.session
        with LogContext.bind(actor_id=actor_id, order_id=order_id):
            order = session.execute(
                select(PaymentOrder)
                .where(PaymentOrder.id == order_id)
                .options(
                    selectinload(PaymentOrder.invoices),
                    selectinload(PaymentOrder.approvals)
                    .selectinload(PaymentOrderApproval.approvers),
                )
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if order is None or order.record_status != RecordStatus.ACTIVE.value:
                raise PaymentOrderNotFoundError(order_id)
            if order.status_enum == OrderStatus.APPROVED:
                raise TerminalStateError(order.id, order.status, "cancel")

            released = [link.invoice_id for link in order.active_invoices]
            for link in order.active_invoices:
                link.soft_delete(actor_id)
            for row in order.active_approvals:
                for approver in row.approvers:
                    if approver.is_active:
                        approver.soft_delete(actor_id)
                row.soft_delete(actor_id)

            order.comments = reason.strip()
            order.soft_delete(actor_id)
            session.flush()

            logger.info(
                "payment_order_cancelled",
                extra={
                    "order_number": order.order_number,
                    "status": order.status,
                    "released_invoice_count": len(released),
                },
            )
        return released
