"""
Module: payorder_kernel.selectors.payment_order_selector
Responsibility: Read-only queries over the payment order aggregate: the
    per-user inbox, order detail, lookup by number, filtered listing and
    the totals consistency check.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Inbox: an order appears for a user only while it is active and
      non-terminal AND the user is in the frozen approver set of the
      order's current step.  Approvers of later steps never see it early.
    - Totals: header totals must equal the sums over active membership
      links joined to their invoices.  ``verify_totals`` recomputes them
      in SQL and compares.

Failure modes:
    - PaymentOrderNotFoundError from get_detail() for unknown or
      soft-deleted orders.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import ColumnElement, and_, func, select
from sqlalchemy.orm import selectinload

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.db.types import ZERO, money
from payorder_kernel.domain.payment_order import (
    MembershipLine,
    OrderDetail,
    OrderStatus,
    OrderSummary,
    OrderTotals,
    StepStatus,
)
from payorder_kernel.exceptions import PaymentOrderNotFoundError
from payorder_kernel.logging_config import get_logger
from payorder_kernel.models.ledger import InvoiceRecord
from payorder_kernel.models.payment_order import (
    PaymentOrder,
    PaymentOrderApproval,
    PaymentOrderApprover,
    PaymentOrderInvoice,
)
from payorder_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.payment_order")

_ACTIVE = RecordStatus.ACTIVE.value

_OPEN_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PARTIALLY_APPROVED.value)


@dataclass(frozen=True)
class OrderFilter:
    """Typed filter for listing payment orders."""

    site_id: int | None = None
    bank_id: int | None = None
    status: OrderStatus | None = None
    generated_from: datetime | None = None
    generated_to: datetime | None = None
    include_deleted: bool = False

    def clauses(self) -> list[ColumnElement[bool]]:
        predicates: list[ColumnElement[bool]] = []
        if not self.include_deleted:
            predicates.append(PaymentOrder.record_status == _ACTIVE)
        if self.site_id is not None:
            predicates.append(PaymentOrder.site_id == self.site_id)
        if self.bank_id is not None:
            predicates.append(PaymentOrder.bank_id == self.bank_id)
        if self.status is not None:
            predicates.append(PaymentOrder.status == OrderStatus(self.status).value)
        # Both bounds inclusive
        if self.generated_from is not None:
            predicates.append(PaymentOrder.generated_at >= self.generated_from)
        if self.generated_to is not None:
            predicates.append(PaymentOrder.generated_at <= self.generated_to)
        return predicates


class PaymentOrderSelector(BaseSelector[PaymentOrder]):
    """Queries over payment orders, returning frozen DTOs."""

    def get_pending_for_user(self, user_id: int) -> list[OrderSummary]:
        """
        Orders awaiting a decision from ``user_id`` at their current step.

        Ordered oldest first, then by order number.
        """
        stmt = (
            select(PaymentOrder)
            .join(
                PaymentOrderApproval,
                and_(
                    PaymentOrderApproval.order_id == PaymentOrder.id,
                    PaymentOrderApproval.position == PaymentOrder.current_position,
                ),
            )
            .join(
                PaymentOrderApprover,
                PaymentOrderApprover.approval_id == PaymentOrderApproval.id,
            )
            .where(
                PaymentOrder.record_status == _ACTIVE,
                PaymentOrder.status.in_(_OPEN_STATUSES),
                PaymentOrderApproval.record_status == _ACTIVE,
                PaymentOrderApproval.status == StepStatus.PENDING.value,
                PaymentOrderApprover.record_status == _ACTIVE,
                PaymentOrderApprover.user_id == user_id,
            )
            .order_by(PaymentOrder.generated_at, PaymentOrder.order_number)
        )
        orders = self.session.execute(stmt).scalars().unique().all()
        logger.debug(
            "inbox_listed",
            extra={"user_id": user_id, "order_count": len(orders)},
        )
        return [order.to_summary() for order in orders]

    def get_detail(self, order_id: UUID) -> OrderDetail:
        """
        Header, membership lines and ledger for one active order.

        Raises:
            PaymentOrderNotFoundError: Unknown or soft-deleted order.
        """
        order = self.session.execute(
            select(PaymentOrder)
            .where(PaymentOrder.id == order_id, PaymentOrder.record_status == _ACTIVE)
            .options(
                selectinload(PaymentOrder.invoices)
                .selectinload(PaymentOrderInvoice.invoice)
                .selectinload(InvoiceRecord.payee),
                selectinload(PaymentOrder.approvals)
                .selectinload(PaymentOrderApproval.approvers),
            )
        ).scalar_one_or_none()

        if order is None:
            raise PaymentOrderNotFoundError(order_id)

        lines = tuple(
            MembershipLine(
                invoice_id=link.invoice_id,
                payee_id=link.invoice.payee_id,
                payee_name=link.invoice.payee.business_name,
                liquidation_code=link.liquidation_code,
                production_code=link.invoice.production_code,
                description=link.invoice.description,
                document_series=link.invoice.document_series,
                document_number=link.invoice.document_number,
                subtotal=money(link.invoice.subtotal),
                tax=money(link.invoice.tax),
                total=money(link.invoice.total),
            )
            for link in order.active_invoices
        )
        ledger = tuple(row.to_dto() for row in order.active_approvals)

        return OrderDetail(
            summary=order.to_summary(),
            totals=order.to_totals(),
            lines=lines,
            ledger=ledger,
            comments=order.comments,
        )

    def get_by_number(self, order_number: str) -> OrderSummary | None:
        order = self.session.execute(
            select(PaymentOrder).where(
                PaymentOrder.order_number == order_number,
                PaymentOrder.record_status == _ACTIVE,
            )
        ).scalar_one_or_none()
        return order.to_summary() if order is not None else None

    def list_orders(
        self,
        site_id: int | None = None,
        bank_id: int | None = None,
        status: OrderStatus | None = None,
        generated_from: datetime | None = None,
        generated_to: datetime | None = None,
    ) -> list[OrderSummary]:
        """Active orders matching every given filter, newest first."""
        criteria = OrderFilter(
            site_id=site_id,
            bank_id=bank_id,
            status=status,
            generated_from=generated_from,
            generated_to=generated_to,
        )
        stmt = (
            select(PaymentOrder)
            .where(*criteria.clauses())
            .order_by(PaymentOrder.generated_at.desc(), PaymentOrder.order_number.desc())
        )
        return [order.to_summary() for order in self.session.execute(stmt).scalars()]

    def compute_totals(self, order_id: UUID) -> OrderTotals:
        """Recompute totals from the order's active membership links."""
        row = self.session.execute(
            select(
                func.sum(func.coalesce(InvoiceRecord.consumption, ZERO)).label("consumption"),
                func.sum(func.coalesce(InvoiceRecord.discount, ZERO)).label("discount"),
                func.sum(func.coalesce(InvoiceRecord.subtotal, ZERO)).label("subtotal"),
                func.sum(func.coalesce(InvoiceRecord.withholding, ZERO)).label("withholding"),
                func.sum(func.coalesce(InvoiceRecord.tax, ZERO)).label("tax"),
                func.sum(func.coalesce(InvoiceRecord.total, ZERO)).label("total"),
                func.count(PaymentOrderInvoice.id).label("invoice_count"),
                func.count(func.distinct(PaymentOrderInvoice.liquidation_code)).label(
                    "liquidation_count"
                ),
            )
            .select_from(PaymentOrderInvoice)
            .join(InvoiceRecord, InvoiceRecord.id == PaymentOrderInvoice.invoice_id)
            .where(
                PaymentOrderInvoice.order_id == order_id,
                PaymentOrderInvoice.record_status == _ACTIVE,
            )
        ).one()

        return OrderTotals(
            consumption=money(row.consumption),
            discount=money(row.discount),
            subtotal=money(row.subtotal),
            withholding=money(row.withholding),
            tax=money(row.tax),
            total=money(row.total),
            invoice_count=row.invoice_count,
            liquidation_count=row.liquidation_count,
        )

    def verify_totals(self, order_id: UUID) -> bool:
        """True when the stored header totals match the linked invoices."""
        order = self.session.get(PaymentOrder, order_id)
        if order is None or not order.is_active:
            raise PaymentOrderNotFoundError(order_id)

        stored = order.to_totals()
        computed = self.compute_totals(order_id)
        matches = stored == computed
        if not matches:
            logger.warning(
                "payment_order_totals_mismatch",
                extra={
                    "order_id": str(order_id),
                    "stored_total": stored.total,
                    "computed_total": computed.total,
                    "stored_count": stored.invoice_count,
                    "computed_count": computed.invoice_count,
                },
            )
        return matches
