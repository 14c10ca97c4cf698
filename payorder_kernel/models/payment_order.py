"""
Module: payorder_kernel.models.payment_order
Responsibility: ORM persistence for the payment order aggregate: the
    header, its invoice membership links, the materialized approval ledger
    and the approver snapshot of each ledger row.

Architecture position: Kernel > Models.  May import from db/, domain/ and
    exceptions.py.

Invariants enforced:
    - One active order per (site, bank, liquidation_code): partial unique
      index over active headers.
    - An invoice is bound to at most one active membership link: partial
      unique index over active links.
    - One ledger row per (order, position).
    - Decided ledger rows (approved/rejected) are immutable: ORM
      before_update / before_delete listeners raise
      ImmutabilityViolationError.  Only the lifecycle flag and audit
      columns may still change, so cancellation can soft-delete them.
    - Terminal headers (approved/rejected) reject changes to business
      columns the same way.
    - The header carries a version counter (version_id_col); a flush
      against a stale version raises StaleDataError.

Failure modes:
    - IntegrityError on a duplicate active order or a re-linked invoice.
    - ImmutabilityViolationError on mutation of decided rows.
    - StaleDataError when a concurrent transaction already bumped the
      header version.

Audit relevance:
    The ledger is the decision trail: who decided each step, when, and
    with what comment.  The approver snapshot records who was allowed to.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    event,
    text,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm.attributes import get_history

from payorder_kernel.db.base import TrackedBase, UUIDString
from payorder_kernel.db.types import ZERO
from payorder_kernel.domain.payment_order import (
    DECIDED_STEP_STATUSES,
    TERMINAL_ORDER_STATUSES,
    LedgerEntry,
    OrderStatus,
    OrderSummary,
    OrderTotals,
    StepStatus,
)
from payorder_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from payorder_kernel.models.ledger import InvoiceRecord

_ACTIVE = text("record_status = 'active'")

# Columns that may change on a frozen row: lifecycle flag and audit metadata
_FROZEN_ROW_MUTABLE_FIELDS = frozenset({
    "record_status",
    "updated_at",
    "updated_by_id",
    "version",
    "comments",
})


class PaymentOrder(TrackedBase):
    """
    Payment order header.

    Contract:
        Created once by the batch builder; afterwards only the approval
        engine changes status and current_position, and cancellation flips
        record_status.

    Guarantees:
        - Totals equal the sums over active membership links at creation.
        - current_position is NULL exactly when the order is terminal.
    """

    __tablename__ = "payment_orders"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'partially_approved', 'approved', 'rejected')",
            name="ck_payment_orders_valid_status",
        ),
        Index(
            "uq_payment_orders_active_liquidation",
            "site_id", "bank_id", "liquidation_code",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        Index("ix_payment_orders_status", "record_status", "status"),
    )

    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), nullable=False)
    bank_id: Mapped[int] = mapped_column(ForeignKey("banks.id"), nullable=False)
    liquidation_code: Mapped[str] = mapped_column(String(50), nullable=False)
    order_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    generated_at: Mapped[datetime] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=OrderStatus.PENDING.value,
    )
    workflow_group: Mapped[str] = mapped_column(String(50), nullable=False)
    current_position: Mapped[int | None] = mapped_column(nullable=True)

    consumption: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    discount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    withholding: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    tax: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    invoice_count: Mapped[int] = mapped_column(nullable=False, default=0)
    liquidation_count: Mapped[int] = mapped_column(nullable=False, default=0)

    comments: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    invoices: Mapped[list[PaymentOrderInvoice]] = relationship(
        "PaymentOrderInvoice",
        back_populates="order",
        order_by="PaymentOrderInvoice.invoice_id",
    )
    approvals: Mapped[list[PaymentOrderApproval]] = relationship(
        "PaymentOrderApproval",
        back_populates="order",
        order_by="PaymentOrderApproval.position",
    )

    @property
    def status_enum(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_ORDER_STATUSES

    @property
    def active_invoices(self) -> list[PaymentOrderInvoice]:
        return [link for link in self.invoices if link.is_active]

    @property
    def active_approvals(self) -> list[PaymentOrderApproval]:
        return [row for row in self.approvals if row.is_active]

    def __repr__(self) -> str:
        return f"<PaymentOrder {self.order_number} status={self.status}>"

    def to_summary(self) -> OrderSummary:
        return OrderSummary(
            order_id=self.id,
            order_number=self.order_number,
            site_id=self.site_id,
            bank_id=self.bank_id,
            liquidation_code=self.liquidation_code,
            status=self.status_enum,
            workflow_group=self.workflow_group,
            current_position=self.current_position,
            total=self.total,
            invoice_count=self.invoice_count,
            generated_at=self.generated_at,
        )

    def to_totals(self) -> OrderTotals:
        return OrderTotals(
            consumption=self.consumption,
            discount=self.discount,
            subtotal=self.subtotal,
            withholding=self.withholding,
            tax=self.tax,
            total=self.total,
            invoice_count=self.invoice_count,
            liquidation_count=self.liquidation_count,
        )

    def apply_totals(self, totals: OrderTotals) -> None:
        self.consumption = totals.consumption
        self.discount = totals.discount
        self.subtotal = totals.subtotal
        self.withholding = totals.withholding
        self.tax = totals.tax
        self.total = totals.total
        self.invoice_count = totals.invoice_count
        self.liquidation_count = totals.liquidation_count


class PaymentOrderInvoice(TrackedBase):
    """Membership link binding one invoice into one order."""

    __tablename__ = "payment_order_invoices"

    __table_args__ = (
        Index(
            "uq_payment_order_invoices_active_invoice",
            "invoice_id",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        Index("ix_payment_order_invoices_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_orders.id"), nullable=False,
    )
    invoice_id: Mapped[int] = mapped_column(
        ForeignKey("invoice_records.id"), nullable=False,
    )
    liquidation_code: Mapped[str] = mapped_column(String(50), nullable=False)

    order: Mapped[PaymentOrder] = relationship("PaymentOrder", back_populates="invoices")
    invoice: Mapped[InvoiceRecord] = relationship("InvoiceRecord")

    def __repr__(self) -> str:
        return f"<PaymentOrderInvoice order={self.order_id} invoice={self.invoice_id}>"


class PaymentOrderApproval(TrackedBase):
    """
    One materialized chain step of an order.

    Contract:
        Created NOT_STARTED (or PENDING for position 1).  Decided exactly
        once; frozen afterwards.
    """

    __tablename__ = "payment_order_approvals"

    __table_args__ = (
        UniqueConstraint("order_id", "position", name="uq_payment_order_approvals_position"),
        CheckConstraint(
            "status IN ('not_started', 'pending', 'approved', 'rejected')",
            name="ck_payment_order_approvals_valid_status",
        ),
        Index("ix_payment_order_approvals_pending", "status", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_orders.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(nullable=False)

    # Profile snapshot at creation time
    profile_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    profile_code: Mapped[str] = mapped_column(String(50), nullable=False)
    profile_description: Mapped[str] = mapped_column(String(200), nullable=False)
    level: Mapped[int] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=StepStatus.NOT_STARTED.value,
    )
    decided_by_id: Mapped[int | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    comment: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    order: Mapped[PaymentOrder] = relationship("PaymentOrder", back_populates="approvals")
    approvers: Mapped[list[PaymentOrderApprover]] = relationship(
        "PaymentOrderApprover",
        back_populates="approval",
        order_by="PaymentOrderApprover.user_id",
    )

    @property
    def status_enum(self) -> StepStatus:
        return StepStatus(self.status)

    @property
    def approver_ids(self) -> frozenset[int]:
        return frozenset(a.user_id for a in self.approvers if a.is_active)

    def __repr__(self) -> str:
        return (
            f"<PaymentOrderApproval order={self.order_id} "
            f"position={self.position} status={self.status}>"
        )

    def to_dto(self) -> LedgerEntry:
        return LedgerEntry(
            position=self.position,
            profile_code=self.profile_code,
            profile_description=self.profile_description,
            level=self.level,
            sequence=self.sequence,
            status=self.status_enum,
            approver_ids=self.approver_ids,
            decided_by_id=self.decided_by_id,
            decided_at=self.decided_at,
            comment=self.comment,
        )


class PaymentOrderApprover(TrackedBase):
    """A user allowed to decide one ledger row, frozen at order creation."""

    __tablename__ = "payment_order_approvers"

    __table_args__ = (
        UniqueConstraint("approval_id", "user_id", name="uq_payment_order_approvers_user"),
        Index("ix_payment_order_approvers_user", "user_id", "record_status"),
    )

    approval_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payment_order_approvals.id"), nullable=False,
    )
    user_id: Mapped[int] = mapped_column(nullable=False)

    approval: Mapped[PaymentOrderApproval] = relationship(
        "PaymentOrderApproval", back_populates="approvers",
    )


# =============================================================================
# ORM-level immutability for decided steps and terminal orders
# =============================================================================


def _changed_business_fields(target) -> list[str]:
    state = sa_inspect(target)
    changed = []
    for attr in state.mapper.column_attrs:
        if attr.key in _FROZEN_ROW_MUTABLE_FIELDS:
            continue
        if state.attrs[attr.key].history.has_changes():
            changed.append(attr.key)
    return changed


def _previous_status(target) -> str:
    # history.deleted holds the value loaded from the database
    history = get_history(target, "status")
    if history.deleted:
        return history.deleted[0]
    return target.status


@event.listens_for(PaymentOrderApproval, "before_update")
def _check_decided_step_immutability(mapper, connection, target):
    """Decided ledger rows may only change lifecycle/audit columns."""
    if StepStatus(_previous_status(target)) not in DECIDED_STEP_STATUSES:
        return
    changed = _changed_business_fields(target)
    if changed:
        raise ImmutabilityViolationError(
            entity_type="PaymentOrderApproval",
            entity_id=str(target.id),
            reason=f"step {target.position} is already decided; "
                   f"cannot change {', '.join(sorted(changed))}",
        )


@event.listens_for(PaymentOrderApproval, "before_delete")
def _prevent_decided_step_delete(mapper, connection, target):
    if StepStatus(_previous_status(target)) in DECIDED_STEP_STATUSES:
        raise ImmutabilityViolationError(
            entity_type="PaymentOrderApproval",
            entity_id=str(target.id),
            reason="decided approval steps cannot be deleted",
        )


@event.listens_for(PaymentOrder, "before_update")
def _check_terminal_order_immutability(mapper, connection, target):
    """Approved/rejected headers may only change lifecycle/audit columns."""
    if OrderStatus(_previous_status(target)) not in TERMINAL_ORDER_STATUSES:
        return
    changed = _changed_business_fields(target)
    if changed:
        raise ImmutabilityViolationError(
            entity_type="PaymentOrder",
            entity_id=str(target.id),
            reason=f"order is {_previous_status(target)}; "
                   f"cannot change {', '.join(sorted(changed))}",
        )
