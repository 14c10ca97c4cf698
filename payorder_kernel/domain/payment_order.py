"""
Payment order domain types (``payorder_kernel.domain.payment_order``).

Responsibility
--------------
Pure value objects for batching liquidated invoices into payment orders
and routing them through the sequential approval chain.  Defines the
order and step state machines, the liquidation read models, and the
frozen results handed back to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Order lifecycle: ``ORDER_TRANSITIONS`` defines the only valid status
  changes.  ``approved`` and ``rejected`` have no outgoing edges.
* Step lifecycle: a ledger row moves ``not_started -> pending`` and
  ``pending -> approved | rejected`` exactly once.
* Totals: ``OrderTotals.from_members`` is the single place the six
  monetary sums are computed, so the builder and the verification query
  agree by construction.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

ZERO = Decimal("0")


# =========================================================================
# Lifecycle enums
# =========================================================================


class OrderStatus(str, Enum):
    """Payment order workflow state."""

    PENDING = "pending"
    PARTIALLY_APPROVED = "partially_approved"
    APPROVED = "approved"
    REJECTED = "rejected"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PARTIALLY_APPROVED,
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.PARTIALLY_APPROVED: frozenset({
        OrderStatus.PARTIALLY_APPROVED,
        OrderStatus.APPROVED,
        OrderStatus.REJECTED,
    }),
    OrderStatus.APPROVED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

TERMINAL_ORDER_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.APPROVED,
    OrderStatus.REJECTED,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS[current]


class StepStatus(str, Enum):
    """Approval ledger row state."""

    NOT_STARTED = "not_started"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


DECIDED_STEP_STATUSES: frozenset[StepStatus] = frozenset({
    StepStatus.APPROVED,
    StepStatus.REJECTED,
})


class InvoiceStatus(str, Enum):
    """Upstream invoice lifecycle.  Only LIQUIDATED invoices are batched."""

    REQUESTED = "requested"
    PENDING = "pending"
    SENT = "sent"
    ACCEPTED = "accepted"
    RETURNED = "returned"
    VOIDED = "voided"
    LIQUIDATED = "liquidated"
    PAID = "paid"


class Decision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Liquidation view read models
# =========================================================================


@dataclass(frozen=True)
class LiquidationGroup:
    """One batchable (site, liquidation code, bank) group."""

    site_id: int
    liquidation_code: str
    bank_id: int
    bank_name: str
    liquidation_number: str | None
    liquidation_description: str | None
    liquidation_period: str | None
    total_amount: Decimal
    invoice_count: int


@dataclass(frozen=True)
class LiquidationMember:
    """A candidate invoice of a liquidation group, resolved to its payee's bank."""

    invoice_id: int
    site_id: int
    payee_id: int
    payee_name: str
    payee_tax_id: str
    bank_id: int
    account_number: str
    liquidation_code: str
    liquidation_number: str | None
    liquidation_period: str | None
    production_code: str | None
    description: str | None
    period: str | None
    document_series: str | None
    document_number: str | None
    issue_date: date | None
    consumption: Decimal = ZERO
    discount: Decimal = ZERO
    subtotal: Decimal = ZERO
    withholding: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO


@dataclass(frozen=True)
class PayeeAccount:
    """The primary (lowest-id active) bank account of a payee."""

    account_id: int
    payee_id: int
    bank_id: int
    account_number: str
    interbank_code: str | None
    currency: str


# =========================================================================
# Totals
# =========================================================================


@dataclass(frozen=True)
class OrderTotals:
    """Six monetary sums plus counts over an order's invoices."""

    consumption: Decimal = ZERO
    discount: Decimal = ZERO
    subtotal: Decimal = ZERO
    withholding: Decimal = ZERO
    tax: Decimal = ZERO
    total: Decimal = ZERO
    invoice_count: int = 0
    liquidation_count: int = 0

    @classmethod
    def from_members(cls, members: Iterable[LiquidationMember]) -> OrderTotals:
        members = list(members)
        return cls(
            consumption=sum((m.consumption for m in members), ZERO),
            discount=sum((m.discount for m in members), ZERO),
            subtotal=sum((m.subtotal for m in members), ZERO),
            withholding=sum((m.withholding for m in members), ZERO),
            tax=sum((m.tax for m in members), ZERO),
            total=sum((m.total for m in members), ZERO),
            invoice_count=len(members),
            liquidation_count=len({m.liquidation_code for m in members}),
        )


# =========================================================================
# Approval chain
# =========================================================================


@dataclass(frozen=True)
class ChainStep:
    """One resolved step: a profile plus the users allowed to decide it."""

    profile_id: UUID
    profile_code: str
    description: str
    level: int
    sequence: int
    approver_ids: frozenset[int] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ApprovalChain:
    """Ordered steps for one workflow group and site, ascending by (level, sequence)."""

    workflow_group: str
    site_id: int
    steps: tuple[ChainStep, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def unstaffed_steps(self) -> tuple[ChainStep, ...]:
        """Steps with no user bound for this site."""
        return tuple(s for s in self.steps if not s.approver_ids)

    def __len__(self) -> int:
        return len(self.steps)


# =========================================================================
# Order read models and results
# =========================================================================


@dataclass(frozen=True)
class OrderSummary:
    order_id: UUID
    order_number: str
    site_id: int
    bank_id: int
    liquidation_code: str
    status: OrderStatus
    workflow_group: str
    current_position: int | None
    total: Decimal
    invoice_count: int
    generated_at: datetime


@dataclass(frozen=True)
class MembershipLine:
    invoice_id: int
    payee_id: int
    payee_name: str
    liquidation_code: str
    production_code: str | None
    description: str | None
    document_series: str | None
    document_number: str | None
    subtotal: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class LedgerEntry:
    position: int
    profile_code: str
    profile_description: str
    level: int
    sequence: int
    status: StepStatus
    approver_ids: frozenset[int]
    decided_by_id: int | None = None
    decided_at: datetime | None = None
    comment: str | None = None


@dataclass(frozen=True)
class OrderDetail:
    summary: OrderSummary
    totals: OrderTotals
    lines: tuple[MembershipLine, ...]
    ledger: tuple[LedgerEntry, ...]
    comments: str | None = None

    @property
    def current_step(self) -> LedgerEntry | None:
        for entry in self.ledger:
            if entry.status == StepStatus.PENDING:
                return entry
        return None


@dataclass(frozen=True)
class PaymentOrderCreated:
    """Result of a successful batch build."""

    order_id: UUID
    order_number: str
    site_id: int
    bank_id: int
    liquidation_code: str
    status: OrderStatus
    totals: OrderTotals
    chain_length: int
    invoice_ids: tuple[int, ...]


@dataclass(frozen=True)
class DecisionOutcome:
    """Result of one approve/reject call."""

    order_id: UUID
    order_number: str
    decision: Decision
    position: int
    actor_id: int
    decided_at: datetime
    order_status: OrderStatus
    next_position: int | None

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_ORDER_STATUSES
