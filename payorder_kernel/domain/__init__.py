"""
Pure domain layer.

Value objects and state machines for payment orders, with NO dependencies
on the ORM, the database or I/O.  All domain objects are immutable.
"""

from payorder_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payorder_kernel.domain.payment_order import (
    DECIDED_STEP_STATUSES,
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    ApprovalChain,
    ChainStep,
    Decision,
    DecisionOutcome,
    InvoiceStatus,
    LedgerEntry,
    LiquidationGroup,
    LiquidationMember,
    MembershipLine,
    OrderDetail,
    OrderStatus,
    OrderSummary,
    OrderTotals,
    PayeeAccount,
    PaymentOrderCreated,
    StepStatus,
    can_transition,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "DECIDED_STEP_STATUSES",
    "ORDER_TRANSITIONS",
    "TERMINAL_ORDER_STATUSES",
    "ApprovalChain",
    "ChainStep",
    "Decision",
    "DecisionOutcome",
    "InvoiceStatus",
    "LedgerEntry",
    "LiquidationGroup",
    "LiquidationMember",
    "MembershipLine",
    "OrderDetail",
    "OrderStatus",
    "OrderSummary",
    "OrderTotals",
    "PayeeAccount",
    "PaymentOrderCreated",
    "StepStatus",
    "can_transition",
]
