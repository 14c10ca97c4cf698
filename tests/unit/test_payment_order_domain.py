"""
Unit tests for payment order domain value objects.

Pure tests, no database: totals aggregation, the order state machine,
chain staffing checks and the detail/outcome helpers.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from payorder_kernel.domain.payment_order import (
    ORDER_TRANSITIONS,
    TERMINAL_ORDER_STATUSES,
    ApprovalChain,
    ChainStep,
    Decision,
    DecisionOutcome,
    LedgerEntry,
    LiquidationMember,
    OrderDetail,
    OrderStatus,
    OrderSummary,
    OrderTotals,
    StepStatus,
    can_transition,
)


def _member(invoice_id: int, total: str, code: str = "L-001", **amounts) -> LiquidationMember:
    return LiquidationMember(
        invoice_id=invoice_id,
        site_id=10,
        payee_id=invoice_id,
        payee_name=f"Payee {invoice_id}",
        payee_tax_id="20600000001",
        bank_id=5,
        account_number="191-000001-05",
        liquidation_code=code,
        liquidation_number=None,
        liquidation_period=None,
        production_code=None,
        description=None,
        period=None,
        document_series=None,
        document_number=None,
        issue_date=None,
        total=Decimal(total),
        **amounts,
    )


def _step(code: str, level: int, approvers=()) -> ChainStep:
    return ChainStep(
        profile_id=uuid4(),
        profile_code=code,
        description=code.title(),
        level=level,
        sequence=1,
        approver_ids=frozenset(approvers),
    )


class TestOrderTotals:
    def test_sums_three_invoices(self):
        totals = OrderTotals.from_members([
            _member(1, "300.00"), _member(2, "300.00"), _member(3, "300.00"),
        ])

        assert totals.total == Decimal("900.00")
        assert totals.invoice_count == 3
        assert totals.liquidation_count == 1

    def test_sums_every_monetary_component(self):
        totals = OrderTotals.from_members([
            _member(1, "118.00", subtotal=Decimal("100.00"), tax=Decimal("18.00")),
            _member(2, "59.00", subtotal=Decimal("50.00"), tax=Decimal("9.00"),
                    withholding=Decimal("4.00")),
        ])

        assert totals.subtotal == Decimal("150.00")
        assert totals.tax == Decimal("27.00")
        assert totals.withholding == Decimal("4.00")
        assert totals.consumption == Decimal("0")
        assert totals.total == Decimal("177.00")

    def test_empty_member_set_is_zero(self):
        totals = OrderTotals.from_members([])

        assert totals == OrderTotals()
        assert totals.total == Decimal("0")

    def test_liquidation_count_is_distinct_codes(self):
        totals = OrderTotals.from_members([
            _member(1, "1", code="L-001"), _member(2, "1", code="L-001"),
            _member(3, "1", code="L-002"),
        ])

        assert totals.liquidation_count == 2

    @settings(max_examples=50, deadline=None)
    @given(st.lists(
        st.decimals(min_value=0, max_value=10**9, places=2, allow_nan=False, allow_infinity=False),
        max_size=25,
    ))
    def test_total_equals_sum_of_member_totals(self, amounts):
        members = [_member(i, str(a)) for i, a in enumerate(amounts, start=1)]

        totals = OrderTotals.from_members(members)

        assert totals.total == sum(amounts, Decimal("0"))
        assert totals.invoice_count == len(amounts)


class TestOrderStateMachine:
    @pytest.mark.parametrize("terminal", sorted(TERMINAL_ORDER_STATUSES))
    def test_terminal_states_have_no_exits(self, terminal):
        assert ORDER_TRANSITIONS[terminal] == frozenset()
        for target in OrderStatus:
            assert not can_transition(terminal, target)

    def test_pending_can_move_to_every_non_pending_state(self):
        assert can_transition(OrderStatus.PENDING, OrderStatus.PARTIALLY_APPROVED)
        assert can_transition(OrderStatus.PENDING, OrderStatus.APPROVED)
        assert can_transition(OrderStatus.PENDING, OrderStatus.REJECTED)
        assert not can_transition(OrderStatus.PENDING, OrderStatus.PENDING)

    def test_partially_approved_can_advance_again(self):
        assert can_transition(OrderStatus.PARTIALLY_APPROVED, OrderStatus.PARTIALLY_APPROVED)

    def test_nothing_returns_to_pending(self):
        for source in OrderStatus:
            assert not can_transition(source, OrderStatus.PENDING)


class TestApprovalChain:
    def test_empty_chain(self):
        chain = ApprovalChain(workflow_group="payment_order", site_id=10)

        assert chain.is_empty
        assert len(chain) == 0

    def test_unstaffed_steps_are_reported(self):
        chain = ApprovalChain(
            workflow_group="payment_order",
            site_id=10,
            steps=(_step("TREASURER", 1, {501}), _step("MANAGER", 2)),
        )

        assert not chain.is_empty
        assert [s.profile_code for s in chain.unstaffed_steps] == ["MANAGER"]


class TestOrderDetail:
    def _entry(self, position, status):
        return LedgerEntry(
            position=position,
            profile_code=f"P{position}",
            profile_description="",
            level=position,
            sequence=1,
            status=status,
            approver_ids=frozenset({position}),
        )

    def _summary(self):
        return OrderSummary(
            order_id=uuid4(),
            order_number="OP-010-005-000001",
            site_id=10,
            bank_id=5,
            liquidation_code="L-001",
            status=OrderStatus.PARTIALLY_APPROVED,
            workflow_group="payment_order",
            current_position=2,
            total=Decimal("900"),
            invoice_count=3,
            generated_at=datetime(2024, 3, 1, tzinfo=UTC),
        )

    def test_current_step_is_the_pending_entry(self):
        detail = OrderDetail(
            summary=self._summary(),
            totals=OrderTotals(),
            lines=(),
            ledger=(
                self._entry(1, StepStatus.APPROVED),
                self._entry(2, StepStatus.PENDING),
                self._entry(3, StepStatus.NOT_STARTED),
            ),
        )

        assert detail.current_step.position == 2

    def test_no_current_step_once_decided(self):
        detail = OrderDetail(
            summary=self._summary(),
            totals=OrderTotals(),
            lines=(),
            ledger=(self._entry(1, StepStatus.REJECTED),),
        )

        assert detail.current_step is None


class TestDecisionOutcome:
    @pytest.mark.parametrize(
        "status,terminal",
        [
            (OrderStatus.PARTIALLY_APPROVED, False),
            (OrderStatus.APPROVED, True),
            (OrderStatus.REJECTED, True),
        ],
    )
    def test_is_terminal(self, status, terminal):
        outcome = DecisionOutcome(
            order_id=uuid4(),
            order_number="OP-010-005-000001",
            decision=Decision.APPROVE,
            position=1,
            actor_id=501,
            decided_at=datetime(2024, 3, 1, tzinfo=UTC),
            order_status=status,
            next_position=None,
        )

        assert outcome.is_terminal is terminal
