"""
Tests for PaymentOrderSelector: the per-user inbox, order detail, listing
and totals verification.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from payorder_kernel.domain.payment_order import OrderStatus, StepStatus
from payorder_kernel.exceptions import PaymentOrderNotFoundError
from payorder_kernel.models import InvoiceRecord
from payorder_kernel.selectors.payment_order_selector import PaymentOrderSelector

from tests.conftest import MANAGER_ID, OUTSIDER_ID, TREASURER_ID, seed_liquidation


def _inbox(uow_factory, user_id):
    with uow_factory() as uow:
        return PaymentOrderSelector(uow.session).get_pending_for_user(user_id)


def _detail(uow_factory, order_id):
    with uow_factory() as uow:
        return PaymentOrderSelector(uow.session).get_detail(order_id)


class TestInbox:
    def test_order_visible_only_to_current_step(self, uow_factory, approval_scenario, create_order):
        created = create_order(approval_scenario)

        assert [o.order_id for o in _inbox(uow_factory, TREASURER_ID)] == [created.order_id]
        assert _inbox(uow_factory, MANAGER_ID) == []
        assert _inbox(uow_factory, OUTSIDER_ID) == []

    def test_order_moves_with_the_chain(self, uow_factory, approval_scenario, create_order, decide):
        created = create_order(approval_scenario)

        decide(created.order_id, TREASURER_ID)

        assert _inbox(uow_factory, TREASURER_ID) == []
        (summary,) = _inbox(uow_factory, MANAGER_ID)
        assert summary.status == OrderStatus.PARTIALLY_APPROVED
        assert summary.current_position == 2

    def test_terminal_orders_leave_every_inbox(
        self, uow_factory, approval_scenario, create_order, decide,
    ):
        created = create_order(approval_scenario)
        decide(created.order_id, TREASURER_ID)
        decide(created.order_id, MANAGER_ID)

        assert _inbox(uow_factory, TREASURER_ID) == []
        assert _inbox(uow_factory, MANAGER_ID) == []

    def test_rejected_order_leaves_inbox(self, uow_factory, approval_scenario, create_order, decide):
        created = create_order(approval_scenario)

        decide(created.order_id, TREASURER_ID, reject_comment="Missing support")

        assert _inbox(uow_factory, TREASURER_ID) == []
        assert _inbox(uow_factory, MANAGER_ID) == []

    def test_oldest_first(
        self, uow_factory, ledger, approval_scenario, create_order, deterministic_clock,
    ):
        first = create_order(approval_scenario)
        deterministic_clock.advance(3600)
        second_group = seed_liquidation(ledger, site_id=10, bank_id=6, liquidation_code="L-002")
        second = create_order(second_group)

        inbox = _inbox(uow_factory, TREASURER_ID)

        assert [o.order_id for o in inbox] == [first.order_id, second.order_id]


class TestDetail:
    def test_detail_of_new_order(self, uow_factory, approval_scenario, create_order):
        created = create_order(approval_scenario)

        detail = _detail(uow_factory, created.order_id)

        assert detail.summary.order_number == created.order_number
        assert detail.summary.status == OrderStatus.PENDING
        assert detail.totals.total == Decimal("900.00")
        assert detail.totals.invoice_count == 3
        assert sorted(line.invoice_id for line in detail.lines) == sorted(approval_scenario.invoice_ids)
        assert [e.status for e in detail.ledger] == [StepStatus.PENDING, StepStatus.NOT_STARTED]
        assert [e.profile_code for e in detail.ledger] == ["TREASURER", "MANAGER"]
        assert detail.ledger[0].approver_ids == frozenset({TREASURER_ID})
        assert detail.current_step.position == 1

    def test_detail_records_decision_trail(
        self, uow_factory, approval_scenario, create_order, decide,
    ):
        created = create_order(approval_scenario)
        decide(created.order_id, TREASURER_ID)
        decide(created.order_id, MANAGER_ID, reject_comment="Amounts disputed")

        detail = _detail(uow_factory, created.order_id)

        first, second = detail.ledger
        assert first.status == StepStatus.APPROVED
        assert first.decided_by_id == TREASURER_ID
        assert first.decided_at is not None
        assert second.status == StepStatus.REJECTED
        assert second.decided_by_id == MANAGER_ID
        assert second.comment == "Amounts disputed"
        assert detail.current_step is None

    def test_unknown_order(self, uow_factory, db_engine):
        with pytest.raises(PaymentOrderNotFoundError):
            _detail(uow_factory, uuid4())

    def test_get_by_number(self, uow_factory, approval_scenario, create_order):
        created = create_order(approval_scenario)

        with uow_factory() as uow:
            selector = PaymentOrderSelector(uow.session)
            assert selector.get_by_number(created.order_number).order_id == created.order_id
            assert selector.get_by_number("OP-999-999-999999") is None


class TestListOrders:
    def test_filter_by_status(self, uow_factory, ledger, approval_scenario, create_order, decide):
        first = create_order(approval_scenario)
        second = create_order(
            seed_liquidation(ledger, site_id=10, bank_id=6, liquidation_code="L-002")
        )
        decide(first.order_id, TREASURER_ID)

        with uow_factory() as uow:
            selector = PaymentOrderSelector(uow.session)
            pending = selector.list_orders(site_id=10, status=OrderStatus.PENDING)
            partial = selector.list_orders(site_id=10, status=OrderStatus.PARTIALLY_APPROVED)
            by_bank = selector.list_orders(bank_id=6)

        assert [o.order_id for o in pending] == [second.order_id]
        assert [o.order_id for o in partial] == [first.order_id]
        assert [o.order_id for o in by_bank] == [second.order_id]

    def test_filter_by_generation_range(
        self, uow_factory, ledger, approval_scenario, create_order, deterministic_clock,
    ):
        start = deterministic_clock.now()
        first = create_order(approval_scenario)
        deterministic_clock.advance(86400)
        second = create_order(
            seed_liquidation(ledger, site_id=10, bank_id=6, liquidation_code="L-002")
        )

        with uow_factory() as uow:
            selector = PaymentOrderSelector(uow.session)
            upto_start = selector.list_orders(generated_to=start)
            after_start = selector.list_orders(generated_from=start + timedelta(hours=1))
            both_days = selector.list_orders(
                generated_from=start, generated_to=start + timedelta(days=1),
            )

        assert [o.order_id for o in upto_start] == [first.order_id]
        assert [o.order_id for o in after_start] == [second.order_id]
        assert [o.order_id for o in both_days] == [second.order_id, first.order_id]


class TestVerifyTotals:
    def test_totals_match_after_creation(self, uow_factory, approval_scenario, create_order):
        created = create_order(approval_scenario)

        with uow_factory() as uow:
            selector = PaymentOrderSelector(uow.session)
            assert selector.verify_totals(created.order_id)
            assert selector.compute_totals(created.order_id) == created.totals

    def test_upstream_drift_detected(
        self, uow_factory, approval_scenario, create_order, captured_logs,
    ):
        created = create_order(approval_scenario)
        with uow_factory() as uow:
            uow.session.execute(
                update(InvoiceRecord)
                .where(InvoiceRecord.id == approval_scenario.invoice_ids[0])
                .values(total=Decimal("1.00"))
            )

        with uow_factory() as uow:
            assert not PaymentOrderSelector(uow.session).verify_totals(created.order_id)

        assert any(r["message"] == "payment_order_totals_mismatch" for r in captured_logs())
