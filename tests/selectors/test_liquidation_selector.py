"""
Tests for LiquidationSelector: batchable groups and their candidate invoices.

Covers:
- Grouping by (site, liquidation code, bank) with summed totals
- Primary-account bank resolution (lowest-id active account)
- Candidate filtering: status, site, liquidation code presence, lifecycle
- unbatched_only hides invoices bound to an active order
- NULL amounts read as zero
"""

from decimal import Decimal

from payorder_kernel.domain.payment_order import InvoiceStatus
from payorder_kernel.selectors.liquidation_selector import LiquidationSelector

from tests.conftest import TEST_ACTOR_ID, seed_two_level_chain


def _groups(uow_factory, site_id, bank_id=None, unbatched_only=False):
    with uow_factory() as uow:
        return LiquidationSelector(uow.session).list_groups(
            site_id, bank_id, unbatched_only=unbatched_only,
        )


def _members(uow_factory, code, site_id, bank_id=None):
    with uow_factory() as uow:
        return LiquidationSelector(uow.session).list_members(code, site_id, bank_id)


class TestListGroups:
    def test_single_group_totals(self, uow_factory, liquidation):
        groups = _groups(uow_factory, site_id=10)

        assert len(groups) == 1
        group = groups[0]
        assert group.liquidation_code == "L-001"
        assert group.bank_id == 5
        assert group.bank_name == "Bank 5"
        assert group.total_amount == Decimal("900.00")
        assert group.invoice_count == 3
        assert group.liquidation_number == "N-L-001"

    def test_newest_code_first(self, uow_factory, ledger, liquidation):
        payee = ledger.payee(bank_id=5)
        ledger.invoice(10, payee, "L-002", "50.00")

        codes = [g.liquidation_code for g in _groups(uow_factory, site_id=10)]

        assert codes == ["L-002", "L-001"]

    def test_split_by_primary_bank(self, uow_factory, ledger, liquidation):
        ledger.bank(7)
        payee = ledger.payee(bank_id=7)
        ledger.invoice(10, payee, "L-001", "120.00")

        groups = _groups(uow_factory, site_id=10)

        assert [(g.bank_id, g.total_amount) for g in groups] == [
            (5, Decimal("900.00")),
            (7, Decimal("120.00")),
        ]

    def test_bank_filter(self, uow_factory, ledger, liquidation):
        ledger.bank(7)
        payee = ledger.payee(bank_id=7)
        ledger.invoice(10, payee, "L-001", "120.00")

        groups = _groups(uow_factory, site_id=10, bank_id=7)

        assert [g.bank_id for g in groups] == [7]
        assert groups[0].invoice_count == 1

    def test_other_sites_excluded(self, uow_factory, ledger, liquidation):
        ledger.site(11)
        payee = ledger.payee(bank_id=5)
        ledger.invoice(11, payee, "L-001", "70.00")

        assert _groups(uow_factory, site_id=10)[0].invoice_count == 3
        assert _groups(uow_factory, site_id=11)[0].total_amount == Decimal("70.00")

    def test_non_liquidated_invoices_excluded(self, uow_factory, ledger, liquidation):
        payee = ledger.payee(bank_id=5)
        ledger.invoice(10, payee, "L-001", "999.00", status=InvoiceStatus.SENT)
        ledger.invoice(10, payee, "L-001", "999.00", status=InvoiceStatus.PAID)

        assert _groups(uow_factory, site_id=10)[0].total_amount == Decimal("900.00")

    def test_invoices_without_code_excluded(self, uow_factory, ledger, liquidation):
        payee = ledger.payee(bank_id=5)
        ledger.invoice(10, payee, None, "999.00")

        assert [g.liquidation_code for g in _groups(uow_factory, site_id=10)] == ["L-001"]

    def test_soft_deleted_invoices_excluded(self, uow_factory, ledger, session, liquidation):
        payee = ledger.payee(bank_id=5)
        extra = ledger.invoice(10, payee, "L-001", "999.00")
        extra.soft_delete(TEST_ACTOR_ID)
        session.commit()

        assert _groups(uow_factory, site_id=10)[0].invoice_count == 3

    def test_payee_without_active_account_excluded(self, uow_factory, ledger, liquidation):
        payee = ledger.payee()
        ledger.account(payee, 5, active=False)
        ledger.invoice(10, payee, "L-001", "999.00")

        assert _groups(uow_factory, site_id=10)[0].invoice_count == 3

    def test_unbatched_only_hides_linked_invoices(
        self, uow_factory, ledger, liquidation, create_order,
    ):
        seed_two_level_chain(ledger, 10)
        create_order(liquidation)

        assert _groups(uow_factory, site_id=10, unbatched_only=True) == []
        assert _groups(uow_factory, site_id=10)[0].invoice_count == 3

    def test_no_candidates(self, uow_factory, ledger):
        ledger.site(10)

        assert _groups(uow_factory, site_id=10) == []


class TestListMembers:
    def test_members_ordered_by_invoice_id(self, uow_factory, liquidation):
        members = _members(uow_factory, "L-001", 10, 5)

        assert [m.invoice_id for m in members] == sorted(liquidation.invoice_ids)
        assert all(m.bank_id == 5 for m in members)
        assert all(m.total == Decimal("300.00") for m in members)

    def test_primary_account_is_lowest_active_id(self, uow_factory, ledger):
        ledger.site(10)
        ledger.bank(5)
        ledger.bank(7)
        payee = ledger.payee()
        ledger.account(payee, 7, active=False)
        ledger.account(payee, 5)
        ledger.account(payee, 7)
        ledger.invoice(10, payee, "L-001", "10.00")

        members = _members(uow_factory, "L-001", 10)

        assert [m.bank_id for m in members] == [5]
        assert _members(uow_factory, "L-001", 10, bank_id=7) == []

    def test_null_amounts_read_as_zero(self, uow_factory, ledger):
        ledger.site(10)
        ledger.bank(5)
        payee = ledger.payee(bank_id=5)
        ledger.invoice(10, payee, "L-001", None, discount=None, tax=None)

        (member,) = _members(uow_factory, "L-001", 10, 5)

        assert member.total == Decimal("0")
        assert member.tax == Decimal("0")
        assert member.payee_name == payee.business_name


class TestPrimaryAccount:
    def test_returns_first_active_account(self, uow_factory, ledger):
        ledger.bank(5)
        ledger.bank(7)
        payee = ledger.payee()
        ledger.account(payee, 7, active=False)
        expected = ledger.account(payee, 5)
        ledger.account(payee, 7)

        with uow_factory() as uow:
            account = LiquidationSelector(uow.session).get_primary_account(payee.id)

        assert account.account_id == expected.id
        assert account.bank_id == 5
        assert account.currency == "PEN"

    def test_none_without_active_account(self, uow_factory, ledger):
        payee = ledger.payee()

        with uow_factory() as uow:
            assert LiquidationSelector(uow.session).get_primary_account(payee.id) is None
