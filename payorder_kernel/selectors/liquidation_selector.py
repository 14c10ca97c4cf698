"""
Module: payorder_kernel.selectors.liquidation_selector
Responsibility: Read-only view of liquidated invoices grouped into batchable
    (site, liquidation code, bank) groups, and of the concrete candidate
    invoices inside one group.
Architecture position: Kernel > Selectors.  Read by the batch builder and by
    the presentation facade.

Invariants enforced:
    - Only active invoices in the ``liquidated`` status with a liquidation
      code are candidates.
    - An invoice belongs to the bank of its payee's primary account, the
      lowest-id active account.  Payees without an active account are
      excluded.
    - Optional filters are composed as SQLAlchemy predicates from a typed
      LiquidationFilter.  No SQL text is ever concatenated.

Failure modes:
    - None beyond driver errors: empty results are returned as empty lists.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import ColumnElement, and_, exists, func, select
from sqlalchemy.orm import aliased

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.db.types import ZERO, money
from payorder_kernel.domain.payment_order import (
    InvoiceStatus,
    LiquidationGroup,
    LiquidationMember,
    PayeeAccount,
)
from payorder_kernel.logging_config import get_logger
from payorder_kernel.models.ledger import Bank, InvoiceRecord, Payee, PayeeBankAccount
from payorder_kernel.models.payment_order import PaymentOrderInvoice
from payorder_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.liquidation")

_ACTIVE = RecordStatus.ACTIVE.value

# Primary account of each invoice's payee
_PrimaryAccount = aliased(PayeeBankAccount, name="primary_account")


def _primary_account_id():
    return (
        select(func.min(PayeeBankAccount.id))
        .where(
            PayeeBankAccount.payee_id == InvoiceRecord.payee_id,
            PayeeBankAccount.record_status == _ACTIVE,
        )
        .correlate(InvoiceRecord)
        .scalar_subquery()
    )


@dataclass(frozen=True)
class LiquidationFilter:
    """Typed filter over candidate invoices."""

    site_id: int
    bank_id: int | None = None
    liquidation_code: str | None = None
    unbatched_only: bool = False

    def clauses(self) -> list[ColumnElement[bool]]:
        predicates: list[ColumnElement[bool]] = [
            InvoiceRecord.record_status == _ACTIVE,
            InvoiceRecord.status == InvoiceStatus.LIQUIDATED.value,
            InvoiceRecord.liquidation_code.is_not(None),
            InvoiceRecord.site_id == self.site_id,
        ]
        if self.bank_id is not None:
            predicates.append(_PrimaryAccount.bank_id == self.bank_id)
        if self.liquidation_code is not None:
            predicates.append(InvoiceRecord.liquidation_code == self.liquidation_code)
        if self.unbatched_only:
            predicates.append(
                ~exists().where(
                    PaymentOrderInvoice.invoice_id == InvoiceRecord.id,
                    PaymentOrderInvoice.record_status == _ACTIVE,
                )
            )
        return predicates


class LiquidationSelector(BaseSelector[InvoiceRecord]):
    """
    Query liquidation groups and their member invoices.

    Contract:
        Read-only.  ``list_members(..., for_update=True)`` additionally locks
        the invoice rows where the dialect supports row locks.
    """

    def list_groups(
        self,
        site_id: int,
        bank_id: int | None = None,
        unbatched_only: bool = False,
    ) -> list[LiquidationGroup]:
        """
        Batchable groups for a site, newest liquidation code first.

        Args:
            site_id: Site whose liquidations are listed.
            bank_id: Restrict to payees whose primary account is at this bank.
            unbatched_only: Hide invoices already bound to an active order.
        """
        criteria = LiquidationFilter(
            site_id=site_id, bank_id=bank_id, unbatched_only=unbatched_only,
        )
        stmt = (
            select(
                InvoiceRecord.site_id,
                InvoiceRecord.liquidation_code,
                Bank.id.label("bank_id"),
                Bank.name.label("bank_name"),
                func.max(InvoiceRecord.liquidation_number).label("liquidation_number"),
                func.max(InvoiceRecord.liquidation_description).label("liquidation_description"),
                func.max(InvoiceRecord.liquidation_period).label("liquidation_period"),
                func.sum(func.coalesce(InvoiceRecord.total, ZERO)).label("total_amount"),
                func.count(InvoiceRecord.id).label("invoice_count"),
            )
            .select_from(InvoiceRecord)
            .join(_PrimaryAccount, _PrimaryAccount.id == _primary_account_id())
            .join(Bank, Bank.id == _PrimaryAccount.bank_id)
            .where(and_(*criteria.clauses()))
            .group_by(
                InvoiceRecord.site_id,
                InvoiceRecord.liquidation_code,
                Bank.id,
                Bank.name,
            )
            .order_by(InvoiceRecord.liquidation_code.desc(), Bank.id)
        )

        groups = [
            LiquidationGroup(
                site_id=row.site_id,
                liquidation_code=row.liquidation_code,
                bank_id=row.bank_id,
                bank_name=row.bank_name,
                liquidation_number=row.liquidation_number,
                liquidation_description=row.liquidation_description,
                liquidation_period=row.liquidation_period,
                total_amount=money(row.total_amount),
                invoice_count=row.invoice_count,
            )
            for row in self.session.execute(stmt)
        ]
        logger.debug(
            "liquidation_groups_listed",
            extra={"site_id": site_id, "bank_id": bank_id, "group_count": len(groups)},
        )
        return groups

    def list_members(
        self,
        liquidation_code: str,
        site_id: int,
        bank_id: int | None = None,
        for_update: bool = False,
    ) -> list[LiquidationMember]:
        """Candidate invoices of one group ordered by invoice id."""
        criteria = LiquidationFilter(
            site_id=site_id, bank_id=bank_id, liquidation_code=liquidation_code,
        )
        stmt = (
            select(
                InvoiceRecord,
                _PrimaryAccount.bank_id,
                _PrimaryAccount.account_number,
                Payee.business_name,
                Payee.tax_id,
            )
            .select_from(InvoiceRecord)
            .join(Payee, Payee.id == InvoiceRecord.payee_id)
            .join(_PrimaryAccount, _PrimaryAccount.id == _primary_account_id())
            .where(and_(*criteria.clauses()))
            .order_by(InvoiceRecord.id)
        )
        if for_update:
            stmt = stmt.with_for_update(of=InvoiceRecord)

        return [
            _to_member(invoice, bank, account_number, payee_name, tax_id)
            for invoice, bank, account_number, payee_name, tax_id
            in self.session.execute(stmt)
        ]

    def get_primary_account(self, payee_id: int) -> PayeeAccount | None:
        account = self.session.execute(
            select(PayeeBankAccount)
            .where(
                PayeeBankAccount.payee_id == payee_id,
                PayeeBankAccount.record_status == _ACTIVE,
            )
            .order_by(PayeeBankAccount.id)
            .limit(1)
        ).scalar_one_or_none()

        if account is None:
            return None
        return PayeeAccount(
            account_id=account.id,
            payee_id=account.payee_id,
            bank_id=account.bank_id,
            account_number=account.account_number,
            interbank_code=account.interbank_code,
            currency=account.currency,
        )


def _to_member(
    invoice: InvoiceRecord,
    bank_id: int,
    account_number: str,
    payee_name: str,
    tax_id: str,
) -> LiquidationMember:
    return LiquidationMember(
        invoice_id=invoice.id,
        site_id=invoice.site_id,
        payee_id=invoice.payee_id,
        payee_name=payee_name,
        payee_tax_id=tax_id,
        bank_id=bank_id,
        account_number=account_number,
        liquidation_code=invoice.liquidation_code,
        liquidation_number=invoice.liquidation_number,
        liquidation_period=invoice.liquidation_period,
        production_code=invoice.production_code,
        description=invoice.description,
        period=invoice.period,
        document_series=invoice.document_series,
        document_number=invoice.document_number,
        issue_date=invoice.issue_date,
        consumption=money(invoice.consumption),
        discount=money(invoice.discount),
        subtotal=money(invoice.subtotal),
        withholding=money(invoice.withholding),
        tax=money(invoice.tax),
        total=money(invoice.total),
    )
