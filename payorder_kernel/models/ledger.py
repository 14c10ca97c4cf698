"""
Module: payorder_kernel.models.ledger
Responsibility: ORM mappings for the upstream invoice ledger and master
    data this kernel reads: sites, banks, payees (medical entities), payee
    bank accounts and invoice records.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - These tables are owned by external collaborators.  Kernel services
      only read them; nothing in services/ writes to them.
    - Integer surrogate keys: upstream rows are addressed by numeric id,
      unlike kernel-owned rows which use UUIDs.

Audit relevance:
    Invoice amounts are read at batch time and summed into the payment
    order header.  The membership link (payment_order_invoices) is what
    reserves an invoice; its status column is never rewritten here.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payorder_kernel.db.base import TrackedBase
from payorder_kernel.db.types import IdentityKey
from payorder_kernel.domain.payment_order import InvoiceStatus


class Site(TrackedBase):
    """An operating site (clinic) that liquidates invoices."""

    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(IdentityKey, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Site {self.id} {self.code}>"


class Bank(TrackedBase):
    __tablename__ = "banks"

    id: Mapped[int] = mapped_column(IdentityKey, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    def __repr__(self) -> str:
        return f"<Bank {self.id} {self.code}>"


class Payee(TrackedBase):
    """A medical entity receiving honoraria."""

    __tablename__ = "payees"

    id: Mapped[int] = mapped_column(IdentityKey, primary_key=True, autoincrement=True)
    tax_id: Mapped[str] = mapped_column(String(20), nullable=False)
    business_name: Mapped[str] = mapped_column(String(200), nullable=False)

    accounts: Mapped[list[PayeeBankAccount]] = relationship(
        "PayeeBankAccount",
        back_populates="payee",
        order_by="PayeeBankAccount.id",
    )

    def __repr__(self) -> str:
        return f"<Payee {self.id} {self.tax_id}>"


class PayeeBankAccount(TrackedBase):
    """
    A payee's bank account.

    The lowest-id active account is the payee's primary account and decides
    which bank its invoices are paid through.
    """

    __tablename__ = "payee_bank_accounts"

    __table_args__ = (
        Index("ix_payee_bank_accounts_payee", "payee_id", "record_status", "id"),
    )

    id: Mapped[int] = mapped_column(IdentityKey, primary_key=True, autoincrement=True)
    payee_id: Mapped[int] = mapped_column(ForeignKey("payees.id"), nullable=False)
    bank_id: Mapped[int] = mapped_column(ForeignKey("banks.id"), nullable=False)
    account_number: Mapped[str] = mapped_column(String(40), nullable=False)
    interbank_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="PEN")

    payee: Mapped[Payee] = relationship("Payee", back_populates="accounts")
    bank: Mapped[Bank] = relationship("Bank")

    def __repr__(self) -> str:
        return f"<PayeeBankAccount {self.id} payee={self.payee_id} bank={self.bank_id}>"


class InvoiceRecord(TrackedBase):
    """
    One honorarium invoice (production record) with its liquidation fields.

    The six monetary components may be NULL upstream; readers coerce NULL
    to zero.
    """

    __tablename__ = "invoice_records"

    __table_args__ = (
        Index(
            "ix_invoice_records_liquidation",
            "site_id", "liquidation_code", "status",
        ),
    )

    id: Mapped[int] = mapped_column(IdentityKey, primary_key=True, autoincrement=True)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), nullable=False)
    payee_id: Mapped[int] = mapped_column(ForeignKey("payees.id"), nullable=False)

    production_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    period: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=InvoiceStatus.REQUESTED.value,
    )

    consumption: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount: Mapped[Decimal | None] = mapped_column(nullable=True)
    subtotal: Mapped[Decimal | None] = mapped_column(nullable=True)
    withholding: Mapped[Decimal | None] = mapped_column(nullable=True)
    tax: Mapped[Decimal | None] = mapped_column(nullable=True)
    total: Mapped[Decimal | None] = mapped_column(nullable=True)

    document_series: Mapped[str | None] = mapped_column(String(10), nullable=True)
    document_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    liquidation_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    liquidation_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    liquidation_period: Mapped[str | None] = mapped_column(String(20), nullable=True)
    liquidation_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    liquidation_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    liquidation_description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    payee: Mapped[Payee] = relationship("Payee")

    def __repr__(self) -> str:
        return (
            f"<InvoiceRecord {self.id} site={self.site_id} "
            f"liquidation={self.liquidation_code} status={self.status}>"
        )
