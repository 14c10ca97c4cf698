"""SQLAlchemy ORM models for the payment order kernel."""

from payorder_kernel.models.approval import ApprovalProfile, ApprovalProfileUser
from payorder_kernel.models.ledger import (
    Bank,
    InvoiceRecord,
    Payee,
    PayeeBankAccount,
    Site,
)
from payorder_kernel.models.payment_order import (
    PaymentOrder,
    PaymentOrderApproval,
    PaymentOrderApprover,
    PaymentOrderInvoice,
)
from payorder_kernel.models.sequence import SequenceCounter

__all__ = [
    # Upstream ledger
    "Site",
    "Bank",
    "Payee",
    "PayeeBankAccount",
    "InvoiceRecord",
    # Approval configuration
    "ApprovalProfile",
    "ApprovalProfileUser",
    # Payment order aggregate
    "PaymentOrder",
    "PaymentOrderInvoice",
    "PaymentOrderApproval",
    "PaymentOrderApprover",
    "SequenceCounter",
]
