"""
Module: payorder_kernel.db.types
Responsibility: Shared column types and money coercion for upstream
    ledger values.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  All monetary amounts use Decimal stored as
      Numeric(38, 9).
    - Integer surrogate keys of upstream master data (sites, banks, payees,
      invoices) autoincrement on every supported backend.
"""

from decimal import Decimal

from sqlalchemy import BigInteger, Integer

# BIGINT on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
IdentityKey = BigInteger().with_variant(Integer(), "sqlite")

ZERO = Decimal("0")


def money(value: Decimal | int | str | None) -> Decimal:
    """Coerce a nullable upstream amount to Decimal (None counts as zero)."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))
