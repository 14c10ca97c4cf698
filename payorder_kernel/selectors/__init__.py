"""Read-only selectors over the invoice ledger and payment orders."""

from payorder_kernel.selectors.base import BaseSelector
from payorder_kernel.selectors.liquidation_selector import (
    LiquidationFilter,
    LiquidationSelector,
)
from payorder_kernel.selectors.payment_order_selector import (
    OrderFilter,
    PaymentOrderSelector,
)

__all__ = [
    "BaseSelector",
    "LiquidationFilter",
    "LiquidationSelector",
    "OrderFilter",
    "PaymentOrderSelector",
]
