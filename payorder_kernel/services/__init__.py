"""Kernel services: batch building, approval decisions, cancellation and the facade."""

from payorder_kernel.services.approval_chain import ApprovalChainResolver
from payorder_kernel.services.approval_engine import ApprovalEngine
from payorder_kernel.services.batch_builder import BatchBuilder, format_order_number
from payorder_kernel.services.cancellation_service import CancellationService
from payorder_kernel.services.payment_order_service import (
    GENERIC_FAILURE_MESSAGE,
    OperationResult,
    PaymentOrderService,
)
from payorder_kernel.services.retry_service import is_transient, run_with_retry
from payorder_kernel.services.sequence_service import SequenceService, order_sequence_name

__all__ = [
    "ApprovalChainResolver",
    "ApprovalEngine",
    "BatchBuilder",
    "format_order_number",
    "CancellationService",
    "GENERIC_FAILURE_MESSAGE",
    "OperationResult",
    "PaymentOrderService",
    "is_transient",
    "run_with_retry",
    "SequenceService",
    "order_sequence_name",
]
