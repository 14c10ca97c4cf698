"""
Typed Exception Hierarchy for the Payment Order Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The presentation layer must turn every business failure into a structured
code/message pair without parsing message text.  Every exception therefore:
  1. Has a TYPED class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (order id, actor id, level, ...)

Example:
    try:
        engine.approve(uow, order_id, actor_id)
    except NotAuthorizedError as e:
        return OperationResult.failure(e.code, str(e))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PaymentOrderError (base)
    |
    +-- ValidationError
    |   +-- ApprovalChainNotConfiguredError
    |
    +-- NotFoundError
    |   +-- PaymentOrderNotFoundError
    |
    +-- NotAuthorizedError
    |
    +-- ConcurrencyError
    |   +-- AlreadyDecidedError
    |   +-- AlreadyBatchedError
    |
    +-- NoEligibleRecordsError
    |
    +-- TerminalStateError
    |
    +-- ImmutabilityViolationError
    |
    +-- PersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                           | When Raised
-------------------------------|---------------------------------------------
VALIDATION_ERROR               | Missing/invalid input (empty reject comment)
APPROVAL_CHAIN_NOT_CONFIGURED  | No profiles, or a step with no approvers
NOT_FOUND                      | Generic lookup miss
PAYMENT_ORDER_NOT_FOUND        | Order id unknown or soft-deleted
NOT_AUTHORIZED                 | Actor not in the current step's approver set
ALREADY_DECIDED                | Current step decided by a concurrent call
ALREADY_BATCHED                | Active order exists / invoice already linked
NO_ELIGIBLE_RECORDS            | Liquidation group has no candidate invoices
TERMINAL_STATE                 | Order already approved or rejected
IMMUTABILITY_VIOLATION         | Mutating a decided ledger row
PERSISTENCE_ERROR              | Store failure; transaction rolled back

Business-rule errors are terminal and must not be retried.  Only
``PersistenceError`` with ``transient=True`` is a retry candidate.
"""

from __future__ import annotations

from uuid import UUID


class PaymentOrderError(Exception):
    """Base exception for all payment order kernel errors."""

    code: str = "PAYMENT_ORDER_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# =============================================================================
# Validation
# =============================================================================


class ValidationError(PaymentOrderError):
    """Missing or invalid input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class ApprovalChainNotConfiguredError(ValidationError):
    """The workflow group resolves to no usable approval chain for the site."""

    code: str = "APPROVAL_CHAIN_NOT_CONFIGURED"

    def __init__(self, workflow_group: str, site_id: int, detail: str):
        self.workflow_group = workflow_group
        self.site_id = site_id
        self.detail = detail
        super().__init__(
            "approval_chain",
            f"workflow group '{workflow_group}' for site {site_id}: {detail}",
        )


# =============================================================================
# Lookup
# =============================================================================


class NotFoundError(PaymentOrderError):
    """A referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class PaymentOrderNotFoundError(NotFoundError):
    """Payment order id is unknown or the order was cancelled."""

    code: str = "PAYMENT_ORDER_NOT_FOUND"

    def __init__(self, order_id: UUID | str):
        self.order_id = str(order_id)
        super().__init__("Payment order", self.order_id)


# =============================================================================
# Authorization
# =============================================================================


class NotAuthorizedError(PaymentOrderError):
    """Actor is not an approver of the order's current pending step."""

    code: str = "NOT_AUTHORIZED"

    def __init__(
        self,
        order_id: UUID | str,
        actor_id: int,
        position: int | None = None,
        profile_code: str | None = None,
    ):
        self.order_id = str(order_id)
        self.actor_id = actor_id
        self.position = position
        self.profile_code = profile_code
        where = f" at step {position} ({profile_code})" if position else ""
        super().__init__(
            f"User {actor_id} is not authorized to decide payment order "
            f"{self.order_id}{where}"
        )


# =============================================================================
# Concurrency / idempotence guards
# =============================================================================


class ConcurrencyError(PaymentOrderError):
    """Base class for concurrency and idempotence guard failures."""

    code: str = "CONCURRENCY_ERROR"


class AlreadyDecidedError(ConcurrencyError):
    """The current approval step was decided by another transaction."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, order_id: UUID | str, position: int | None = None):
        self.order_id = str(order_id)
        self.position = position
        super().__init__(
            f"Approval step {position} of payment order {self.order_id} "
            f"has already been decided"
        )


class AlreadyBatchedError(ConcurrencyError):
    """An active payment order already covers the group or its invoices."""

    code: str = "ALREADY_BATCHED"

    def __init__(
        self,
        site_id: int,
        bank_id: int,
        liquidation_code: str,
        invoice_ids: tuple[int, ...] = (),
        existing_order_number: str | None = None,
    ):
        self.site_id = site_id
        self.bank_id = bank_id
        self.liquidation_code = liquidation_code
        self.invoice_ids = invoice_ids
        self.existing_order_number = existing_order_number
        if existing_order_number:
            detail = f"already batched in order {existing_order_number}"
        elif invoice_ids:
            detail = f"invoices {list(invoice_ids)} already linked to an active order"
        else:
            detail = "already batched"
        super().__init__(
            f"Liquidation {liquidation_code} (site {site_id}, bank {bank_id}) "
            f"{detail}"
        )


# =============================================================================
# Batch building
# =============================================================================


class NoEligibleRecordsError(PaymentOrderError):
    """The liquidation group resolves to no candidate invoices."""

    code: str = "NO_ELIGIBLE_RECORDS"

    def __init__(self, site_id: int, bank_id: int, liquidation_code: str):
        self.site_id = site_id
        self.bank_id = bank_id
        self.liquidation_code = liquidation_code
        super().__init__(
            f"No liquidated invoices found for liquidation {liquidation_code} "
            f"(site {site_id}, bank {bank_id})"
        )


# =============================================================================
# Workflow state
# =============================================================================


class TerminalStateError(PaymentOrderError):
    """Order is approved or rejected; no further decisions are processed."""

    code: str = "TERMINAL_STATE"

    def __init__(self, order_id: UUID | str, status: str, action: str):
        self.order_id = str(order_id)
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} payment order {self.order_id}: "
            f"order is already {status}"
        )


class ImmutabilityViolationError(PaymentOrderError):
    """Attempt to alter a decided approval ledger row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# Persistence
# =============================================================================


class PersistenceError(PaymentOrderError):
    """The data store failed; the whole transaction was rolled back."""

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str, transient: bool = False):
        self.operation = operation
        self.detail = detail
        self.transient = transient
        super().__init__(f"Persistence failure during {operation}: {detail}")
