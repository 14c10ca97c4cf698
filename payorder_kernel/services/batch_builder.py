"""
BatchBuilder -- turn one liquidation group into one payment order.

Responsibility:
    Validates the request, re-reads the candidate invoices under row locks,
    computes totals, resolves and materializes the approval chain, allocates
    the order number and writes the whole aggregate in the caller's unit of
    work.

Architecture position:
    Kernel > Services -- imperative shell.  Reads through
    LiquidationSelector and ApprovalChainResolver; allocates numbers through
    SequenceService.  Never commits: the UnitOfWork passed in owns the
    transaction.

Invariants enforced:
    - Idempotence: at most one active order per (site, bank, liquidation
      code).  Checked in-transaction first, then backed by the partial
      unique index.
    - Single membership: an invoice is linked to at most one active order.
    - Totals: header sums and counts are computed from exactly the member
      set that gets linked.
    - Chain snapshot: every step is written with its frozen approver set;
      position 1 starts PENDING and the rest NOT_STARTED.

Failure modes:
    - ValidationError: missing site, bank or liquidation code.
    - AlreadyBatchedError: active order for the key, an invoice already
      linked, or a unique-index violation from a concurrent creator.
    - NoEligibleRecordsError: the group has no candidate invoices.
    - ApprovalChainNotConfiguredError: empty chain or an unstaffed step.

Audit relevance:
    ``payment_order_created`` is logged with order number, totals, invoice
    count and chain length.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.db.unit_of_work import UnitOfWork
from payorder_kernel.domain.clock import Clock, SystemClock
from payorder_kernel.domain.payment_order import (
    ApprovalChain,
    LiquidationMember,
    OrderStatus,
    OrderTotals,
    PaymentOrderCreated,
    StepStatus,
)
from payorder_kernel.exceptions import (
    AlreadyBatchedError,
    ApprovalChainNotConfiguredError,
    NoEligibleRecordsError,
    ValidationError,
)
from payorder_kernel.logging_config import LogContext, get_logger
from payorder_kernel.models.payment_order import (
    PaymentOrder,
    PaymentOrderApproval,
    PaymentOrderApprover,
    PaymentOrderInvoice,
)
from payorder_kernel.selectors.liquidation_selector import LiquidationSelector
from payorder_kernel.services.approval_chain import ApprovalChainResolver
from payorder_kernel.services.sequence_service import (
    SequenceService,
    order_sequence_name,
)

logger = get_logger("services.batch_builder")

_ACTIVE = RecordStatus.ACTIVE.value

DEFAULT_ORDER_NUMBER_PREFIX = "OP"
DEFAULT_WORKFLOW_GROUP = "payment_order"


def format_order_number(prefix: str, site_id: int, bank_id: int, seq: int) -> str:
    """``OP-010-005-000001`` style order number."""
    return f"{prefix}-{site_id:03d}-{bank_id:03d}-{seq:06d}"


class BatchBuilder:
    """
    Create payment orders from liquidation groups.

    Contract:
        ``create_order`` either writes header, memberships, ledger rows and
        approver snapshots together, or raises and writes nothing that the
        unit of work will commit.

    Non-goals:
        - Does NOT change the upstream invoice status.  The active
          membership link is the reservation.
        - Does NOT merge several liquidation codes into one order.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        order_number_prefix: str = DEFAULT_ORDER_NUMBER_PREFIX,
        default_workflow_group: str = DEFAULT_WORKFLOW_GROUP,
    ):
        self._clock = clock or SystemClock()
        self._prefix = order_number_prefix
        self._default_workflow_group = default_workflow_group

    def create_order(
        self,
        uow: UnitOfWork,
        *,
        site_id: int,
        bank_id: int,
        liquidation_code: str,
        actor_id: int,
        workflow_group: str | None = None,
    ) -> PaymentOrderCreated:
        """
        Batch the liquidated invoices of one group into a new payment order.

        Preconditions:
            - ``uow`` is active (inside its ``with`` block).
        Postconditions:
            - After flush: one PENDING header at position 1, one membership
              per member invoice, one ledger row per chain step.
        """
        self._validate(site_id, bank_id, liquidation_code, actor_id)
        liquidation_code = liquidation_code.strip()
        group = workflow_group or self._default_workflow_group
        session = uow.session

        with LogContext.bind(actor_id=actor_id, site_id=site_id):
            existing = session.execute(
                select(PaymentOrder.order_number).where(
                    PaymentOrder.site_id == site_id,
                    PaymentOrder.bank_id == bank_id,
                    PaymentOrder.liquidation_code == liquidation_code,
                    PaymentOrder.record_status == _ACTIVE,
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise AlreadyBatchedError(
                    site_id, bank_id, liquidation_code,
                    existing_order_number=existing,
                )

            members = LiquidationSelector(session).list_members(
                liquidation_code, site_id, bank_id, for_update=True,
            )
            if not members:
                raise NoEligibleRecordsError(site_id, bank_id, liquidation_code)

            self._check_not_linked(session, members, site_id, bank_id, liquidation_code)

            totals = OrderTotals.from_members(members)

            chain = ApprovalChainResolver(session).resolve_chain(site_id, group)
            self._check_chain(chain)

            seq = SequenceService(session).next_value(
                order_sequence_name(site_id, bank_id)
            )
            order_number = format_order_number(self._prefix, site_id, bank_id, seq)

            try:
                order = self._write_aggregate(
                    session, site_id, bank_id, liquidation_code, group,
                    order_number, actor_id, members, totals, chain,
                )
            except IntegrityError as err:
                logger.warning(
                    "payment_order_create_conflict",
                    extra={
                        "liquidation_code": liquidation_code,
                        "bank_id": bank_id,
                        "error": str(err.orig),
                    },
                )
                raise AlreadyBatchedError(site_id, bank_id, liquidation_code) from err

            logger.info(
                "payment_order_created",
                extra={
                    "order_id": str(order.id),
                    "order_number": order_number,
                    "bank_id": bank_id,
                    "liquidation_code": liquidation_code,
                    "workflow_group": group,
                    "total": totals.total,
                    "invoice_count": totals.invoice_count,
                    "chain_length": len(chain),
                },
            )

        return PaymentOrderCreated(
            order_id=order.id,
            order_number=order_number,
            site_id=site_id,
            bank_id=bank_id,
            liquidation_code=liquidation_code,
            status=OrderStatus.PENDING,
            totals=totals,
            chain_length=len(chain),
            invoice_ids=tuple(m.invoice_id for m in members),
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(site_id, bank_id, liquidation_code, actor_id) -> None:
        if not site_id:
            raise ValidationError("site_id", "a site is required")
        if not bank_id:
            raise ValidationError("bank_id", "a bank is required")
        if liquidation_code is None or not str(liquidation_code).strip():
            raise ValidationError("liquidation_code", "a liquidation code is required")
        if not actor_id:
            raise ValidationError("actor_id", "the acting user is required")

    @staticmethod
    def _check_not_linked(session, members, site_id, bank_id, liquidation_code) -> None:
        invoice_ids = [m.invoice_id for m in members]
        linked = session.execute(
            select(PaymentOrderInvoice.invoice_id)
            .where(
                PaymentOrderInvoice.invoice_id.in_(invoice_ids),
                PaymentOrderInvoice.record_status == _ACTIVE,
            )
            .order_by(PaymentOrderInvoice.invoice_id)
        ).scalars().all()
        if linked:
            raise AlreadyBatchedError(
                site_id, bank_id, liquidation_code, invoice_ids=tuple(linked),
            )

    @staticmethod
    def _check_chain(chain: ApprovalChain) -> None:
        if chain.is_empty:
            raise ApprovalChainNotConfiguredError(
                chain.workflow_group, chain.site_id, "no active approval profiles",
            )
        unstaffed = chain.unstaffed_steps
        if unstaffed:
            codes = ", ".join(s.profile_code for s in unstaffed)
            raise ApprovalChainNotConfiguredError(
                chain.workflow_group,
                chain.site_id,
                f"no approvers bound for this site at step(s) {codes}",
            )

    def _write_aggregate(
        self,
        session,
        site_id: int,
        bank_id: int,
        liquidation_code: str,
        workflow_group: str,
        order_number: str,
        actor_id: int,
        members: list[LiquidationMember],
        totals: OrderTotals,
        chain: ApprovalChain,
    ) -> PaymentOrder:
        order = PaymentOrder(
            site_id=site_id,
            bank_id=bank_id,
            liquidation_code=liquidation_code,
            order_number=order_number,
            generated_at=self._clock.now(),
            status=OrderStatus.PENDING.value,
            workflow_group=workflow_group,
            current_position=1,
            created_by_id=actor_id,
        )
        order.apply_totals(totals)
        session.add(order)
        session.flush()

        session.add_all([
            PaymentOrderInvoice(
                order_id=order.id,
                invoice_id=member.invoice_id,
                liquidation_code=member.liquidation_code,
                created_by_id=actor_id,
            )
            for member in members
        ])

        for position, step in enumerate(chain.steps, start=1):
            row = PaymentOrderApproval(
                order_id=order.id,
                position=position,
                profile_id=step.profile_id,
                profile_code=step.profile_code,
                profile_description=step.description,
                level=step.level,
                sequence=step.sequence,
                status=(
                    StepStatus.PENDING.value if position == 1
                    else StepStatus.NOT_STARTED.value
                ),
                created_by_id=actor_id,
            )
            row.approvers = [
                PaymentOrderApprover(user_id=user_id, created_by_id=actor_id)
                for user_id in sorted(step.approver_ids)
            ]
            session.add(row)

        session.flush()
        return order
