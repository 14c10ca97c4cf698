"""
ApprovalChainResolver -- site-scoped, ordered approval chain lookup.

Responsibility:
    Turns the approval profiles of a workflow group, plus the
    profile-user-site bindings, into an ordered ApprovalChain for one site.

Architecture position:
    Kernel > Services.  Read-only over approval_profiles and
    approval_profile_users.  Called by BatchBuilder exactly once per order;
    the result is materialized onto the order and never re-evaluated.

Invariants enforced:
    - Steps are ordered by (level, sequence) ascending.
    - A step's approver set contains only users bound to that profile for
      the requested site.  There is no cross-site or site-less binding.
"""

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.orm import Session

from payorder_kernel.db.base import RecordStatus
from payorder_kernel.domain.payment_order import ApprovalChain, ChainStep
from payorder_kernel.logging_config import get_logger
from payorder_kernel.models.approval import ApprovalProfile, ApprovalProfileUser

logger = get_logger("services.approval_chain")

_ACTIVE = RecordStatus.ACTIVE.value


class ApprovalChainResolver:
    """
    Resolve the approval chain for a (site, workflow group).

    Guarantees:
        - Returns an empty chain (never raises) when the group has no
          active profiles; callers decide whether that is an error.
    """

    def __init__(self, session: Session):
        self._session = session

    def resolve_chain(self, site_id: int, workflow_group: str) -> ApprovalChain:
        profiles = self._session.execute(
            select(ApprovalProfile)
            .where(
                ApprovalProfile.workflow_group == workflow_group,
                ApprovalProfile.record_status == _ACTIVE,
            )
            .order_by(ApprovalProfile.level, ApprovalProfile.sequence)
        ).scalars().all()

        approvers: dict = defaultdict(set)
        if profiles:
            rows = self._session.execute(
                select(ApprovalProfileUser.profile_id, ApprovalProfileUser.user_id)
                .where(
                    ApprovalProfileUser.profile_id.in_([p.id for p in profiles]),
                    ApprovalProfileUser.site_id == site_id,
                    ApprovalProfileUser.record_status == _ACTIVE,
                )
            )
            for profile_id, user_id in rows:
                approvers[profile_id].add(user_id)

        chain = ApprovalChain(
            workflow_group=workflow_group,
            site_id=site_id,
            steps=tuple(
                ChainStep(
                    profile_id=p.id,
                    profile_code=p.code,
                    description=p.description,
                    level=p.level,
                    sequence=p.sequence,
                    approver_ids=frozenset(approvers.get(p.id, ())),
                )
                for p in profiles
            ),
        )

        logger.debug(
            "approval_chain_resolved",
            extra={
                "site_id": site_id,
                "workflow_group": workflow_group,
                "step_count": len(chain),
                "unstaffed_steps": [s.profile_code for s in chain.unstaffed_steps],
            },
        )
        return chain
