"""
Module: payorder_kernel.models.approval
Responsibility: ORM persistence for approval profiles (chain steps) and
    the profile-user-site bindings that grant users authority at a step.

Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - A workflow group has at most one active profile per (level, sequence),
      so chain ordering is total.
    - A user is bound to a given profile for a given site at most once
      while the binding is active.

Audit relevance:
    Editing profiles or bindings never affects existing orders: the chain
    and its approvers are copied onto the order when it is created.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payorder_kernel.db.base import TrackedBase, UUIDString

_ACTIVE = text("record_status = 'active'")


class ApprovalProfile(TrackedBase):
    """One ordered step of a workflow group's approval chain."""

    __tablename__ = "approval_profiles"

    __table_args__ = (
        Index(
            "uq_approval_profiles_step",
            "workflow_group", "level", "sequence",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
    )

    workflow_group: Mapped[str] = mapped_column(String(50), nullable=False)
    code: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    level: Mapped[int] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False, default=1)

    users: Mapped[list[ApprovalProfileUser]] = relationship(
        "ApprovalProfileUser",
        back_populates="profile",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalProfile {self.code} group={self.workflow_group} "
            f"level={self.level}.{self.sequence}>"
        )


class ApprovalProfileUser(TrackedBase):
    """Grants ``user_id`` authority at ``profile_id`` for exactly one site."""

    __tablename__ = "approval_profile_users"

    __table_args__ = (
        Index(
            "uq_approval_profile_users_binding",
            "profile_id", "user_id", "site_id",
            unique=True,
            postgresql_where=_ACTIVE,
            sqlite_where=_ACTIVE,
        ),
        Index("ix_approval_profile_users_site", "site_id", "profile_id"),
    )

    profile_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("approval_profiles.id"), nullable=False,
    )
    user_id: Mapped[int] = mapped_column(nullable=False)
    site_id: Mapped[int] = mapped_column(ForeignKey("sites.id"), nullable=False)

    profile: Mapped[ApprovalProfile] = relationship(
        "ApprovalProfile", back_populates="users",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalProfileUser user={self.user_id} "
            f"profile={self.profile_id} site={self.site_id}>"
        )
