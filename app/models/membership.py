"""
Membership model for team memberships and invitations.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base
from app.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MembershipStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    LEFT = "left"
    REMOVED = "removed"
    BLOCKED = "blocked"


MANAGER_ROLES = (MembershipRole.OWNER, MembershipRole.ADMIN)
ALL_ROLES = (MembershipRole.MEMBER, MembershipRole.ADMIN, MembershipRole.OWNER)
LIVE_STATUSES = (MembershipStatus.PENDING, MembershipStatus.ACTIVE)
TERMINAL_STATUSES = (MembershipStatus.LEFT, MembershipStatus.REMOVED, MembershipStatus.BLOCKED)

_LIVE_PREDICATE = "status IN ('pending', 'active')"
_OWNER_PREDICATE = "role = 'owner'"


class TeamMember(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One user's relationship to one team.

    Rows are created pending by an invite and become active on acceptance.
    Re-inviting a former member resets the same row back to pending.
    """

    __tablename__ = "team_members"
    __table_args__ = (
        # At most one live membership per (team, user)
        Index(
            "uq_team_members_live_team_user",
            "team_id",
            "user_id",
            unique=True,
            postgresql_where=text(_LIVE_PREDICATE),
            sqlite_where=text(_LIVE_PREDICATE),
        ),
        # Exactly one owner row per team
        Index(
            "uq_team_members_single_owner",
            "team_id",
            unique=True,
            postgresql_where=text(_OWNER_PREDICATE),
            sqlite_where=text(_OWNER_PREDICATE),
        ),
        Index("ix_team_members_team_email", "team_id", "email"),
    )

    team_id: Mapped[str] = mapped_column(
        ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null until an invited-by-email user registers
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[MembershipRole] = mapped_column(
        String(20), default=MembershipRole.MEMBER, nullable=False
    )
    status: Mapped[MembershipStatus] = mapped_column(
        String(20), default=MembershipStatus.PENDING, nullable=False
    )

    # Invitation / lifecycle tracking
    invited_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Relationships
    team = relationship("Team", back_populates="members", lazy="raise")

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES

    def __repr__(self) -> str:
        return (
            f"<TeamMember user={self.user_id} team={self.team_id} "
            f"role={self.role} status={self.status}>"
        )
