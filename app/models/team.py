"""
Team model: a collaboration workspace that owns prompts and tags.
"""

from sqlalchemy import Boolean, Index, String, Text, false, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db import Base
from app.models.base import TimestampMixin, UUIDPrimaryKeyMixin


class Team(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Team (shared or personal workspace) model."""

    __tablename__ = "teams"
    __table_args__ = (
        # One personal team per user
        Index(
            "uq_teams_personal_owner",
            "owner_id",
            unique=True,
            postgresql_where=text("is_personal"),
            sqlite_where=text("is_personal = 1"),
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_personal: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )

    # Ownership - owner_id moves on transfer, created_by never changes
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)

    # Relationships
    members = relationship(
        "TeamMember",
        back_populates="team",
        lazy="raise",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Team {self.id} owner={self.owner_id} personal={self.is_personal}>"
