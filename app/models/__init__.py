# Models package
from app.db import Base
from app.models.team import Team
from app.models.membership import (
    ALL_ROLES,
    LIVE_STATUSES,
    MANAGER_ROLES,
    TERMINAL_STATUSES,
    MembershipRole,
    MembershipStatus,
    TeamMember,
)

__all__ = [
    "Base",
    "Team",
    "TeamMember",
    "MembershipRole",
    "MembershipStatus",
    "MANAGER_ROLES",
    "ALL_ROLES",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
]
