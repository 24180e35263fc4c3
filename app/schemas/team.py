"""
Request and response models for the teams API.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models.membership import MembershipRole, MembershipStatus


class TeamCreate(BaseModel):
    """Create team request."""
    name: str = Field(..., max_length=100)
    description: str | None = None
    avatar_url: str | None = Field(None, max_length=500)


class TeamUpdate(BaseModel):
    """Partial team update. Only fields that are sent are applied."""
    name: str | None = Field(None, max_length=100)
    description: str | None = None
    avatar_url: str | None = Field(None, max_length=500)


class TeamRead(BaseModel):
    """Team as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    avatar_url: str | None = None
    is_personal: bool
    owner_id: str
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MemberRead(BaseModel):
    """Team membership as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    team_id: str
    user_id: str | None = None
    email: str | None = None
    role: MembershipRole
    status: MembershipStatus
    invited_by: str | None = None
    invited_at: datetime | None = None
    joined_at: datetime | None = None
    left_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TeamSummaryRead(BaseModel):
    """A team together with the caller's membership of it."""
    team: TeamRead
    membership: MemberRead


class TeamDetail(BaseModel):
    """Team with its full member list."""
    team: TeamRead
    members: list[MemberRead]


class MemberInvite(BaseModel):
    """Invite request. Either user_id or email identifies the invitee."""
    user_id: str | None = None
    email: str | None = Field(None, max_length=255)
    role: MembershipRole = MembershipRole.MEMBER


class MemberUpdate(BaseModel):
    """Role and/or status change for a member."""
    role: MembershipRole | None = None
    status: MembershipStatus | None = None


class TransferOwnershipRequest(BaseModel):
    """Ownership transfer request."""
    new_owner_id: str
