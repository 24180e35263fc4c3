"""
Team management router.

Handlers resolve the caller, call the team service and serialize the result.
Service errors are turned into JSON responses by the handler in app.main.
"""

from fastapi import APIRouter, Response, status

from app.deps import CurrentUserEmail, CurrentUserId, TeamServiceDep
from app.models.membership import MembershipStatus
from app.schemas.team import (
    MemberInvite,
    MemberRead,
    MemberUpdate,
    TeamCreate,
    TeamDetail,
    TeamRead,
    TeamSummaryRead,
    TeamUpdate,
    TransferOwnershipRequest,
)

router = APIRouter(prefix="/teams", tags=["teams"])

# Path alias for the calling user
SELF_ALIAS = "me"


def _resolve_user(user_id: str, caller_id: str) -> str:
    return caller_id if user_id == SELF_ALIAS else user_id


@router.get("", response_model=list[TeamSummaryRead])
async def list_teams(
    user_id: CurrentUserId,
    service: TeamServiceDep,
    include_pending: bool = False,
):
    """List teams the caller belongs to."""
    summaries = await service.list_teams_for_user(user_id, include_pending=include_pending)
    return [
        TeamSummaryRead(
            team=TeamRead.model_validate(s.team),
            membership=MemberRead.model_validate(s.membership),
        )
        for s in summaries
    ]


@router.post("", response_model=TeamRead, status_code=status.HTTP_201_CREATED)
async def create_team(
    data: TeamCreate,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Create a shared team owned by the caller."""
    return await service.create_team(
        data.name,
        user_id,
        description=data.description,
        avatar_url=data.avatar_url,
    )


@router.post("/personal", response_model=TeamRead)
async def ensure_personal_team(
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Return the caller's personal team, creating it if needed."""
    return await service.ensure_personal_team(user_id)


@router.get("/{team_id}", response_model=TeamDetail)
async def get_team(
    team_id: str,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Get a team with all of its memberships."""
    members = await service.list_members(team_id, user_id, include_inactive=True)
    team = await service.get_team(team_id)
    return TeamDetail(
        team=TeamRead.model_validate(team),
        members=[MemberRead.model_validate(m) for m in members],
    )


@router.patch("/{team_id}", response_model=TeamRead)
async def update_team(
    team_id: str,
    data: TeamUpdate,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Update team name, description or avatar."""
    return await service.update_team(team_id, data.model_dump(exclude_unset=True), user_id)


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_team(
    team_id: str,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Delete a team. Owner only."""
    await service.delete_team(team_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{team_id}/members", response_model=list[MemberRead])
async def list_members(
    team_id: str,
    user_id: CurrentUserId,
    service: TeamServiceDep,
    include_inactive: bool = False,
):
    """List team members."""
    return await service.list_members(team_id, user_id, include_inactive=include_inactive)


@router.post("/{team_id}/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
async def invite_member(
    team_id: str,
    data: MemberInvite,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Invite a user to the team by id or email."""
    return await service.invite_member(
        team_id,
        user_id,
        user_id=data.user_id,
        email=data.email,
        role=data.role,
    )


@router.post("/{team_id}/members/accept", response_model=MemberRead)
async def accept_invite(
    team_id: str,
    user_id: CurrentUserId,
    email: CurrentUserEmail,
    service: TeamServiceDep,
):
    """Accept the caller's pending invite."""
    return await service.accept_invite(team_id, user_id, email)


@router.patch("/{team_id}/members/{member_user_id}", response_model=MemberRead)
async def update_member(
    team_id: str,
    member_user_id: str,
    data: MemberUpdate,
    user_id: CurrentUserId,
    email: CurrentUserEmail,
    service: TeamServiceDep,
):
    """Change a member's role or status.

    A caller activating their own inactive membership is accepting an invite.
    """
    target_id = _resolve_user(member_user_id, user_id)
    if target_id == user_id and data.status == MembershipStatus.ACTIVE and data.role is None:
        current = await service.get_team_membership(team_id, user_id)
        if current is None or current.status != MembershipStatus.ACTIVE:
            return await service.accept_invite(team_id, user_id, email)

    return await service.update_member(
        team_id,
        target_id,
        user_id,
        role=data.role,
        status=data.status,
    )


@router.delete("/{team_id}/members/{member_user_id}", response_model=MemberRead)
async def remove_member(
    team_id: str,
    member_user_id: str,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Remove a member, or leave the team when targeting yourself."""
    return await service.remove_member(team_id, _resolve_user(member_user_id, user_id), user_id)


@router.post("/{team_id}/transfer", response_model=TeamRead)
async def transfer_ownership(
    team_id: str,
    data: TransferOwnershipRequest,
    user_id: CurrentUserId,
    service: TeamServiceDep,
):
    """Hand team ownership to another active member."""
    return await service.transfer_ownership(team_id, user_id, data.new_owner_id)
