"""
Team membership service.

Owns team lifecycle, membership state transitions, role-based permission
checks and ownership transfer. Route handlers resolve the caller's identity
and call in with (team_id, actor_user_id, ...); every failure surfaces as a
typed error from app.services.errors.

Membership lifecycle:

            invite          accept
     (none) ------> pending -------> active
                      |                | leave / remove / block
                      | re-invite      v
                      +------------ left / removed / blocked
"""

import logging
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from app.models.base import utcnow
from app.models.membership import (
    ALL_ROLES,
    LIVE_STATUSES,
    MANAGER_ROLES,
    MembershipRole,
    MembershipStatus,
    TeamMember,
)
from app.models.team import Team
from app.services.compensation import CompensatingSequence
from app.services.errors import (
    ConflictError,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.services.team_store import ConstraintViolationError, StoreError, TeamStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

TEAM_NAME_MAX_LENGTH = 100
TEAM_UPDATABLE_FIELDS = ("name", "description", "avatar_url")
INVITABLE_ROLES = (MembershipRole.MEMBER, MembershipRole.ADMIN)

LIVE_MEMBERSHIP_CONFLICT = "User already has a pending or active membership in this team"


def normalize_email(email: str | None) -> str | None:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


@dataclass
class TeamMembershipSummary:
    """A user's membership paired with the team it belongs to."""

    membership: TeamMember
    team: Team


class TeamService:
    """Membership authority for teams and team_members."""

    def __init__(
        self,
        store: TeamStore,
        max_teams_per_user: int,
        personal_team_name: str = "Personal workspace",
        personal_team_description: str | None = "Auto-generated personal space",
    ):
        self.store = store
        self.max_teams_per_user = max_teams_per_user
        self.personal_team_name = personal_team_name
        self.personal_team_description = personal_team_description

    # ------------------------------------------------------------------
    # Store helpers
    # ------------------------------------------------------------------

    async def _call(self, message: str, call: Awaitable[T], conflict_message: str | None = None) -> T:
        """Await a store call, rethrowing store failures as typed errors."""
        try:
            return await call
        except ConstraintViolationError as e:
            if conflict_message:
                raise ConflictError(conflict_message, detail=str(e)) from e
            raise PersistenceError(message, detail=str(e), operation=message) from e
        except StoreError as e:
            raise PersistenceError(message, detail=str(e), operation=message) from e

    async def _update_member(
        self,
        membership_id: str,
        patch: Mapping[str, Any],
        message: str,
        conflict_message: str | None = None,
    ) -> TeamMember:
        row = await self._call(
            message,
            self.store.members.update({"id": membership_id}, patch),
            conflict_message=conflict_message,
        )
        if row is None:
            raise NotFoundError("Team member not found")
        return row

    @staticmethod
    def _parse_role(role: Any) -> MembershipRole:
        try:
            return MembershipRole(role)
        except ValueError:
            raise ValidationError("Invalid role specified") from None

    @staticmethod
    def _parse_status(status: Any) -> MembershipStatus:
        try:
            return MembershipStatus(status)
        except ValueError:
            raise ValidationError("Unsupported status transition") from None

    @staticmethod
    def _validate_name(name: str | None, message: str) -> str:
        if name is None or not name.strip():
            raise ValidationError(message)
        name = name.strip()
        if len(name) > TEAM_NAME_MAX_LENGTH:
            raise ValidationError(f"Team name must be at most {TEAM_NAME_MAX_LENGTH} characters")
        return name

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    async def get_team(self, team_id: str) -> Team:
        team = await self._call("Failed to load team", self.store.teams.first({"id": team_id}))
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def get_personal_team(self, user_id: str) -> Team | None:
        return await self._call(
            "Failed to load personal team",
            self.store.teams.first({"owner_id": user_id, "is_personal": True}),
        )

    async def ensure_no_personal_team(self, user_id: str) -> None:
        existing = await self._call(
            "Unable to verify personal team status",
            self.store.teams.first({"owner_id": user_id, "is_personal": True}),
        )
        if existing is not None:
            raise ConflictError("Personal team already exists")

    async def list_teams_for_user(self, user_id: str, include_pending: bool = False) -> list[TeamMembershipSummary]:
        """Return the user's memberships with their teams, oldest first."""
        statuses = list(LIVE_STATUSES) if include_pending else [MembershipStatus.ACTIVE]
        memberships = await self._call(
            "Failed to load teams",
            self.store.members.select({"user_id": user_id, "status": statuses}, order_by="created_at"),
        )
        if not memberships:
            return []

        teams = await self._call(
            "Failed to load teams",
            self.store.teams.select({"id": [m.team_id for m in memberships]}),
        )
        teams_by_id = {team.id: team for team in teams}
        return [
            TeamMembershipSummary(membership=m, team=teams_by_id[m.team_id])
            for m in memberships
            if m.team_id in teams_by_id
        ]

    async def create_team(
        self,
        name: str | None,
        owner_id: str,
        description: str | None = None,
        avatar_url: str | None = None,
        is_personal: bool = False,
    ) -> Team:
        """Create a team and its owner membership.

        The team row is deleted again if the owner membership cannot be
        written, so no team is left without an owner.
        """
        name = self._validate_name(name, "Team name is required")

        if is_personal:
            await self.ensure_no_personal_team(owner_id)
        else:
            count = await self._call(
                "Failed to check team limit",
                self.store.teams.count({"owner_id": owner_id, "is_personal": False}),
            )
            if count >= self.max_teams_per_user:
                raise LimitExceededError(
                    f"You have reached the maximum limit of {self.max_teams_per_user} teams"
                )

        now = utcnow()
        seq = CompensatingSequence("create team")
        seq.add(
            "insert team",
            lambda: self._call(
                "Failed to create team",
                self.store.teams.insert({
                    "name": name,
                    "description": description,
                    "avatar_url": avatar_url,
                    "is_personal": is_personal,
                    "owner_id": owner_id,
                    "created_by": owner_id,
                    "created_at": now,
                    "updated_at": now,
                }),
                conflict_message="Personal team already exists" if is_personal else None,
            ),
            compensate=lambda team: self.store.teams.delete({"id": team.id}),
        )
        seq.add(
            "insert owner membership",
            lambda: self._call(
                "Failed to create team membership",
                self.store.members.insert({
                    "team_id": seq.results["insert team"].id,
                    "user_id": owner_id,
                    "role": MembershipRole.OWNER,
                    "status": MembershipStatus.ACTIVE,
                    "joined_at": now,
                    "created_by": owner_id,
                    "created_at": now,
                    "updated_at": now,
                }),
            ),
        )
        results = await seq.run()

        team = results["insert team"]
        logger.info(f"Team {team.id} created by {owner_id} (personal={is_personal})")
        return team

    async def ensure_owner_membership(self, team_id: str, user_id: str) -> TeamMember:
        """Make sure the user holds an active owner membership of the team."""
        membership = await self.get_team_membership(team_id, user_id)
        now = utcnow()

        if membership is None:
            return await self._call(
                "Failed to ensure owner membership",
                self.store.members.insert({
                    "team_id": team_id,
                    "user_id": user_id,
                    "role": MembershipRole.OWNER,
                    "status": MembershipStatus.ACTIVE,
                    "joined_at": now,
                    "created_by": user_id,
                    "created_at": now,
                    "updated_at": now,
                }),
            )

        if membership.role != MembershipRole.OWNER or membership.status != MembershipStatus.ACTIVE:
            logger.warning(f"Normalizing drifted owner membership {membership.id} of team {team_id}")
            return await self._update_member(
                membership.id,
                {
                    "role": MembershipRole.OWNER,
                    "status": MembershipStatus.ACTIVE,
                    "joined_at": membership.joined_at or now,
                    "left_at": None,
                    "updated_at": now,
                },
                "Failed to normalize owner membership",
            )
        return membership

    async def ensure_personal_team(self, user_id: str) -> Team:
        """Return the user's personal team, creating it on first use."""
        team = await self.get_personal_team(user_id)
        if team is not None:
            await self.ensure_owner_membership(team.id, user_id)
            return team

        try:
            return await self.create_team(
                self.personal_team_name,
                user_id,
                description=self.personal_team_description,
                is_personal=True,
            )
        except ConflictError:
            # Created concurrently by another request
            team = await self.get_personal_team(user_id)
            if team is None:
                raise
            await self.ensure_owner_membership(team.id, user_id)
            return team

    async def update_team(self, team_id: str, updates: Mapping[str, Any], actor_user_id: str) -> Team:
        """Update name, description or avatar_url (admins and owners)."""
        await self.assert_manager(team_id, actor_user_id)

        sanitized = {field: updates[field] for field in TEAM_UPDATABLE_FIELDS if field in updates}
        if "name" in sanitized:
            sanitized["name"] = self._validate_name(sanitized["name"], "Team name cannot be empty")

        if not sanitized:
            return await self.get_team(team_id)

        sanitized["updated_at"] = utcnow()
        team = await self._call("Failed to update team", self.store.teams.update({"id": team_id}, sanitized))
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def delete_team(self, team_id: str, actor_user_id: str) -> None:
        """Hard-delete a team (owner only). Memberships cascade in the store."""
        await self.assert_owner(team_id, actor_user_id)

        deleted = await self._call("Failed to delete team", self.store.teams.delete({"id": team_id}))
        if not deleted:
            raise NotFoundError("Team not found")
        logger.info(f"Team {team_id} deleted by {actor_user_id}")

    # ------------------------------------------------------------------
    # Membership queries and permission checks
    # ------------------------------------------------------------------

    async def _find_membership(self, filters: Mapping[str, Any], message: str) -> TeamMember | None:
        rows = await self._call(message, self.store.members.select(filters, order_by="-created_at"))
        for row in rows:
            if row.is_live:
                return row
        return rows[0] if rows else None

    async def get_team_membership(self, team_id: str, user_id: str | None) -> TeamMember | None:
        if not user_id:
            return None
        return await self._find_membership(
            {"team_id": team_id, "user_id": user_id},
            "Failed to verify team membership",
        )

    async def require_membership(
        self,
        team_id: str,
        user_id: str,
        allow_statuses: Iterable[MembershipStatus] = (MembershipStatus.ACTIVE,),
        allow_roles: Iterable[MembershipRole] = ALL_ROLES,
    ) -> TeamMember:
        membership = await self.get_team_membership(team_id, user_id)
        if membership is None:
            raise ForbiddenError("You are not a member of this team")
        if membership.status not in tuple(allow_statuses):
            raise ForbiddenError("Your membership status prohibits this action")
        if membership.role not in tuple(allow_roles):
            raise ForbiddenError("Insufficient permissions for this action")
        return membership

    async def _find_target_membership(self, team_id: str, target: str) -> TeamMember | None:
        """Look up a management target by user id, then by invite email."""
        membership = await self.get_team_membership(team_id, target)
        if membership is None and "@" in target:
            membership = await self._find_membership(
                {"team_id": team_id, "email": normalize_email(target)},
                "Failed to verify team membership",
            )
        return membership

    async def assert_manager(self, team_id: str, user_id: str) -> TeamMember:
        return await self.require_membership(team_id, user_id, allow_roles=MANAGER_ROLES)

    async def assert_owner(self, team_id: str, user_id: str) -> TeamMember:
        return await self.require_membership(team_id, user_id, allow_roles=(MembershipRole.OWNER,))

    async def list_members(
        self,
        team_id: str,
        actor_user_id: str,
        include_inactive: bool = False,
    ) -> list[TeamMember]:
        """List memberships of a team visible to an active member."""
        await self.require_membership(team_id, actor_user_id)

        filters: dict[str, Any] = {"team_id": team_id}
        if not include_inactive:
            filters["status"] = list(LIVE_STATUSES)
        return await self._call(
            "Failed to list team members",
            self.store.members.select(filters, order_by="created_at"),
        )

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def invite_member(
        self,
        team_id: str,
        actor_user_id: str,
        user_id: str | None = None,
        email: str | None = None,
        role: MembershipRole | str = MembershipRole.MEMBER,
    ) -> TeamMember:
        """Invite a user (by id, or by email before they register).

        Re-inviting a pending user refreshes the invite in place; re-inviting
        a former member resets their row to pending.
        """
        normalized_email = normalize_email(email)
        if not user_id and not normalized_email:
            raise ValidationError("Target user is required")

        role = self._parse_role(role)
        if role not in INVITABLE_ROLES:
            raise ValidationError("Use ownership transfer to assign the owner role")

        team = await self.get_team(team_id)
        if team.is_personal:
            raise ValidationError("Cannot invite members to personal teams")

        await self.assert_manager(team_id, actor_user_id)

        if user_id:
            existing = await self.get_team_membership(team_id, user_id)
        else:
            existing = await self._find_membership(
                {"team_id": team_id, "email": normalized_email},
                "Failed to verify team membership",
            )
        now = utcnow()

        if existing is not None:
            if existing.status == MembershipStatus.PENDING:
                membership = await self._update_member(
                    existing.id,
                    {
                        "role": role,
                        "invited_by": actor_user_id,
                        "invited_at": now,
                        "updated_at": now,
                        "email": normalized_email or existing.email,
                        "user_id": user_id or existing.user_id,
                    },
                    "Failed to refresh invite",
                    conflict_message=LIVE_MEMBERSHIP_CONFLICT,
                )
                logger.info(f"Invite {membership.id} to team {team_id} refreshed by {actor_user_id}")
                return membership

            if existing.status == MembershipStatus.ACTIVE:
                raise ConflictError("User is already a team member")

            membership = await self._update_member(
                existing.id,
                {
                    "role": role,
                    "status": MembershipStatus.PENDING,
                    "invited_by": actor_user_id,
                    "invited_at": now,
                    "joined_at": None,
                    "left_at": None,
                    "updated_at": now,
                    "email": normalized_email or existing.email,
                    "user_id": user_id or existing.user_id,
                },
                "Failed to re-invite user",
                conflict_message=LIVE_MEMBERSHIP_CONFLICT,
            )
            logger.info(f"Former member {membership.id} re-invited to team {team_id} by {actor_user_id}")
            return membership

        membership = await self._call(
            "Failed to invite member",
            self.store.members.insert({
                "team_id": team_id,
                "user_id": user_id,
                "email": normalized_email,
                "role": role,
                "status": MembershipStatus.PENDING,
                "invited_by": actor_user_id,
                "invited_at": now,
                "created_by": actor_user_id,
                "created_at": now,
                "updated_at": now,
            }),
            conflict_message=LIVE_MEMBERSHIP_CONFLICT,
        )
        logger.info(f"Member invited to team {team_id} by {actor_user_id} (membership {membership.id})")
        return membership

    async def accept_invite(self, team_id: str, user_id: str, user_email: str | None = None) -> TeamMember:
        """Activate a pending invite for the user.

        Falls back to a pending invite addressed to the user's email, which
        covers invites sent before the invitee had an account.
        """
        normalized_email = normalize_email(user_email)
        membership = await self.get_team_membership(team_id, user_id)

        # A former member may have been re-invited by email only
        if normalized_email and (membership is None or membership.status != MembershipStatus.PENDING):
            email_invite = await self._call(
                "Failed to verify invite by email",
                self.store.members.first(
                    {"team_id": team_id, "email": normalized_email, "status": MembershipStatus.PENDING},
                    order_by="-created_at",
                ),
            )
            # Skip invites already bound to a different account
            if email_invite is not None and email_invite.user_id in (None, user_id):
                membership = email_invite

        if membership is None:
            raise NotFoundError("Invite not found")
        if membership.status != MembershipStatus.PENDING:
            raise ConflictError("Invite is no longer pending")

        now = utcnow()
        updates: dict[str, Any] = {
            "status": MembershipStatus.ACTIVE,
            "joined_at": now,
            "updated_at": now,
        }
        if not membership.user_id:
            updates["user_id"] = user_id
        if normalized_email and not membership.email:
            updates["email"] = normalized_email

        accepted = await self._update_member(
            membership.id,
            updates,
            "Failed to accept invite",
            conflict_message=LIVE_MEMBERSHIP_CONFLICT,
        )
        logger.info(f"User {user_id} joined team {team_id}")
        return accepted

    # ------------------------------------------------------------------
    # Member management
    # ------------------------------------------------------------------

    async def update_member(
        self,
        team_id: str,
        target_user_id: str,
        actor_user_id: str,
        role: MembershipRole | str | None = None,
        status: MembershipStatus | str | None = None,
    ) -> TeamMember:
        """Change a member's role and/or status (admins and owners)."""
        actor_membership = await self.assert_manager(team_id, actor_user_id)

        membership = await self._find_target_membership(team_id, target_user_id)
        if membership is None:
            raise NotFoundError("Team member not found")

        is_self = membership.user_id == actor_user_id
        if is_self and role and role != membership.role:
            raise ValidationError("Use ownership transfer or leave actions for yourself")

        now = utcnow()
        updates: dict[str, Any] = {"updated_at": now}

        if role:
            if actor_membership.role not in MANAGER_ROLES:
                raise ForbiddenError("Only admins or owners can change roles")
            new_role = self._parse_role(role)
            if membership.role == MembershipRole.OWNER and new_role != MembershipRole.OWNER:
                raise ValidationError("Use ownership transfer to change owner role")
            if new_role == MembershipRole.OWNER and membership.role != MembershipRole.OWNER:
                raise ValidationError("Use ownership transfer to assign the owner role")
            updates["role"] = new_role

        if status:
            new_status = self._parse_status(status)
            if membership.role == MembershipRole.OWNER:
                raise ForbiddenError("Cannot change the status of the team owner")

            if new_status == MembershipStatus.ACTIVE and membership.status == MembershipStatus.PENDING:
                if is_self:
                    raise ValidationError("Self-activation handled via accept endpoint")
                updates["status"] = MembershipStatus.ACTIVE
                updates["joined_at"] = now
            elif new_status == MembershipStatus.PENDING:
                updates["status"] = MembershipStatus.PENDING
                updates["joined_at"] = None
            elif new_status in (MembershipStatus.BLOCKED, MembershipStatus.LEFT, MembershipStatus.REMOVED):
                updates["status"] = new_status
                updates["left_at"] = now
            else:
                raise ValidationError("Unsupported status transition")

        updated = await self._update_member(
            membership.id,
            updates,
            "Failed to update team member",
            conflict_message=LIVE_MEMBERSHIP_CONFLICT,
        )
        if len(updates) > 1:
            logger.info(
                f"Member {target_user_id} of team {team_id} updated by {actor_user_id}: "
                f"{', '.join(k for k in updates if k != 'updated_at')}"
            )
        return updated

    async def remove_member(self, team_id: str, target_user_id: str, actor_user_id: str) -> TeamMember:
        """Remove another member, or leave the team when target is the actor."""
        now = utcnow()

        if target_user_id == actor_user_id:
            team = await self.get_team(team_id)
            if team.owner_id == actor_user_id:
                raise ValidationError("Transfer ownership before leaving the team")

            membership = await self.require_membership(team_id, actor_user_id, allow_statuses=LIVE_STATUSES)
            if membership.role == MembershipRole.OWNER:
                raise ValidationError("Transfer ownership before leaving the team")

            left = await self._update_member(
                membership.id,
                {"status": MembershipStatus.LEFT, "left_at": now, "updated_at": now},
                "Failed to leave team",
            )
            logger.info(f"User {actor_user_id} left team {team_id}")
            return left

        await self.assert_manager(team_id, actor_user_id)

        membership = await self._find_target_membership(team_id, target_user_id)
        if membership is None:
            raise NotFoundError("Team member not found")
        if membership.role == MembershipRole.OWNER:
            raise ForbiddenError("Cannot remove the team owner")

        removed = await self._update_member(
            membership.id,
            {"status": MembershipStatus.REMOVED, "left_at": now, "updated_at": now},
            "Failed to remove member",
        )
        logger.info(f"User {target_user_id} removed from team {team_id} by {actor_user_id}")
        return removed

    # ------------------------------------------------------------------
    # Ownership transfer
    # ------------------------------------------------------------------

    async def _reassign_team_owner(self, team_id: str, owner_id: str) -> Team:
        team = await self._call(
            "Failed to update team owner",
            self.store.teams.update({"id": team_id}, {"owner_id": owner_id, "updated_at": utcnow()}),
        )
        if team is None:
            raise NotFoundError("Team not found")
        return team

    async def _restore_role(self, membership_id: str, role: MembershipRole | str) -> None:
        await self.store.members.update({"id": membership_id}, {"role": role, "updated_at": utcnow()})

    async def transfer_ownership(self, team_id: str, actor_user_id: str, target_user_id: str) -> Team:
        """Move the owner role from the actor to another active member.

        Runs three writes: demote the current owner to admin, promote the
        target to owner, then repoint the team's owner_id. A failing write
        undoes the earlier ones in reverse order.
        """
        if not target_user_id:
            raise ValidationError("Target user is required")

        actor_membership = await self.assert_owner(team_id, actor_user_id)
        if target_user_id == actor_user_id:
            raise ValidationError("You already own this team")

        target_membership = await self.get_team_membership(team_id, target_user_id)
        if target_membership is None or target_membership.status != MembershipStatus.ACTIVE:
            raise ValidationError("New owner must be an active team member")

        original_target_role = target_membership.role
        now = utcnow()

        # Demote first: the store allows a single owner row per team
        seq = CompensatingSequence("transfer ownership")
        seq.add(
            "demote current owner",
            lambda: self._update_member(
                actor_membership.id,
                {"role": MembershipRole.ADMIN, "updated_at": now},
                "Failed to update current owner role",
            ),
            compensate=lambda _: self._restore_role(actor_membership.id, MembershipRole.OWNER),
        )
        seq.add(
            "promote new owner",
            lambda: self._update_member(
                target_membership.id,
                {"role": MembershipRole.OWNER, "status": MembershipStatus.ACTIVE, "updated_at": now},
                "Failed to promote new owner",
            ),
            compensate=lambda _: self._restore_role(target_membership.id, original_target_role),
        )
        seq.add(
            "update team owner",
            lambda: self._reassign_team_owner(team_id, target_user_id),
        )
        results = await seq.run()

        logger.info(f"Ownership of team {team_id} transferred from {actor_user_id} to {target_user_id}")
        return results["update team owner"]
