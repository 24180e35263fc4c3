"""Tests for the teams HTTP API."""

import pytest

from conftest import ADMIN, MAX_TEAMS, MEMBER, OUTSIDER, OWNER, as_user


class TestHealth:
    """Test health endpoints."""

    @pytest.mark.parametrize("path", ["/health", "/healthz"])
    async def test_health(self, client, path):
        """Test health checks need no identity."""
        response = await client.get(path)

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "X-Request-ID" in response.headers


class TestIdentity:
    """Test caller identity resolution."""

    async def test_missing_identity(self, client):
        """Test requests without the identity header are rejected."""
        response = await client.get("/teams")

        assert response.status_code == 401


class TestTeamsApi:
    """Test team endpoints."""

    async def test_create_and_list(self, client):
        """Test a created team shows up in the caller's list."""
        response = await client.post("/teams", json={"name": "Docs"}, headers=as_user(OWNER))

        assert response.status_code == 201
        team = response.json()
        assert team["name"] == "Docs"
        assert team["owner_id"] == OWNER

        response = await client.get("/teams", headers=as_user(OWNER))
        assert response.status_code == 200
        [summary] = response.json()
        assert summary["team"]["id"] == team["id"]
        assert summary["membership"]["role"] == "owner"

    async def test_blank_name(self, client):
        """Test validation errors map to 400."""
        response = await client.post("/teams", json={"name": "  "}, headers=as_user(OWNER))

        assert response.status_code == 400
        assert response.json() == {"detail": "Team name is required", "code": "VALIDATION_FAILED"}

    async def test_limit_exceeded(self, client):
        """Test the team limit maps to 403."""
        for i in range(MAX_TEAMS):
            await client.post("/teams", json={"name": f"Team {i}"}, headers=as_user(OWNER))

        response = await client.post("/teams", json={"name": "Extra"}, headers=as_user(OWNER))

        assert response.status_code == 403
        assert response.json()["code"] == "LIMIT_EXCEEDED"

    async def test_persistence_failure_is_generic(self, client, store):
        """Test store failures return a generic 500."""
        store.teams.fail_on("count")

        response = await client.post("/teams", json={"name": "Docs"}, headers=as_user(OWNER))

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error", "code": "PERSISTENCE_FAILED"}

    async def test_personal_team(self, client):
        """Test the personal team endpoint is idempotent."""
        first = await client.post("/teams/personal", headers=as_user(OWNER))
        second = await client.post("/teams/personal", headers=as_user(OWNER))

        assert first.status_code == 200
        assert first.json()["is_personal"] is True
        assert second.json()["id"] == first.json()["id"]

    async def test_get_team_detail(self, client, team):
        """Test team detail includes members."""
        response = await client.get(f"/teams/{team.id}", headers=as_user(MEMBER))

        assert response.status_code == 200
        body = response.json()
        assert body["team"]["id"] == team.id
        assert {m["user_id"] for m in body["members"]} == {OWNER, ADMIN, MEMBER}

    async def test_get_team_outsider(self, client, team):
        """Test outsiders are refused."""
        response = await client.get(f"/teams/{team.id}", headers=as_user(OUTSIDER))

        assert response.status_code == 403
        assert response.json()["detail"] == "You are not a member of this team"

    async def test_update_team(self, client, team):
        """Test admins can rename the team."""
        response = await client.patch(f"/teams/{team.id}", json={"name": "Renamed"}, headers=as_user(ADMIN))

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["description"] == "Shared prompts"

    async def test_delete_team(self, client, service, team):
        """Test the owner can delete the team."""
        response = await client.delete(f"/teams/{team.id}", headers=as_user(OWNER))

        assert response.status_code == 204
        assert await service.list_teams_for_user(OWNER) == []


class TestMembersApi:
    """Test membership endpoints."""

    async def test_invite_and_accept(self, client, team):
        """Test the invite then accept flow."""
        response = await client.post(
            f"/teams/{team.id}/members",
            json={"user_id": OUTSIDER, "role": "admin"},
            headers=as_user(OWNER),
        )
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        response = await client.post(f"/teams/{team.id}/members/accept", headers=as_user(OUTSIDER))
        assert response.status_code == 200
        assert response.json()["status"] == "active"
        assert response.json()["role"] == "admin"

    async def test_accept_email_invite(self, client, team):
        """Test email invites are claimed using the forwarded email."""
        await client.post(f"/teams/{team.id}/members", json={"email": "dave@example.com"}, headers=as_user(OWNER))

        response = await client.post(
            f"/teams/{team.id}/members/accept",
            headers=as_user("user-dave", email="Dave@example.com"),
        )

        assert response.status_code == 200
        assert response.json()["user_id"] == "user-dave"

    async def test_self_activation_accepts_invite(self, client, team):
        """Test PATCH members/me with status=active accepts the invite."""
        await client.post(f"/teams/{team.id}/members", json={"user_id": OUTSIDER}, headers=as_user(OWNER))

        response = await client.patch(
            f"/teams/{team.id}/members/me",
            json={"status": "active"},
            headers=as_user(OUTSIDER),
        )

        assert response.status_code == 200
        assert response.json()["user_id"] == OUTSIDER
        assert response.json()["status"] == "active"

    async def test_active_member_self_activation_is_unsupported(self, client, team):
        """Test PATCH members/me with status=active from an active manager is a 400."""
        response = await client.patch(
            f"/teams/{team.id}/members/me",
            json={"status": "active"},
            headers=as_user(ADMIN),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Unsupported status transition"

    async def test_invite_owner_role_rejected(self, client, team):
        """Test invites cannot grant ownership."""
        response = await client.post(
            f"/teams/{team.id}/members",
            json={"user_id": OUTSIDER, "role": "owner"},
            headers=as_user(OWNER),
        )

        assert response.status_code == 400

    async def test_invite_unknown_role(self, client, team):
        """Test request validation rejects unknown roles."""
        response = await client.post(
            f"/teams/{team.id}/members",
            json={"user_id": OUTSIDER, "role": "superuser"},
            headers=as_user(OWNER),
        )

        assert response.status_code == 422

    async def test_invite_active_member_conflicts(self, client, team):
        """Test conflicts map to 409."""
        response = await client.post(f"/teams/{team.id}/members", json={"user_id": MEMBER}, headers=as_user(OWNER))

        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    async def test_update_member_role(self, client, team):
        """Test a manager changes a member's role."""
        response = await client.patch(
            f"/teams/{team.id}/members/{MEMBER}",
            json={"role": "admin"},
            headers=as_user(OWNER),
        )

        assert response.status_code == 200
        assert response.json()["role"] == "admin"

    async def test_list_members(self, client, team):
        """Test listing hides former members unless asked."""
        await client.delete(f"/teams/{team.id}/members/{MEMBER}", headers=as_user(OWNER))

        live = await client.get(f"/teams/{team.id}/members", headers=as_user(ADMIN))
        everyone = await client.get(
            f"/teams/{team.id}/members",
            params={"include_inactive": "true"},
            headers=as_user(ADMIN),
        )

        assert {m["user_id"] for m in live.json()} == {OWNER, ADMIN}
        assert len(everyone.json()) == 3

    async def test_leave_with_me_alias(self, client, team):
        """Test a member leaves via DELETE members/me."""
        response = await client.delete(f"/teams/{team.id}/members/me", headers=as_user(MEMBER))

        assert response.status_code == 200
        assert response.json()["status"] == "left"

    async def test_owner_cannot_leave(self, client, team):
        """Test the owner gets a 400 when trying to leave."""
        response = await client.delete(f"/teams/{team.id}/members/me", headers=as_user(OWNER))

        assert response.status_code == 400
        assert response.json()["detail"] == "Transfer ownership before leaving the team"

    async def test_remove_member(self, client, team):
        """Test an admin removes a member."""
        response = await client.delete(f"/teams/{team.id}/members/{MEMBER}", headers=as_user(ADMIN))

        assert response.status_code == 200
        assert response.json()["status"] == "removed"

    async def test_remove_unknown_member(self, client, team):
        """Test removing a non-member maps to 404."""
        response = await client.delete(f"/teams/{team.id}/members/{OUTSIDER}", headers=as_user(OWNER))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_revoke_email_invite(self, client, team):
        """Test an email-only invite is revoked by its address."""
        await client.post(f"/teams/{team.id}/members", json={"email": "x@example.com"}, headers=as_user(OWNER))

        response = await client.delete(f"/teams/{team.id}/members/x@example.com", headers=as_user(OWNER))

        assert response.status_code == 200
        assert response.json()["email"] == "x@example.com"
        assert response.json()["status"] == "removed"

    async def test_transfer_ownership(self, client, team):
        """Test ownership moves to an active member."""
        response = await client.post(
            f"/teams/{team.id}/transfer",
            json={"new_owner_id": ADMIN},
            headers=as_user(OWNER),
        )

        assert response.status_code == 200
        assert response.json()["owner_id"] == ADMIN

        response = await client.get(f"/teams/{team.id}/members", headers=as_user(ADMIN))
        roles = {m["user_id"]: m["role"] for m in response.json()}
        assert roles[ADMIN] == "owner"
        assert roles[OWNER] == "admin"
