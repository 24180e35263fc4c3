"""Seed script to populate database with sample teams."""

import asyncio
import sys

sys.path.insert(0, ".")

from app.db import async_session_maker, close_db, init_db
from app.models.membership import MembershipRole, MembershipStatus
from app.services.team_service import TeamService
from app.services.team_store import TeamStore
from app.settings import settings

ALICE = "alice"
BOB = "bob"
CAROL = "carol"


async def seed_database():
    """Seed the database with sample data."""
    await init_db()

    store = TeamStore(async_session_maker)
    service = TeamService(
        store,
        max_teams_per_user=settings.max_teams_per_user,
        personal_team_name=settings.personal_team_name,
        personal_team_description=settings.personal_team_description,
    )

    # Check if already seeded
    if await store.teams.first({"owner_id": ALICE, "is_personal": False}):
        print("Database already seeded. Skipping.")
        return

    print("Seeding database...")

    for user_id in (ALICE, BOB, CAROL):
        team = await service.ensure_personal_team(user_id)
        print(f"Personal team for {user_id}: {team.id}")

    team = await service.create_team(
        "Acme Prompt Library",
        ALICE,
        description="Shared prompts for the Acme product team",
    )
    print(f"Created team: {team.name} ({team.id})")

    await service.invite_member(team.id, ALICE, user_id=BOB, role=MembershipRole.ADMIN)
    await service.accept_invite(team.id, BOB)
    await service.invite_member(team.id, ALICE, user_id=CAROL)
    await service.invite_member(team.id, BOB, email="dave@example.com")
    print("Added members: bob (admin), carol (pending), dave@example.com (pending)")

    members = await service.list_members(team.id, ALICE)
    active = [m for m in members if m.status == MembershipStatus.ACTIVE]
    print(f"\n✅ Database seeded successfully! {len(active)} active / {len(members)} live memberships")
    print("\nSend requests with the header 'X-User-ID: alice' (owner), 'bob' (admin) or 'carol' (invitee).")


async def main():
    try:
        await seed_database()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
