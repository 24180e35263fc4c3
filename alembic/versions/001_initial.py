"""Initial schema

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_PREDICATE = "status IN ('pending', 'active')"
OWNER_PREDICATE = "role = 'owner'"


def upgrade() -> None:
    # Teams table
    op.create_table(
        'teams',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('is_personal', sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('created_by', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_teams_owner_id', 'teams', ['owner_id'])
    # One personal team per user
    op.create_index(
        'uq_teams_personal_owner',
        'teams',
        ['owner_id'],
        unique=True,
        postgresql_where=sa.text('is_personal'),
        sqlite_where=sa.text('is_personal = 1'),
    )

    # Team members table
    op.create_table(
        'team_members',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('team_id', sa.String(36), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), server_default='member', nullable=False),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('invited_by', sa.String(64), nullable=True),
        sa.Column('invited_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('left_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_team_members_team_id', 'team_members', ['team_id'])
    op.create_index('ix_team_members_user_id', 'team_members', ['user_id'])
    op.create_index('ix_team_members_team_email', 'team_members', ['team_id', 'email'])
    # At most one pending/active membership per (team, user)
    op.create_index(
        'uq_team_members_live_team_user',
        'team_members',
        ['team_id', 'user_id'],
        unique=True,
        postgresql_where=sa.text(LIVE_PREDICATE),
        sqlite_where=sa.text(LIVE_PREDICATE),
    )
    # Exactly one owner row per team
    op.create_index(
        'uq_team_members_single_owner',
        'team_members',
        ['team_id'],
        unique=True,
        postgresql_where=sa.text(OWNER_PREDICATE),
        sqlite_where=sa.text(OWNER_PREDICATE),
    )


def downgrade() -> None:
    op.drop_index('uq_team_members_single_owner', table_name='team_members')
    op.drop_index('uq_team_members_live_team_user', table_name='team_members')
    op.drop_index('ix_team_members_team_email', table_name='team_members')
    op.drop_index('ix_team_members_user_id', table_name='team_members')
    op.drop_index('ix_team_members_team_id', table_name='team_members')
    op.drop_table('team_members')

    op.drop_index('uq_teams_personal_owner', table_name='teams')
    op.drop_index('ix_teams_owner_id', table_name='teams')
    op.drop_table('teams')
