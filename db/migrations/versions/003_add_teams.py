"""
Migration: add_teams
Version: 003
Created: 2024-03-16

Description:
    Adds the team_members table/collection. Cards already carry an optional
    teamId, so nothing else changes.
"""

from db.base import Collection

DESCRIPTION = "Create team_members"


async def upgrade(backend):
    await backend.ensure_collection(Collection.TEAM_MEMBERS)


async def downgrade(backend):
    await backend.drop_collection(Collection.TEAM_MEMBERS)
