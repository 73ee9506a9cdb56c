"""
Migration: add_analytics
Version: 002
Created: 2024-03-09

Description:
    Adds the card_views table/collection used for view analytics.
"""

from db.base import Collection

DESCRIPTION = "Create card_views"


async def upgrade(backend):
    await backend.ensure_collection(Collection.CARD_VIEWS)


async def downgrade(backend):
    await backend.drop_collection(Collection.CARD_VIEWS)
