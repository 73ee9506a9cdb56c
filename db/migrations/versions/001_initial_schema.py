"""
Migration: initial_schema
Version: 001
Created: 2024-03-02

Description:
    Creates the business_cards table/collection.
"""

from db.base import Collection

DESCRIPTION = "Create business_cards"


async def upgrade(backend):
    """
    Apply the migration.

    Args:
        backend: Connected StorageBackend
    """
    await backend.ensure_collection(Collection.CARDS)


async def downgrade(backend):
    """
    Reverse the migration. Removes every stored card.

    Args:
        backend: Connected StorageBackend
    """
    await backend.drop_collection(Collection.CARDS)
