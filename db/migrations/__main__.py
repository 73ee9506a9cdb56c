"""
Migration CLI.

Usage:
    python -m db.migrations migrate                 # Run all pending migrations
    python -m db.migrations rollback --target 1     # Roll back to version 1
    python -m db.migrations status                  # Show migration status
    python -m db.migrations create "name"           # Create new migration file

The provider is the persisted configuration, or DB_PROVIDER when none has
been saved yet.
"""

import argparse
import asyncio
import re
import sys
from datetime import datetime

from db.migrations.runner import MIGRATIONS_DIR, NAME_PATTERN


def _service():
    from db.service import StorageService

    return StorageService.from_settings()


async def _migrate() -> None:
    service = _service()
    try:
        await service.initialize(run_migrations=False)
        before = await service.get_database_version()
        applied = await service.run_migrations()
        after = await service.get_database_version()
    finally:
        await service.shutdown()

    if applied:
        print(f"✓ Migrated {service.backend_name or 'backend'} from version {before} to {after}")
    else:
        print(f"✓ No pending migrations (version {after})")


async def _rollback(target: int) -> None:
    service = _service()
    try:
        await service.initialize(run_migrations=False)
        before = await service.get_database_version()
        rolled_back = await service.rollback_migrations(target)
        after = await service.get_database_version()
    finally:
        await service.shutdown()

    if rolled_back:
        print(f"✓ Rolled back from version {before} to {after}")
    else:
        print(f"✓ Nothing to roll back (version {after})")


async def _status() -> dict:
    service = _service()
    try:
        return await service.get_migration_status()
    finally:
        await service.shutdown()


def cmd_migrate(args):
    """Run pending migrations."""
    asyncio.run(_migrate())


def cmd_rollback(args):
    """Roll back migrations above the target version."""
    asyncio.run(_rollback(args.target))


def cmd_status(args):
    """Show migration status."""
    status = asyncio.run(_status())

    print("\n=== Migration Status ===\n")
    print(f"Current version:    {status['current_version']}")
    print(f"Latest version:     {status['latest_version']}")
    print(f"Applied:            {status['applied_count']}")
    print(f"Pending:            {status['pending_count']}")

    if status["pending_migrations"]:
        print("\nPending migrations:")
        for m in status["pending_migrations"]:
            desc = f" - {m['description']}" if m["description"] else ""
            print(f"  • {m['version']:03d}_{m['name']}{desc}")

    print()


def cmd_create(args):
    """Create a new migration file."""
    name = args.name.lower().strip().replace(" ", "_").replace("-", "_")
    if not re.fullmatch(NAME_PATTERN, name):
        print(f"✗ Invalid migration name: {args.name!r} (use letters, digits, spaces, - or _)")
        sys.exit(1)

    existing = sorted(p for p in MIGRATIONS_DIR.glob("[0-9][0-9][0-9]_*.py"))
    next_version = int(existing[-1].name[:3]) + 1 if existing else 1

    version = f"{next_version:03d}"
    filepath = MIGRATIONS_DIR / f"{version}_{name}.py"
    MIGRATIONS_DIR.mkdir(parents=True, exist_ok=True)

    template = f'''"""
Migration: {name}
Version: {version}
Created: {datetime.now().date().isoformat()}

Description:
    Describe what this migration does.
"""

from db.base import Collection

DESCRIPTION = "{name.replace("_", " ")}"


async def upgrade(backend):
    """
    Apply the migration. Must be safe to run again on a provisioned backend.

    Args:
        backend: Connected StorageBackend
    """


async def downgrade(backend):
    """
    Reverse the migration.

    Args:
        backend: Connected StorageBackend
    """
'''

    filepath.write_text(template)
    print(f"✓ Created migration: {filepath}")
    print("  Edit the file to add your migration logic")


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(
        description="Schema migration management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m db.migrations migrate                 Run all pending migrations
    python -m db.migrations rollback --target 0     Revert every migration
    python -m db.migrations status                  Show migration status
    python -m db.migrations create "add card tags"  Create new migration file
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    migrate_parser = subparsers.add_parser("migrate", help="Run pending migrations")
    migrate_parser.set_defaults(func=cmd_migrate)

    rollback_parser = subparsers.add_parser("rollback", help="Roll back migrations")
    rollback_parser.add_argument(
        "--target", "-t", type=int, required=True, help="Version to roll back to"
    )
    rollback_parser.set_defaults(func=cmd_rollback)

    status_parser = subparsers.add_parser("status", help="Show migration status")
    status_parser.set_defaults(func=cmd_status)

    create_parser = subparsers.add_parser("create", help="Create new migration")
    create_parser.add_argument("name", help="Migration name (e.g., 'add_card_tags')")
    create_parser.set_defaults(func=cmd_create)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    from utils.logging import setup_logging_from_settings

    setup_logging_from_settings()
    args.func(args)


if __name__ == "__main__":
    main()
