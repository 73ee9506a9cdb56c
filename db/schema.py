"""
Unified Database Schema Definition

This is the SINGLE SOURCE OF TRUTH for the relational layout shared by the
postgres and supabase providers.

Each table keeps the columns the providers filter, order or group on, and the
full record as JSON in ``data``.

To regenerate the SQL for Supabase (apply it in the SQL editor):
    python -m db.schema --generate postgres
"""

import argparse

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.schema import CreateIndex, CreateTable

from db.base import Collection

metadata = MetaData()

# JSONB on Postgres, plain JSON elsewhere
JSONData = JSON().with_variant(postgresql.JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
SequenceId = BigInteger().with_variant(Integer(), "sqlite")


business_cards = Table(
    Collection.CARDS.value,
    metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(128), index=True),
    Column("team_id", String(128), index=True),
    Column("name", String(255), nullable=False),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
    Column("data", JSONData, nullable=False),
)

team_members = Table(
    Collection.TEAM_MEMBERS.value,
    metadata,
    Column("team_id", String(128), primary_key=True),
    Column("id", String(64), primary_key=True),
    Column("created_at", BigInteger, nullable=False),
    Column("updated_at", BigInteger, nullable=False),
    Column("data", JSONData, nullable=False),
)

card_views = Table(
    Collection.CARD_VIEWS.value,
    metadata,
    # Recording order, breaks ties between equal timestamps
    Column("seq", SequenceId, primary_key=True, autoincrement=True),
    Column("id", String(64), nullable=False, unique=True),
    Column("card_id", String(64), nullable=False, index=True),
    Column("timestamp", BigInteger, nullable=False),
    Column("view_date", String(10), nullable=False),
    Column("referrer", String(255)),
    Column("country", String(128)),
    Column("visitor", String(255)),
    Column("data", JSONData, nullable=False),
)

TABLES: dict[Collection, Table] = {
    Collection.CARDS: business_cards,
    Collection.TEAM_MEMBERS: team_members,
    Collection.CARD_VIEWS: card_views,
}


def get_table(collection: Collection) -> Table:
    return TABLES[collection]


def get_table_names() -> list[str]:
    return [table.name for table in TABLES.values()]


def _generate(dialect) -> str:
    statements = []
    for table in TABLES.values():
        ddl = str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)).strip()
        statements.append(ddl + ";")
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            idx = str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)).strip()
            statements.append(idx + ";")
    return "\n\n".join(statements)


def get_postgres_schema() -> str:
    """PostgreSQL/Supabase DDL for all tables."""
    return _generate(postgresql.dialect())


def get_sqlite_schema() -> str:
    return _generate(sqlite.dialect())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Generate database schema SQL")
    parser.add_argument(
        "--generate",
        choices=["sqlite", "postgres", "both"],
        default="postgres",
        help="Which dialect to generate",
    )
    parser.add_argument("--output", "-o", help="Write to file instead of stdout")
    args = parser.parse_args(argv)

    output_lines = []

    if args.generate in ("sqlite", "both"):
        output_lines.append("-- ===========================================")
        output_lines.append("-- SQLite Schema")
        output_lines.append("-- ===========================================")
        output_lines.append("")
        output_lines.append(get_sqlite_schema())
        output_lines.append("")

    if args.generate in ("postgres", "both"):
        output_lines.append("-- ===========================================")
        output_lines.append("-- PostgreSQL/Supabase Schema")
        output_lines.append("-- ===========================================")
        output_lines.append("")
        output_lines.append(get_postgres_schema())
        output_lines.append("")

    output = "\n".join(output_lines)

    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(f"Schema written to {args.output}")
    else:
        print(output)


if __name__ == "__main__":
    main()
