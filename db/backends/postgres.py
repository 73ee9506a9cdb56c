"""
Relational (PostgreSQL) storage backend.

Uses SQLAlchemy Core over a synchronous engine; each operation runs in a
worker thread inside its own transaction. Tables come from db/schema.py.
Analytics are aggregated in SQL.

Any SQLAlchemy URL is accepted through ``PostgresConfig.url``, which is how
the tests run this backend against SQLite.
"""

import asyncio
from typing import Any, Callable, TypeVar

from sqlalchemy import (
    Connection,
    Engine,
    create_engine,
    delete,
    func,
    insert,
    literal,
    select,
    text,
    update,
)
from sqlalchemy.engine import URL, make_url
from sqlalchemy.pool import StaticPool

from db.base import Collection, StorageBackend
from db.exceptions import ConfigError
from db.schema import business_cards, card_views, get_table, team_members
from models import (
    DEFAULT_COUNTRY,
    DEFAULT_REFERRER,
    AnalyticsSummary,
    BusinessCard,
    CardView,
    LocationCount,
    PostgresConfig,
    ReferrerCount,
    TeamMember,
    TimelinePoint,
)
from utils.logging import get_logger
from utils.time import ms_to_iso_date

logger = get_logger("db.backends.postgres")

T = TypeVar("T")


def build_url(config: PostgresConfig) -> URL:
    """SQLAlchemy URL for a PostgresConfig. ``url`` wins over the individual fields."""
    if config.url:
        return make_url(config.url)

    missing = [f for f in ("host", "database", "user") if not getattr(config, f)]
    if missing:
        raise ConfigError(f"PostgreSQL configuration is missing: {', '.join(missing)}")

    return URL.create(
        "postgresql+psycopg2",
        username=config.user,
        password=config.password or None,
        host=config.host,
        port=config.port,
        database=config.database,
        query={"sslmode": "require"} if config.ssl else {},
    )


class PostgresBackend(StorageBackend):
    """Relational backend over SQLAlchemy."""

    def __init__(self, config: PostgresConfig):
        super().__init__()
        self._url = build_url(config)
        self._engine: Engine | None = None

    @property
    def name(self) -> str:
        return "postgres"

    def _create_engine(self) -> Engine:
        if self._url.get_backend_name() == "sqlite":
            # One shared connection so in-memory databases survive across threads
            return create_engine(
                self._url,
                future=True,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        return create_engine(
            self._url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )

    async def _run(self, fn: Callable[[Connection], T]) -> T:
        """Run ``fn`` in a transaction on a worker thread."""
        engine = self._engine

        def _tx() -> T:
            with engine.begin() as conn:
                return fn(conn)

        return await asyncio.to_thread(_tx)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _open(self) -> None:
        if self._engine is None:
            self._engine = self._create_engine()
        await self._run(lambda conn: conn.execute(text("SELECT 1")))
        logger.info(
            f"[STORAGE:POSTGRES] Engine ready ({self._url.render_as_string(hide_password=True)})"
        )

    async def _close(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            await asyncio.to_thread(engine.dispose)

    # =========================================================================
    # CARDS
    # =========================================================================

    @staticmethod
    def _card_row(card: BusinessCard) -> dict[str, Any]:
        return {
            "id": card.id,
            "user_id": card.user_id,
            "team_id": card.team_id,
            "name": card.name,
            "created_at": card.created_at,
            "updated_at": card.updated_at,
            "data": card.to_record(),
        }

    async def _fetch_card(self, card_id: str) -> BusinessCard | None:
        stmt = select(business_cards.c.data).where(business_cards.c.id == card_id)
        data = await self._run(lambda conn: conn.execute(stmt).scalar_one_or_none())
        return BusinessCard.from_record(data) if data is not None else None

    async def _fetch_cards(
        self, user_id: str | None = None, team_id: str | None = None
    ) -> list[BusinessCard]:
        stmt = select(business_cards.c.data).order_by(
            business_cards.c.created_at, business_cards.c.id
        )
        if user_id is not None:
            stmt = stmt.where(business_cards.c.user_id == user_id)
        if team_id is not None:
            stmt = stmt.where(business_cards.c.team_id == team_id)
        rows = await self._run(lambda conn: conn.execute(stmt).scalars().all())
        return [BusinessCard.from_record(data) for data in rows]

    async def _insert_card(self, card: BusinessCard) -> None:
        stmt = insert(business_cards).values(**self._card_row(card))
        await self._run(lambda conn: conn.execute(stmt))

    async def _replace_card(self, card: BusinessCard) -> None:
        row = self._card_row(card)
        row.pop("id")
        stmt = update(business_cards).where(business_cards.c.id == card.id).values(**row)
        await self._run(lambda conn: conn.execute(stmt))

    async def _remove_card(self, card_id: str) -> bool:
        stmt = delete(business_cards).where(business_cards.c.id == card_id)
        result = await self._run(lambda conn: conn.execute(stmt).rowcount)
        return result > 0

    # =========================================================================
    # TEAM MEMBERS
    # =========================================================================

    @staticmethod
    def _member_row(member: TeamMember) -> dict[str, Any]:
        return {
            "team_id": member.team_id,
            "id": member.id,
            "created_at": member.created_at,
            "updated_at": member.updated_at,
            "data": member.to_record(),
        }

    async def _fetch_team_members(self, team_id: str) -> list[TeamMember]:
        stmt = (
            select(team_members.c.data)
            .where(team_members.c.team_id == team_id)
            .order_by(team_members.c.created_at, team_members.c.id)
        )
        rows = await self._run(lambda conn: conn.execute(stmt).scalars().all())
        return [TeamMember.from_record(data) for data in rows]

    async def _fetch_team_member(self, team_id: str, member_id: str) -> TeamMember | None:
        stmt = select(team_members.c.data).where(
            team_members.c.team_id == team_id, team_members.c.id == member_id
        )
        data = await self._run(lambda conn: conn.execute(stmt).scalar_one_or_none())
        return TeamMember.from_record(data) if data is not None else None

    async def _insert_team_member(self, member: TeamMember) -> None:
        stmt = insert(team_members).values(**self._member_row(member))
        await self._run(lambda conn: conn.execute(stmt))

    async def _replace_team_member(self, member: TeamMember) -> None:
        stmt = (
            update(team_members)
            .where(team_members.c.team_id == member.team_id, team_members.c.id == member.id)
            .values(updated_at=member.updated_at, data=member.to_record())
        )
        await self._run(lambda conn: conn.execute(stmt))

    async def _remove_team_member(self, team_id: str, member_id: str) -> bool:
        stmt = delete(team_members).where(
            team_members.c.team_id == team_id, team_members.c.id == member_id
        )
        result = await self._run(lambda conn: conn.execute(stmt).rowcount)
        return result > 0

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def _insert_view(self, view: CardView) -> None:
        stmt = insert(card_views).values(
            id=view.id,
            card_id=view.card_id,
            timestamp=view.timestamp,
            view_date=ms_to_iso_date(view.timestamp),
            referrer=view.referrer,
            country=view.country,
            visitor=view.visitor_key,
            data=view.to_record(),
        )
        await self._run(lambda conn: conn.execute(stmt))

    async def _summarize_views(self, card_id: str) -> AnalyticsSummary:
        # Position of each view in (timestamp, recording order), for first-seen ties
        ranked = (
            select(
                card_views.c.view_date,
                card_views.c.visitor,
                func.coalesce(card_views.c.referrer, literal(DEFAULT_REFERRER)).label("source"),
                func.coalesce(card_views.c.country, literal(DEFAULT_COUNTRY)).label("country"),
                func.row_number()
                .over(order_by=[card_views.c.timestamp, card_views.c.seq])
                .label("seen_order"),
            )
            .where(card_views.c.card_id == card_id)
            .subquery()
        )

        totals_stmt = select(
            func.count(),
            func.count(ranked.c.visitor.distinct()),
        ).select_from(ranked)

        def grouped(column):
            count = func.count().label("view_count")
            return (
                select(column, count)
                .group_by(column)
                .order_by(count.desc(), func.min(ranked.c.seen_order))
            )

        timeline_stmt = (
            select(ranked.c.view_date, func.count())
            .group_by(ranked.c.view_date)
            .order_by(ranked.c.view_date)
        )

        def _query(conn: Connection):
            total, unique = conn.execute(totals_stmt).one()
            referrers = conn.execute(grouped(ranked.c.source)).all()
            locations = conn.execute(grouped(ranked.c.country)).all()
            timeline = conn.execute(timeline_stmt).all()
            return total, unique, referrers, locations, timeline

        total, unique, referrers, locations, timeline = await self._run(_query)
        return AnalyticsSummary(
            total_views=total,
            unique_visitors=unique,
            referrers=[ReferrerCount(source=s, count=c) for s, c in referrers],
            timeline=[TimelinePoint(date=d, views=c) for d, c in timeline],
            locations=[LocationCount(country=s, count=c) for s, c in locations],
        )

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def _clear_all(self) -> None:
        def _wipe(conn: Connection) -> None:
            for table in (card_views, team_members, business_cards):
                if conn.dialect.has_table(conn, table.name):
                    conn.execute(delete(table))

        await self._run(_wipe)

    async def _ensure_collection(self, collection: Collection) -> None:
        table = get_table(collection)
        await self._run(lambda conn: table.create(conn, checkfirst=True))
        logger.info(f"[STORAGE:POSTGRES] Ensured table {table.name}")

    async def _drop_collection(self, collection: Collection) -> None:
        table = get_table(collection)
        await self._run(lambda conn: table.drop(conn, checkfirst=True))
        logger.info(f"[STORAGE:POSTGRES] Dropped table {table.name}")
