"""
REST (Supabase / PostgREST) storage backend.

Uses the same table layout as the relational backend. The tables are not
created over REST; generate the SQL and apply it in the Supabase SQL editor:
    python -m db.schema --generate postgres

PostgREST cannot group rows, so the exact view count comes from the server
and the groupings are built from the fetched views.
"""

import asyncio
from typing import Any

from db.analytics import summarize_views
from db.base import Collection, StorageBackend
from db.exceptions import BackendError, ConfigError
from models import AnalyticsSummary, BusinessCard, CardView, SupabaseConfig, TeamMember
from utils.logging import get_logger
from utils.time import ms_to_iso_date

logger = get_logger("db.backends.supabase")

# PostgREST returns at most this many rows per request by default
PAGE_SIZE = 1000


class SupabaseBackend(StorageBackend):
    """
    Supabase backend via supabase-py.

    A pre-built client can be passed in; otherwise one is created on connect.
    """

    def __init__(self, config: SupabaseConfig, client: Any = None):
        super().__init__()
        missing = [f for f in ("url", "key") if not getattr(config, f)]
        if missing:
            raise ConfigError(f"Supabase configuration is missing: {', '.join(missing)}")
        self._url = config.url
        self._key = config.key
        self._injected_client = client
        self._client = None

    @property
    def name(self) -> str:
        return "supabase"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _open(self) -> None:
        if self._client is not None:
            return
        if self._injected_client is not None:
            self._client = self._injected_client
            return

        from supabase import create_client

        self._client = create_client(self._url, self._key)
        logger.info("[STORAGE:SUPABASE] Client initialized successfully")

    async def _close(self) -> None:
        self._client = None

    def _table(self, collection: Collection):
        return self._client.table(collection.value)

    async def _execute(self, build) -> Any:
        """Build and execute a request on a worker thread."""
        return await asyncio.to_thread(lambda: build().execute())

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
        response = await self._execute(
            lambda: self._table(Collection.CARDS).select("data").eq("id", card_id).limit(1)
        )
        if not response.data:
            return None
        return BusinessCard.from_record(response.data[0]["data"])

    async def _fetch_cards(
        self, user_id: str | None = None, team_id: str | None = None
    ) -> list[BusinessCard]:
        def build():
            query = self._table(Collection.CARDS).select("data")
            if user_id is not None:
                query = query.eq("user_id", user_id)
            if team_id is not None:
                query = query.eq("team_id", team_id)
            return query.order("created_at").order("id")

        rows = await self._fetch_all(build)
        return [BusinessCard.from_record(row["data"]) for row in rows]

    async def _insert_card(self, card: BusinessCard) -> None:
        await self._execute(lambda: self._table(Collection.CARDS).insert(self._card_row(card)))

    async def _replace_card(self, card: BusinessCard) -> None:
        row = self._card_row(card)
        row.pop("id")
        await self._execute(
            lambda: self._table(Collection.CARDS).update(row).eq("id", card.id)
        )

    async def _remove_card(self, card_id: str) -> bool:
        response = await self._execute(
            lambda: self._table(Collection.CARDS).delete().eq("id", card_id)
        )
        return bool(response.data)

    # =========================================================================
    # TEAM MEMBERS
    # =========================================================================

    async def _fetch_team_members(self, team_id: str) -> list[TeamMember]:
        rows = await self._fetch_all(
            lambda: self._table(Collection.TEAM_MEMBERS)
            .select("data")
            .eq("team_id", team_id)
            .order("created_at")
            .order("id")
        )
        return [TeamMember.from_record(row["data"]) for row in rows]

    async def _fetch_team_member(self, team_id: str, member_id: str) -> TeamMember | None:
        response = await self._execute(
            lambda: self._table(Collection.TEAM_MEMBERS)
            .select("data")
            .eq("team_id", team_id)
            .eq("id", member_id)
            .limit(1)
        )
        if not response.data:
            return None
        return TeamMember.from_record(response.data[0]["data"])

    async def _insert_team_member(self, member: TeamMember) -> None:
        row = {
            "team_id": member.team_id,
            "id": member.id,
            "created_at": member.created_at,
            "updated_at": member.updated_at,
            "data": member.to_record(),
        }
        await self._execute(lambda: self._table(Collection.TEAM_MEMBERS).insert(row))

    async def _replace_team_member(self, member: TeamMember) -> None:
        values = {"updated_at": member.updated_at, "data": member.to_record()}
        await self._execute(
            lambda: self._table(Collection.TEAM_MEMBERS)
            .update(values)
            .eq("team_id", member.team_id)
            .eq("id", member.id)
        )

    async def _remove_team_member(self, team_id: str, member_id: str) -> bool:
        response = await self._execute(
            lambda: self._table(Collection.TEAM_MEMBERS)
            .delete()
            .eq("team_id", team_id)
            .eq("id", member_id)
        )
        return bool(response.data)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def _insert_view(self, view: CardView) -> None:
        row = {
            "id": view.id,
            "card_id": view.card_id,
            "timestamp": view.timestamp,
            "view_date": ms_to_iso_date(view.timestamp),
            "referrer": view.referrer,
            "country": view.country,
            "visitor": view.visitor_key,
            "data": view.to_record(),
        }
        await self._execute(lambda: self._table(Collection.CARD_VIEWS).insert(row))

    async def _summarize_views(self, card_id: str) -> AnalyticsSummary:
        count_response = await self._execute(
            lambda: self._table(Collection.CARD_VIEWS)
            .select("id", count="exact")
            .eq("card_id", card_id)
            .limit(1)
        )
        total = count_response.count or 0

        rows = await self._fetch_all(
            lambda: self._table(Collection.CARD_VIEWS)
            .select("data")
            .eq("card_id", card_id)
            .order("timestamp")
            .order("seq")
        )
        summary = summarize_views(CardView.from_record(row["data"]) for row in rows)
        return summary.model_copy(update={"total_views": total})

    async def _fetch_all(self, build) -> list[dict[str, Any]]:
        """Page through a select built fresh for each request."""
        rows: list[dict[str, Any]] = []
        start = 0
        while True:
            response = await self._execute(
                lambda: build().range(start, start + PAGE_SIZE - 1)
            )
            page = response.data or []
            rows.extend(page)
            if len(page) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def _clear_all(self) -> None:
        for collection in (Collection.CARD_VIEWS, Collection.TEAM_MEMBERS, Collection.CARDS):
            # PostgREST refuses unfiltered deletes
            await self._execute(lambda: self._table(collection).delete().neq("id", ""))

    async def _ensure_collection(self, collection: Collection) -> None:
        try:
            await self._execute(lambda: self._table(collection).select("id").limit(1))
        except Exception as e:
            raise BackendError(
                f"Table {collection.value} is not available: {e}. "
                "Generate it with: python -m db.schema --generate postgres"
            ) from e
        logger.info(f"[STORAGE:SUPABASE] Table {collection.value} is available")

    async def _drop_collection(self, collection: Collection) -> None:
        # DDL is not available over REST; the rows are removed instead
        await self._execute(lambda: self._table(collection).delete().neq("id", ""))
        logger.info(f"[STORAGE:SUPABASE] Emptied table {collection.value}")
