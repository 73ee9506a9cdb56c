"""
Abstract base class for storage backends.

StorageBackend owns the parts of the contract that must behave identically
across providers: the connection guard, id and timestamp stamping, duplicate
and not-found checks, and error logging/wrapping. Each provider implements
the storage primitives (the ``_``-prefixed abstract methods) against its own
medium.
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator

from db.exceptions import BackendError, NotConnectedError, StorageError
from models import (
    AnalyticsSummary,
    BusinessCard,
    CardView,
    TeamMember,
    TeamMemberUpdate,
)
from utils.logging import get_logger
from utils.time import now_ms

logger = get_logger("db.backends")


class Collection(str, Enum):
    """Logical collections (tables) managed by migrations."""

    CARDS = "business_cards"
    TEAM_MEMBERS = "team_members"
    CARD_VIEWS = "card_views"


def generate_id(prefix: str) -> str:
    """Collision-resistant id: ``<prefix>_<epoch-ms>_<random hex>``."""
    return f"{prefix}_{now_ms()}_{uuid.uuid4().hex[:8]}"


def _as_card(card: BusinessCard | dict[str, Any]) -> BusinessCard:
    if isinstance(card, BusinessCard):
        return card
    return BusinessCard.model_validate(card)


def _as_member(member: TeamMember | dict[str, Any]) -> TeamMember:
    if isinstance(member, TeamMember):
        return member
    return TeamMember.model_validate(member)


def _record_id(record: Any) -> str | None:
    """Id of a model or raw dict, for log context before validation."""
    if isinstance(record, dict):
        value = record.get("id")
        return value if isinstance(value, str) else None
    return getattr(record, "id", None)


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    All public operations are coroutines. Everything except ``connect``,
    ``disconnect`` and ``is_connected`` raises NotConnectedError before doing
    any I/O when the backend is not connected.
    """

    def __init__(self):
        self._connected = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider tag, e.g. ``local`` or ``postgres``."""
        pass

    @property
    def _tag(self) -> str:
        return f"[STORAGE:{self.name.upper()}]"

    # =========================================================================
    # CONNECTION LIFECYCLE
    # =========================================================================

    async def connect(self) -> bool:
        """
        Establish connectivity. Idempotent.

        Returns:
            True once connected
        """
        if self._connected:
            return True

        with self._wrap_errors("connect"):
            await self._open()

        self._connected = True
        logger.info(f"{self._tag} Connected")
        return True

    async def disconnect(self) -> None:
        """Release resources and drop cached state. Safe to call repeatedly."""
        was_connected = self._connected
        self._connected = False
        with self._wrap_errors("disconnect"):
            await self._close()
        if was_connected:
            logger.info(f"{self._tag} Disconnected")

    def is_connected(self) -> bool:
        return self._connected

    def _ensure_connected(self, operation: str) -> None:
        if not self._connected:
            raise NotConnectedError(self.name, operation)

    @contextmanager
    def _wrap_errors(self, operation: str, entity_id: str | None = None) -> Iterator[None]:
        """Log any failure with context, then re-raise it as a StorageError."""
        entity = f" ({entity_id})" if entity_id else ""
        try:
            yield
        except StorageError as e:
            if isinstance(e, BackendError) and e.provider is None:
                e.provider = self.name
                e.operation = operation
                e.entity_id = entity_id
            logger.error(f"{self._tag} {operation} failed{entity}: {e}")
            raise
        except Exception as e:
            logger.error(f"{self._tag} {operation} failed{entity}: {e}")
            raise BackendError(
                str(e) or type(e).__name__,
                provider=self.name,
                operation=operation,
                entity_id=entity_id,
            ) from e

    # =========================================================================
    # CARD OPERATIONS
    # =========================================================================

    async def get_card(self, card_id: str) -> BusinessCard | None:
        self._ensure_connected("get_card")
        with self._wrap_errors("get_card", card_id):
            return await self._fetch_card(card_id)

    async def get_cards(self) -> list[BusinessCard]:
        """All cards ordered by (created_at, id)."""
        self._ensure_connected("get_cards")
        with self._wrap_errors("get_cards"):
            return await self._fetch_cards()

    async def get_user_cards(self, user_id: str) -> list[BusinessCard]:
        self._ensure_connected("get_user_cards")
        with self._wrap_errors("get_user_cards", user_id):
            return await self._fetch_cards(user_id=user_id)

    async def get_team_cards(self, team_id: str) -> list[BusinessCard]:
        self._ensure_connected("get_team_cards")
        with self._wrap_errors("get_team_cards", team_id):
            return await self._fetch_cards(team_id=team_id)

    async def save_card(self, card: BusinessCard | dict[str, Any]) -> BusinessCard:
        """
        Persist a new card.

        Assigns an id when absent, stamps ``created_at`` when absent and sets
        ``updated_at`` to now (never earlier than ``created_at``).

        Raises:
            BackendError: a card with the same id already exists
        """
        self._ensure_connected("save_card")
        with self._wrap_errors("save_card", _record_id(card)):
            card = _as_card(card)
            if card.id and await self._fetch_card(card.id) is not None:
                raise BackendError(f"Card {card.id} already exists")

            now = now_ms()
            created_at = card.created_at if card.created_at is not None else now
            stored = card.model_copy(
                update={
                    "id": card.id or generate_id("card"),
                    "created_at": created_at,
                    "updated_at": max(now, created_at),
                },
                deep=True,
            )
            await self._insert_card(stored)
            logger.debug(f"{self._tag} Saved card {stored.id}")
            return stored

    async def update_card(self, card: BusinessCard | dict[str, Any]) -> BusinessCard:
        """
        Replace an existing card's fields.

        ``created_at`` is kept from the stored record and ``updated_at`` always
        moves forward.

        Raises:
            BackendError: the card has no id or no such card exists
        """
        self._ensure_connected("update_card")
        with self._wrap_errors("update_card", _record_id(card)):
            card = _as_card(card)
            if not card.id:
                raise BackendError("Card id is required for update")

            existing = await self._fetch_card(card.id)
            if existing is None:
                raise BackendError(f"Card {card.id} not found")

            stored = card.model_copy(
                update={
                    "created_at": existing.created_at,
                    "updated_at": max(now_ms(), (existing.updated_at or 0) + 1),
                },
                deep=True,
            )
            await self._replace_card(stored)
            logger.debug(f"{self._tag} Updated card {stored.id}")
            return stored

    async def delete_card(self, card_id: str) -> bool:
        """Hard delete. Returns True only if a record was removed."""
        self._ensure_connected("delete_card")
        with self._wrap_errors("delete_card", card_id):
            removed = await self._remove_card(card_id)
            if removed:
                logger.debug(f"{self._tag} Deleted card {card_id}")
            return removed

    # =========================================================================
    # TEAM OPERATIONS
    # =========================================================================

    async def get_team_members(self, team_id: str) -> list[TeamMember]:
        self._ensure_connected("get_team_members")
        with self._wrap_errors("get_team_members", team_id):
            return await self._fetch_team_members(team_id)

    async def add_team_member(
        self, team_id: str, member: TeamMember | dict[str, Any]
    ) -> TeamMember:
        self._ensure_connected("add_team_member")
        with self._wrap_errors("add_team_member", _record_id(member)):
            member = _as_member(member)
            if member.id and await self._fetch_team_member(team_id, member.id) is not None:
                raise BackendError(f"Team member {member.id} already exists in team {team_id}")

            now = now_ms()
            created_at = member.created_at if member.created_at is not None else now
            stored = member.model_copy(
                update={
                    "id": member.id or generate_id("member"),
                    "team_id": team_id,
                    "created_at": created_at,
                    "updated_at": max(now, created_at),
                }
            )
            await self._insert_team_member(stored)
            return stored

    async def update_team_member(
        self,
        team_id: str,
        member_id: str,
        updates: TeamMemberUpdate | dict[str, Any],
    ) -> TeamMember:
        """
        Merge ``updates`` onto a stored member of ``team_id``.

        Raises:
            BackendError: no such member in this team, or the update clears
                name, role or active
        """
        self._ensure_connected("update_team_member")
        with self._wrap_errors("update_team_member", member_id):
            if not isinstance(updates, TeamMemberUpdate):
                updates = TeamMemberUpdate.model_validate(updates)
            existing = await self._fetch_team_member(team_id, member_id)
            if existing is None:
                raise BackendError(f"Team member {member_id} not found in team {team_id}")

            # Re-validate the merged record
            stored = TeamMember.model_validate(
                {
                    **existing.model_dump(),
                    **updates.changes(),
                    "updated_at": max(now_ms(), (existing.updated_at or 0) + 1),
                }
            )
            await self._replace_team_member(stored)
            return stored

    async def remove_team_member(self, team_id: str, member_id: str) -> bool:
        self._ensure_connected("remove_team_member")
        with self._wrap_errors("remove_team_member", member_id):
            return await self._remove_team_member(team_id, member_id)

    # =========================================================================
    # ANALYTICS OPERATIONS
    # =========================================================================

    async def record_card_view(
        self, card_id: str, view_data: CardView | dict[str, Any] | None = None
    ) -> bool:
        """
        Append a view event for ``card_id``.

        The event always gets a fresh id. ``timestamp`` is taken from
        ``view_data`` when present, otherwise now.
        """
        self._ensure_connected("record_card_view")
        with self._wrap_errors("record_card_view", card_id):
            view = CardView.coerce(view_data)
            stored = view.model_copy(
                update={
                    "id": generate_id("view"),
                    "card_id": card_id,
                    "timestamp": view.timestamp if view.timestamp is not None else now_ms(),
                }
            )
            await self._insert_view(stored)
            return True

    async def get_card_analytics(self, card_id: str) -> AnalyticsSummary:
        self._ensure_connected("get_card_analytics")
        with self._wrap_errors("get_card_analytics", card_id):
            return await self._summarize_views(card_id)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def clear_all_data(self) -> bool:
        """Wipe every record this backend holds. Used by tests and resets."""
        self._ensure_connected("clear_all_data")
        with self._wrap_errors("clear_all_data"):
            await self._clear_all()
        logger.warning(f"{self._tag} All data cleared")
        return True

    async def ensure_collection(self, collection: Collection) -> None:
        """Create the storage for ``collection`` if missing. Idempotent."""
        self._ensure_connected("ensure_collection")
        with self._wrap_errors("ensure_collection", collection.value):
            await self._ensure_collection(collection)

    async def drop_collection(self, collection: Collection) -> None:
        """Remove ``collection`` and everything in it."""
        self._ensure_connected("drop_collection")
        with self._wrap_errors("drop_collection", collection.value):
            await self._drop_collection(collection)

    # =========================================================================
    # PROVIDER PRIMITIVES
    # =========================================================================

    @abstractmethod
    async def _open(self) -> None:
        pass

    @abstractmethod
    async def _close(self) -> None:
        """Release resources. Must tolerate being called when already closed."""
        pass

    @abstractmethod
    async def _fetch_card(self, card_id: str) -> BusinessCard | None:
        pass

    @abstractmethod
    async def _fetch_cards(
        self, user_id: str | None = None, team_id: str | None = None
    ) -> list[BusinessCard]:
        """Cards matching the optional filters, ordered by (created_at, id)."""
        pass

    @abstractmethod
    async def _insert_card(self, card: BusinessCard) -> None:
        pass

    @abstractmethod
    async def _replace_card(self, card: BusinessCard) -> None:
        pass

    @abstractmethod
    async def _remove_card(self, card_id: str) -> bool:
        pass

    @abstractmethod
    async def _fetch_team_members(self, team_id: str) -> list[TeamMember]:
        """Members of ``team_id`` ordered by (created_at, id)."""
        pass

    @abstractmethod
    async def _fetch_team_member(self, team_id: str, member_id: str) -> TeamMember | None:
        pass

    @abstractmethod
    async def _insert_team_member(self, member: TeamMember) -> None:
        pass

    @abstractmethod
    async def _replace_team_member(self, member: TeamMember) -> None:
        pass

    @abstractmethod
    async def _remove_team_member(self, team_id: str, member_id: str) -> bool:
        pass

    @abstractmethod
    async def _insert_view(self, view: CardView) -> None:
        pass

    @abstractmethod
    async def _summarize_views(self, card_id: str) -> AnalyticsSummary:
        pass

    @abstractmethod
    async def _clear_all(self) -> None:
        pass

    @abstractmethod
    async def _ensure_collection(self, collection: Collection) -> None:
        pass

    @abstractmethod
    async def _drop_collection(self, collection: Collection) -> None:
        pass


def sort_by_creation(records: list) -> list:
    """Order cards or members by (created_at, id)."""
    return sorted(records, key=lambda r: (r.created_at or 0, r.id or ""))
