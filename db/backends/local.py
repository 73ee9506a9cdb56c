"""
Local storage backend.

Stores each collection as one JSON document in the on-device key-value store:

    sparx_business_cards            all cards
    sparx_team_members_<teamId>     members of one team
    sparx_card_views_<cardId>       views of one card

Collections are cached in memory after the first read. Every write
re-serializes the whole affected collection, and the cache is only replaced
once the write has succeeded.
"""

import base64
import hashlib
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from db.analytics import summarize_views
from db.base import Collection, StorageBackend, sort_by_creation
from db.exceptions import BackendError, ConfigError
from db.kv import KeyValueStore
from models import AnalyticsSummary, BusinessCard, CardView, LocalConfig, TeamMember
from utils.logging import get_logger

logger = get_logger("db.backends.local")

KEY_PREFIX = "sparx_"
CARDS_KEY = f"{KEY_PREFIX}business_cards"
TEAM_MEMBERS_PREFIX = f"{KEY_PREFIX}team_members_"
CARD_VIEWS_PREFIX = f"{KEY_PREFIX}card_views_"

# Keys owned by other components; never touched by clear_all_data
RESERVED_KEYS = frozenset({f"{KEY_PREFIX}db_version", f"{KEY_PREFIX}db_config"})


def _derive_fernet(secret: str) -> Fernet:
    """Fernet instance keyed by SHA-256 of an arbitrary secret."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class LocalBackend(StorageBackend):
    """
    On-device storage backend with per-collection read caches.

    Analytics are computed in-process.
    """

    def __init__(self, store: KeyValueStore, config: LocalConfig | None = None):
        super().__init__()
        config = config or LocalConfig()
        self._store = store
        self._fernet: Fernet | None = None

        if config.encrypt_data:
            if not config.encryption_key:
                raise ConfigError("Local encryption requires an encryption key")
            self._fernet = _derive_fernet(config.encryption_key)

        self._cards: list[dict[str, Any]] | None = None
        self._team_members: dict[str, list[dict[str, Any]]] = {}
        self._card_views: dict[str, list[dict[str, Any]]] = {}

    @property
    def name(self) -> str:
        return "local"

    @property
    def encrypted(self) -> bool:
        return self._fernet is not None

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def _encode(self, records: list[dict[str, Any]]) -> str:
        payload = json.dumps(records)
        if self._fernet is None:
            return payload
        return self._fernet.encrypt(payload.encode("utf-8")).decode("ascii")

    def _decode(self, key: str, raw: str) -> list[dict[str, Any]]:
        if self._fernet is not None:
            try:
                raw = self._fernet.decrypt(raw.encode("ascii")).decode("utf-8")
            except InvalidToken as e:
                raise BackendError(f"Cannot decrypt {key}: wrong key or unencrypted data") from e
        data = json.loads(raw)
        if not isinstance(data, list):
            raise BackendError(f"Corrupt collection under {key}")
        return data

    async def _load(self, key: str) -> list[dict[str, Any]]:
        raw = await self._store.get_item(key)
        if raw is None:
            return []
        return self._decode(key, raw)

    async def _write(self, key: str, records: list[dict[str, Any]]) -> None:
        if records:
            await self._store.set_item(key, self._encode(records))
        else:
            await self._store.remove_item(key)

    # =========================================================================
    # CACHES
    # =========================================================================

    async def _card_records(self) -> list[dict[str, Any]]:
        if self._cards is None:
            self._cards = await self._load(CARDS_KEY)
            logger.debug(f"[STORAGE:LOCAL] Loaded {len(self._cards)} cards")
        return self._cards

    async def _save_card_records(self, records: list[dict[str, Any]]) -> None:
        await self._write(CARDS_KEY, records)
        self._cards = records

    async def _member_records(self, team_id: str) -> list[dict[str, Any]]:
        if team_id not in self._team_members:
            self._team_members[team_id] = await self._load(TEAM_MEMBERS_PREFIX + team_id)
        return self._team_members[team_id]

    async def _save_member_records(self, team_id: str, records: list[dict[str, Any]]) -> None:
        await self._write(TEAM_MEMBERS_PREFIX + team_id, records)
        self._team_members[team_id] = records

    async def _view_records(self, card_id: str) -> list[dict[str, Any]]:
        if card_id not in self._card_views:
            self._card_views[card_id] = await self._load(CARD_VIEWS_PREFIX + card_id)
        return self._card_views[card_id]

    def _reset_cache(self) -> None:
        self._cards = None
        self._team_members = {}
        self._card_views = {}

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _open(self) -> None:
        # Surfaces an unreadable store at connect time
        await self._store.get_item(CARDS_KEY)

    async def _close(self) -> None:
        self._reset_cache()

    # =========================================================================
    # CARDS
    # =========================================================================

    async def _fetch_card(self, card_id: str) -> BusinessCard | None:
        for record in await self._card_records():
            if record.get("id") == card_id:
                return BusinessCard.from_record(record)
        return None

    async def _fetch_cards(
        self, user_id: str | None = None, team_id: str | None = None
    ) -> list[BusinessCard]:
        cards = [BusinessCard.from_record(r) for r in await self._card_records()]
        if user_id is not None:
            cards = [c for c in cards if c.user_id == user_id]
        if team_id is not None:
            cards = [c for c in cards if c.team_id == team_id]
        return sort_by_creation(cards)

    async def _insert_card(self, card: BusinessCard) -> None:
        records = list(await self._card_records())
        records.append(card.to_record())
        await self._save_card_records(records)

    async def _replace_card(self, card: BusinessCard) -> None:
        records = [
            card.to_record() if r.get("id") == card.id else r
            for r in await self._card_records()
        ]
        await self._save_card_records(records)

    async def _remove_card(self, card_id: str) -> bool:
        current = await self._card_records()
        records = [r for r in current if r.get("id") != card_id]
        if len(records) == len(current):
            return False
        await self._save_card_records(records)
        return True

    # =========================================================================
    # TEAM MEMBERS
    # =========================================================================

    async def _fetch_team_members(self, team_id: str) -> list[TeamMember]:
        members = [TeamMember.from_record(r) for r in await self._member_records(team_id)]
        return sort_by_creation(members)

    async def _fetch_team_member(self, team_id: str, member_id: str) -> TeamMember | None:
        for record in await self._member_records(team_id):
            if record.get("id") == member_id:
                return TeamMember.from_record(record)
        return None

    async def _insert_team_member(self, member: TeamMember) -> None:
        records = list(await self._member_records(member.team_id))
        records.append(member.to_record())
        await self._save_member_records(member.team_id, records)

    async def _replace_team_member(self, member: TeamMember) -> None:
        records = [
            member.to_record() if r.get("id") == member.id else r
            for r in await self._member_records(member.team_id)
        ]
        await self._save_member_records(member.team_id, records)

    async def _remove_team_member(self, team_id: str, member_id: str) -> bool:
        current = await self._member_records(team_id)
        records = [r for r in current if r.get("id") != member_id]
        if len(records) == len(current):
            return False
        await self._save_member_records(team_id, records)
        return True

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def _insert_view(self, view: CardView) -> None:
        records = list(await self._view_records(view.card_id))
        records.append(view.to_record())
        await self._write(CARD_VIEWS_PREFIX + view.card_id, records)
        self._card_views[view.card_id] = records

    async def _summarize_views(self, card_id: str) -> AnalyticsSummary:
        views = [CardView.from_record(r) for r in await self._view_records(card_id)]
        return summarize_views(views)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def _owned_keys(self, prefix: str = KEY_PREFIX) -> list[str]:
        return [
            key
            for key in await self._store.get_all_keys()
            if key.startswith(prefix) and key not in RESERVED_KEYS
        ]

    async def _clear_all(self) -> None:
        await self._store.multi_remove(await self._owned_keys())
        self._reset_cache()

    async def _ensure_collection(self, collection: Collection) -> None:
        # Keys are created on first write
        return None

    async def _drop_collection(self, collection: Collection) -> None:
        if collection == Collection.CARDS:
            await self._store.remove_item(CARDS_KEY)
            self._cards = None
        elif collection == Collection.TEAM_MEMBERS:
            await self._store.multi_remove(await self._owned_keys(TEAM_MEMBERS_PREFIX))
            self._team_members = {}
        elif collection == Collection.CARD_VIEWS:
            await self._store.multi_remove(await self._owned_keys(CARD_VIEWS_PREFIX))
            self._card_views = {}
        else:
            raise BackendError(f"Unknown collection: {collection}")
