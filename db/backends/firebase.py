"""
Document-store (Firebase Firestore) storage backend.

Collections:
    business_cards/{cardId}
    team_members/{teamId}__{memberId}   (both parts escaped)
    card_views/{viewId}

Documents hold the camelCase record. Firestore has no GROUP BY, so the view
total comes from a count() aggregation and the groupings are built from the
streamed views.
"""

import asyncio
import time
from typing import Any
from urllib.parse import quote

from google.cloud.firestore_v1.base_query import FieldFilter

from db.analytics import summarize_views
from db.base import Collection, StorageBackend, sort_by_creation
from db.exceptions import ConfigError
from models import AnalyticsSummary, BusinessCard, CardView, FirebaseConfig, TeamMember
from utils.logging import get_logger

logger = get_logger("db.backends.firebase")

# Firestore caps a write batch at 500 operations
BATCH_LIMIT = 500


def _escape_id(value: str) -> str:
    return quote(value, safe="").replace("_", "%5F")


class FirebaseBackend(StorageBackend):
    """
    Firestore backend via firebase-admin.

    A pre-built Firestore client can be passed in; otherwise one is created on
    connect from the config's service account (or application default
    credentials).
    """

    def __init__(self, config: FirebaseConfig, client: Any = None):
        super().__init__()
        if not config.project_id:
            raise ConfigError("Firebase configuration is missing: project_id")
        self._config = config
        self._injected_client = client
        self._db = None
        self._app = None

    @property
    def name(self) -> str:
        return "firebase"

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _open(self) -> None:
        if self._db is not None:
            return
        if self._injected_client is not None:
            self._db = self._injected_client
            return

        import firebase_admin
        from firebase_admin import credentials, firestore

        if self._config.credentials_path:
            cred = credentials.Certificate(self._config.credentials_path)
        else:
            cred = credentials.ApplicationDefault()

        options = {"projectId": self._config.project_id}
        if self._config.storage_bucket:
            options["storageBucket"] = self._config.storage_bucket

        app_name = f"sparx-{self._config.project_id}-{id(self)}"
        self._app = firebase_admin.initialize_app(cred, options, name=app_name)
        self._db = firestore.client(self._app)
        logger.info(f"[STORAGE:FIREBASE] Client initialized for {self._config.project_id}")

    async def _close(self) -> None:
        self._db = None
        if self._app is not None:
            import firebase_admin

            app, self._app = self._app, None
            firebase_admin.delete_app(app)

    def _collection(self, collection: Collection):
        return self._db.collection(collection.value)

    @staticmethod
    def _member_doc_id(team_id: str, member_id: str) -> str:
        # "_" is escaped too, so "__" only ever appears as the separator
        return f"{_escape_id(team_id)}__{_escape_id(member_id)}"

    # =========================================================================
    # CARDS
    # =========================================================================

    async def _fetch_card(self, card_id: str) -> BusinessCard | None:
        ref = self._collection(Collection.CARDS).document(card_id)
        snapshot = await asyncio.to_thread(ref.get)
        if not snapshot.exists:
            return None
        return BusinessCard.from_record(snapshot.to_dict())

    async def _fetch_cards(
        self, user_id: str | None = None, team_id: str | None = None
    ) -> list[BusinessCard]:
        query = self._collection(Collection.CARDS)
        if user_id is not None:
            query = query.where(filter=FieldFilter("userId", "==", user_id))
        if team_id is not None:
            query = query.where(filter=FieldFilter("teamId", "==", team_id))

        snapshots = await asyncio.to_thread(lambda: list(query.stream()))
        # Sorted here to avoid needing a composite index per filter
        return sort_by_creation([BusinessCard.from_record(s.to_dict()) for s in snapshots])

    async def _insert_card(self, card: BusinessCard) -> None:
        ref = self._collection(Collection.CARDS).document(card.id)
        await asyncio.to_thread(ref.create, card.to_record())

    async def _replace_card(self, card: BusinessCard) -> None:
        ref = self._collection(Collection.CARDS).document(card.id)
        await asyncio.to_thread(ref.set, card.to_record())

    async def _remove_card(self, card_id: str) -> bool:
        ref = self._collection(Collection.CARDS).document(card_id)

        def _delete() -> bool:
            if not ref.get().exists:
                return False
            ref.delete()
            return True

        return await asyncio.to_thread(_delete)

    # =========================================================================
    # TEAM MEMBERS
    # =========================================================================

    async def _fetch_team_members(self, team_id: str) -> list[TeamMember]:
        query = self._collection(Collection.TEAM_MEMBERS).where(
            filter=FieldFilter("teamId", "==", team_id)
        )
        snapshots = await asyncio.to_thread(lambda: list(query.stream()))
        return sort_by_creation([TeamMember.from_record(s.to_dict()) for s in snapshots])

    async def _fetch_team_member(self, team_id: str, member_id: str) -> TeamMember | None:
        ref = self._collection(Collection.TEAM_MEMBERS).document(
            self._member_doc_id(team_id, member_id)
        )
        snapshot = await asyncio.to_thread(ref.get)
        if not snapshot.exists:
            return None
        return TeamMember.from_record(snapshot.to_dict())

    async def _insert_team_member(self, member: TeamMember) -> None:
        ref = self._collection(Collection.TEAM_MEMBERS).document(
            self._member_doc_id(member.team_id, member.id)
        )
        await asyncio.to_thread(ref.create, member.to_record())

    async def _replace_team_member(self, member: TeamMember) -> None:
        ref = self._collection(Collection.TEAM_MEMBERS).document(
            self._member_doc_id(member.team_id, member.id)
        )
        await asyncio.to_thread(ref.set, member.to_record())

    async def _remove_team_member(self, team_id: str, member_id: str) -> bool:
        ref = self._collection(Collection.TEAM_MEMBERS).document(
            self._member_doc_id(team_id, member_id)
        )

        def _delete() -> bool:
            if not ref.get().exists:
                return False
            ref.delete()
            return True

        return await asyncio.to_thread(_delete)

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    async def _insert_view(self, view: CardView) -> None:
        record = view.to_record()
        # Recording order, breaks ties between equal timestamps
        record["recordedAt"] = time.time_ns()
        ref = self._collection(Collection.CARD_VIEWS).document(view.id)
        await asyncio.to_thread(ref.create, record)

    async def _summarize_views(self, card_id: str) -> AnalyticsSummary:
        query = self._collection(Collection.CARD_VIEWS).where(
            filter=FieldFilter("cardId", "==", card_id)
        )

        def _load() -> tuple[int, list[dict[str, Any]]]:
            aggregate = query.count(alias="total").get()
            total = aggregate[0][0].value if aggregate else 0
            return total, [s.to_dict() for s in query.stream()]

        total, records = await asyncio.to_thread(_load)
        records.sort(key=lambda r: (r.get("timestamp") or 0, r.get("recordedAt") or 0))
        summary = summarize_views(CardView.from_record(r) for r in records)
        return summary.model_copy(update={"total_views": total})

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def _delete_all_sync(self, collection: Collection) -> int:
        deleted = 0
        refs = [s.reference for s in self._collection(collection).stream()]
        for start in range(0, len(refs), BATCH_LIMIT):
            batch = self._db.batch()
            for ref in refs[start:start + BATCH_LIMIT]:
                batch.delete(ref)
            batch.commit()
            deleted += len(refs[start:start + BATCH_LIMIT])
        return deleted

    async def _clear_all(self) -> None:
        for collection in Collection:
            deleted = await asyncio.to_thread(self._delete_all_sync, collection)
            logger.debug(f"[STORAGE:FIREBASE] Deleted {deleted} docs from {collection.value}")

    async def _ensure_collection(self, collection: Collection) -> None:
        # Firestore creates collections on first write
        return None

    async def _drop_collection(self, collection: Collection) -> None:
        deleted = await asyncio.to_thread(self._delete_all_sync, collection)
        logger.info(f"[STORAGE:FIREBASE] Dropped {collection.value} ({deleted} docs)")
