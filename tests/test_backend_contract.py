"""
Contract tests run against every storage provider.

These tests verify:
- Save/get round trips and id/timestamp stamping
- Update monotonicity and delete idempotence
- User/team scoping and list ordering
- Team member operations
- View analytics aggregation
- The connection guard
"""

import pytest

from db.base import StorageBackend
from db.exceptions import BackendError, NotConnectedError
from models import (
    BusinessCard,
    CardTemplate,
    LocationCount,
    ReferrerCount,
    TeamMember,
    TimelinePoint,
)
from tests.conftest import card

DAY_MS = 86_400_000
# 2023-11-14T22:13:20Z
BASE_TS = 1_700_000_000_000


def _without_stamps(record: BusinessCard) -> BusinessCard:
    return record.model_copy(update={"id": None, "created_at": None, "updated_at": None})


class TestCardRoundTrip:
    """Saving and reading cards."""

    async def test_fresh_backend_scenario(self, any_backend: StorageBackend):
        """Save, list, delete and list again on an empty backend."""
        saved = await any_backend.save_card(card("Ann"))

        assert saved.id
        assert saved.created_at == saved.updated_at
        assert len(await any_backend.get_cards()) == 1

        assert await any_backend.delete_card(saved.id) is True
        assert await any_backend.get_cards() == []

    async def test_round_trip_preserves_all_fields(self, any_backend: StorageBackend):
        """A stored card equals the input apart from id and timestamps."""
        original = BusinessCard(
            name="Ann Lee",
            title="CTO",
            company="Sparx",
            phone="+1 555 0100",
            email="ann@sparx.io",
            website="https://sparx.io",
            additional_phones=["+1 555 0101", "+1 555 0102"],
            additional_emails=["ann.lee@example.com"],
            additional_websites=["https://ann.dev"],
            social_profiles={"linkedin": "https://linkedin.com/in/ann", "mastodon": "@ann@hachyderm.io"},
            notes="Met at PyCon",
            template=CardTemplate(id="modern", layout="split"),
            views=3,
            shares=1,
            scans=2,
            user_id="user-1",
            team_id="team-1",
        )

        saved = await any_backend.save_card(original)
        fetched = await any_backend.get_card(saved.id)

        assert fetched == saved
        assert _without_stamps(fetched) == original

    async def test_save_assigns_card_prefixed_id(self, any_backend: StorageBackend):
        """Generated ids start with card_ and are unique."""
        first = await any_backend.save_card(card("A"))
        second = await any_backend.save_card(card("B"))

        assert first.id.startswith("card_")
        assert first.id != second.id

    async def test_save_keeps_caller_supplied_id_and_created_at(self, any_backend: StorageBackend):
        """An explicit id and created_at are kept."""
        saved = await any_backend.save_card(card("Ann", id="card-fixed", created_at=BASE_TS))

        assert saved.id == "card-fixed"
        assert saved.created_at == BASE_TS
        assert saved.updated_at >= saved.created_at

    async def test_save_duplicate_id_fails(self, any_backend: StorageBackend):
        """Saving over an existing id is rejected."""
        await any_backend.save_card(card("Ann", id="card-dup"))

        with pytest.raises(BackendError):
            await any_backend.save_card(card("Other", id="card-dup"))

        stored = await any_backend.get_card("card-dup")
        assert stored.name == "Ann"

    async def test_invalid_card_input_is_backend_error(self, any_backend: StorageBackend):
        with pytest.raises(BackendError, match="name"):
            await any_backend.save_card({"name": ""})

        assert await any_backend.get_cards() == []

    async def test_get_missing_card_returns_none(self, any_backend: StorageBackend):
        """Unknown ids return None rather than raising."""
        assert await any_backend.get_card("card_missing") is None

    async def test_save_accepts_camel_case_dict(self, any_backend: StorageBackend):
        """Plain dicts with camelCase keys are accepted."""
        saved = await any_backend.save_card({"name": "Ann", "userId": "user-9"})

        assert saved.user_id == "user-9"


class TestCardUpdate:
    """Updating cards."""

    async def test_update_moves_updated_at_forward(self, any_backend: StorageBackend):
        """updated_at strictly increases, created_at is kept."""
        saved = await any_backend.save_card(card("Ann"))

        changed = saved.model_copy(update={"title": "CEO"})
        first = await any_backend.update_card(changed)
        second = await any_backend.update_card(first)

        assert first.updated_at > saved.updated_at
        assert second.updated_at > first.updated_at
        assert second.created_at == saved.created_at
        assert (await any_backend.get_card(saved.id)).title == "CEO"

    async def test_update_ignores_caller_created_at(self, any_backend: StorageBackend):
        """The stored created_at wins over the one in the update."""
        saved = await any_backend.save_card(card("Ann"))

        updated = await any_backend.update_card(
            saved.model_copy(update={"created_at": saved.created_at - 5000})
        )

        assert updated.created_at == saved.created_at

    async def test_update_missing_card_fails_without_creating(self, any_backend: StorageBackend):
        """Updating an unknown id raises and stores nothing."""
        with pytest.raises(BackendError) as exc_info:
            await any_backend.update_card(card("Ghost", id="card_ghost"))

        assert exc_info.value.provider == any_backend.name
        assert exc_info.value.operation == "update_card"
        assert await any_backend.get_cards() == []

    async def test_update_without_id_fails(self, any_backend: StorageBackend):
        """An update needs an id."""
        with pytest.raises(BackendError):
            await any_backend.update_card(card("No Id"))


class TestCardDelete:
    """Deleting cards."""

    async def test_delete_returns_true_once(self, any_backend: StorageBackend):
        """Second delete of the same id returns False."""
        saved = await any_backend.save_card(card("Ann"))

        assert await any_backend.delete_card(saved.id) is True
        assert await any_backend.delete_card(saved.id) is False

    async def test_delete_leaves_other_cards(self, any_backend: StorageBackend):
        """Only the given card is removed."""
        keep = await any_backend.save_card(card("Keep"))
        drop = await any_backend.save_card(card("Drop"))

        await any_backend.delete_card(drop.id)

        assert [c.id for c in await any_backend.get_cards()] == [keep.id]


class TestCardScoping:
    """User and team queries."""

    async def test_user_and_team_cards(self, any_backend: StorageBackend):
        """Cards are filtered by owner tags."""
        mine = await any_backend.save_card(card("Mine", user_id="u1", team_id="t1"))
        await any_backend.save_card(card("Theirs", user_id="u2", team_id="t1"))
        await any_backend.save_card(card("Solo", user_id="u2"))

        assert [c.id for c in await any_backend.get_user_cards("u1")] == [mine.id]
        assert {c.name for c in await any_backend.get_team_cards("t1")} == {"Mine", "Theirs"}
        assert await any_backend.get_team_cards("t-none") == []

    async def test_lists_are_ordered_by_creation(self, any_backend: StorageBackend):
        """get_cards orders by created_at, then id."""
        await any_backend.save_card(card("Late", id="b", created_at=BASE_TS + 10))
        await any_backend.save_card(card("Early", id="z", created_at=BASE_TS))
        await any_backend.save_card(card("Tie", id="a", created_at=BASE_TS + 10))

        assert [c.id for c in await any_backend.get_cards()] == ["z", "a", "b"]


class TestTeamMembers:
    """Team member operations."""

    async def test_add_and_list_members(self, any_backend: StorageBackend):
        """Members are stamped and scoped to their team."""
        member = await any_backend.add_team_member("t1", TeamMember(name="Bo", email="bo@x.io"))
        await any_backend.add_team_member("t2", {"name": "Cy"})

        assert member.id.startswith("member_")
        assert member.team_id == "t1"
        assert member.role == "member"
        assert member.active is True
        assert member.created_at == member.updated_at
        assert await any_backend.get_team_members("t1") == [member]

    async def test_update_member_merges_fields(self, any_backend: StorageBackend):
        """Only the supplied fields change."""
        member = await any_backend.add_team_member("t1", TeamMember(name="Bo", email="bo@x.io"))

        updated = await any_backend.update_team_member(
            "t1", member.id, {"role": "admin", "active": False}
        )

        assert updated.role == "admin"
        assert updated.active is False
        assert updated.email == "bo@x.io"
        assert updated.updated_at > member.updated_at
        assert (await any_backend.get_team_members("t1"))[0] == updated

    async def test_member_of_other_team_is_not_found(self, any_backend: StorageBackend):
        """Team scoping applies to updates and removals."""
        member = await any_backend.add_team_member("t1", TeamMember(name="Bo"))

        with pytest.raises(BackendError):
            await any_backend.update_team_member("t2", member.id, {"role": "admin"})
        assert await any_backend.remove_team_member("t2", member.id) is False

    @pytest.mark.parametrize("field", ["name", "role", "active"])
    async def test_update_cannot_clear_required_field(
        self, any_backend: StorageBackend, field: str
    ):
        """A null for a required field is rejected and the team stays readable."""
        member = await any_backend.add_team_member("t1", {"name": "Ann"})

        with pytest.raises(BackendError, match=field):
            await any_backend.update_team_member("t1", member.id, {field: None})

        assert await any_backend.get_team_members("t1") == [member]

    async def test_update_with_blank_name_is_rejected(self, any_backend: StorageBackend):
        member = await any_backend.add_team_member("t1", {"name": "Ann"})

        with pytest.raises(BackendError):
            await any_backend.update_team_member("t1", member.id, {"name": "   "})

        assert (await any_backend.get_team_members("t1"))[0].name == "Ann"

    async def test_ids_containing_separators_do_not_collide(self, any_backend: StorageBackend):
        """Team and member ids are kept apart even when they share underscores."""
        first = await any_backend.add_team_member("a__b", {"id": "c", "name": "Ann"})
        second = await any_backend.add_team_member("a", {"id": "b__c", "name": "Bo"})

        assert await any_backend.get_team_members("a__b") == [first]
        assert await any_backend.get_team_members("a") == [second]
        assert await any_backend.remove_team_member("a", "b__c") is True
        assert await any_backend.get_team_members("a__b") == [first]

    async def test_invalid_member_input_is_backend_error(self, any_backend: StorageBackend):
        """Bad input is reported like any other failure."""
        with pytest.raises(BackendError) as exc_info:
            await any_backend.add_team_member("t1", {"id": "m1", "name": "  "})

        assert exc_info.value.operation == "add_team_member"
        assert exc_info.value.entity_id == "m1"
        assert await any_backend.get_team_members("t1") == []

    async def test_remove_member_once(self, any_backend: StorageBackend):
        """Removal reports whether anything was removed."""
        member = await any_backend.add_team_member("t1", TeamMember(name="Bo"))

        assert await any_backend.remove_team_member("t1", member.id) is True
        assert await any_backend.remove_team_member("t1", member.id) is False
        assert await any_backend.get_team_members("t1") == []


class TestAnalytics:
    """View recording and aggregation."""

    async def test_referrers_descending_with_first_seen_ties(self, any_backend: StorageBackend):
        """Direct, Email, Direct groups to Direct:2, Email:1."""
        for referrer in ["Direct", "Email", "Direct"]:
            assert await any_backend.record_card_view("X", {"referrer": referrer}) is True

        summary = await any_backend.get_card_analytics("X")

        assert summary.total_views == 3
        assert summary.referrers == [
            ReferrerCount(source="Direct", count=2),
            ReferrerCount(source="Email", count=1),
        ]

    async def test_equal_counts_keep_first_seen_order(self, any_backend: StorageBackend):
        """Ties follow timestamp order, then recording order."""
        await any_backend.record_card_view("X", {"referrer": "QR", "timestamp": BASE_TS + 2})
        await any_backend.record_card_view("X", {"referrer": "NFC", "timestamp": BASE_TS + 1})
        await any_backend.record_card_view("X", {"referrer": "Email", "timestamp": BASE_TS + 1})

        summary = await any_backend.get_card_analytics("X")

        assert [r.source for r in summary.referrers] == ["NFC", "Email", "QR"]

    async def test_missing_fields_use_defaults(self, any_backend: StorageBackend):
        """Absent referrer/country group under Direct/Unknown."""
        await any_backend.record_card_view("X", {"country": "AE"})
        await any_backend.record_card_view("X", {"referrer": "", "country": None})
        await any_backend.record_card_view("X", None)

        summary = await any_backend.get_card_analytics("X")

        assert summary.referrers == [ReferrerCount(source="Direct", count=3)]
        assert summary.locations == [
            LocationCount(country="Unknown", count=2),
            LocationCount(country="AE", count=1),
        ]

    async def test_timeline_by_utc_day_ascending(self, any_backend: StorageBackend):
        """Views bucket per UTC date, oldest first."""
        await any_backend.record_card_view("X", {"timestamp": BASE_TS + DAY_MS})
        await any_backend.record_card_view("X", {"timestamp": BASE_TS})
        await any_backend.record_card_view("X", {"timestamp": BASE_TS + DAY_MS + 60_000})

        summary = await any_backend.get_card_analytics("X")

        assert summary.timeline == [
            TimelinePoint(date="2023-11-14", views=1),
            TimelinePoint(date="2023-11-15", views=2),
        ]

    async def test_unique_visitors_by_ip_then_device(self, any_backend: StorageBackend):
        """Visitors are identified by IP, falling back to device id."""
        await any_backend.record_card_view("X", {"ipAddress": "10.0.0.1"})
        await any_backend.record_card_view("X", {"ip_address": "10.0.0.1", "deviceId": "d1"})
        await any_backend.record_card_view("X", {"deviceId": "d2"})
        await any_backend.record_card_view("X", {"userAgent": "curl"})

        summary = await any_backend.get_card_analytics("X")

        assert summary.total_views == 4
        assert summary.unique_visitors == 2

    async def test_views_are_scoped_to_card(self, any_backend: StorageBackend):
        """Other cards' views are not counted; no views gives an empty summary."""
        await any_backend.record_card_view("X", {"referrer": "QR"})

        empty = await any_backend.get_card_analytics("Y")

        assert empty.total_views == 0
        assert empty.unique_visitors == 0
        assert empty.referrers == []
        assert empty.timeline == []
        assert empty.locations == []


class TestClearAllData:
    """Resetting a backend."""

    async def test_clear_removes_everything(self, any_backend: StorageBackend):
        """Cards, members and views are all gone."""
        await any_backend.save_card(card("Ann"))
        await any_backend.add_team_member("t1", TeamMember(name="Bo"))
        await any_backend.record_card_view("X", {"referrer": "QR"})

        assert await any_backend.clear_all_data() is True

        assert await any_backend.get_cards() == []
        assert await any_backend.get_team_members("t1") == []
        assert (await any_backend.get_card_analytics("X")).total_views == 0


class TestConnectionGuard:
    """Operations on a disconnected backend."""

    OPERATIONS = [
        ("get_card", ("card_1",)),
        ("get_cards", ()),
        ("get_user_cards", ("u1",)),
        ("get_team_cards", ("t1",)),
        ("save_card", (BusinessCard(name="Ann"),)),
        ("update_card", (BusinessCard(id="card_1", name="Ann"),)),
        ("delete_card", ("card_1",)),
        ("get_team_members", ("t1",)),
        ("add_team_member", ("t1", TeamMember(name="Bo"))),
        ("update_team_member", ("t1", "m1", {"role": "admin"})),
        ("remove_team_member", ("t1", "m1")),
        ("record_card_view", ("card_1", {})),
        ("get_card_analytics", ("card_1",)),
        ("clear_all_data", ()),
    ]

    @pytest.mark.parametrize("operation,args", OPERATIONS, ids=[op for op, _ in OPERATIONS])
    async def test_rejects_when_disconnected(
        self, disconnected_backend: StorageBackend, operation, args
    ):
        """Every data operation raises NotConnectedError before connecting."""
        assert disconnected_backend.is_connected() is False

        with pytest.raises(NotConnectedError):
            await getattr(disconnected_backend, operation)(*args)

    async def test_not_connected_error_is_a_connection_error(
        self, disconnected_backend: StorageBackend
    ):
        """Callers can catch the builtin ConnectionError."""
        with pytest.raises(ConnectionError):
            await disconnected_backend.get_cards()

    async def test_rejects_after_disconnect(self, any_backend: StorageBackend):
        """Disconnecting re-arms the guard; disconnecting twice is safe."""
        await any_backend.disconnect()
        await any_backend.disconnect()

        assert any_backend.is_connected() is False
        with pytest.raises(NotConnectedError):
            await any_backend.get_cards()

    async def test_connect_is_idempotent(self, any_backend: StorageBackend):
        """A second connect succeeds without side effects."""
        assert await any_backend.connect() is True
        assert any_backend.is_connected() is True
