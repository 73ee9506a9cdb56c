"""
Tests for in-process view aggregation.
"""

from db.analytics import summarize_views
from models import CardView
from utils.time import ms_to_iso_date

DAY_MS = 86_400_000
# 2023-11-14T00:00:00Z
MIDNIGHT = 1_699_920_000_000


def view(**fields) -> CardView:
    return CardView.model_validate(fields)


class TestSummarizeViews:
    """summarize_views()"""

    def test_no_views(self):
        summary = summarize_views([])

        assert summary.total_views == 0
        assert summary.unique_visitors == 0
        assert summary.referrers == []
        assert summary.timeline == []
        assert summary.locations == []

    def test_defaults_for_missing_referrer_and_country(self):
        """Missing or blank values are bucketed as Direct / Unknown."""
        summary = summarize_views(
            [view(timestamp=MIDNIGHT), view(timestamp=MIDNIGHT, referrer="  ", country="")]
        )

        assert [(r.source, r.count) for r in summary.referrers] == [("Direct", 2)]
        assert [(loc.country, loc.count) for loc in summary.locations] == [("Unknown", 2)]

    def test_referrers_by_count_then_first_seen(self):
        """Ties keep the order in which the sources were first seen."""
        summary = summarize_views(
            [
                view(referrer="Email", timestamp=MIDNIGHT + 1),
                view(referrer="QR", timestamp=MIDNIGHT + 2),
                view(referrer="NFC", timestamp=MIDNIGHT + 3),
                view(referrer="QR", timestamp=MIDNIGHT + 4),
            ]
        )

        assert [(r.source, r.count) for r in summary.referrers] == [
            ("QR", 2),
            ("Email", 1),
            ("NFC", 1),
        ]

    def test_first_seen_follows_timestamps_not_input_order(self):
        """Views are ordered by timestamp before counting."""
        summary = summarize_views(
            [
                view(country="US", timestamp=MIDNIGHT + 10),
                view(country="AE", timestamp=MIDNIGHT + 5),
            ]
        )

        assert [loc.country for loc in summary.locations] == ["AE", "US"]

    def test_timeline_is_sorted_by_utc_date(self):
        """Views are bucketed per UTC day, oldest first."""
        summary = summarize_views(
            [
                view(timestamp=MIDNIGHT + DAY_MS + 5),
                view(timestamp=MIDNIGHT - 1),
                view(timestamp=MIDNIGHT),
                view(timestamp=MIDNIGHT + DAY_MS - 1),
            ]
        )

        assert [(p.date, p.views) for p in summary.timeline] == [
            ("2023-11-13", 1),
            ("2023-11-14", 2),
            ("2023-11-15", 1),
        ]
        assert sum(p.views for p in summary.timeline) == summary.total_views

    def test_unique_visitors_prefer_ip_then_device(self):
        """A visitor is the IP address, or the device id when there is no IP."""
        summary = summarize_views(
            [
                view(ip_address="10.0.0.1", device_id="d1", timestamp=MIDNIGHT),
                view(ip_address="10.0.0.1", device_id="d2", timestamp=MIDNIGHT),
                view(device_id="d1", timestamp=MIDNIGHT),
                view(timestamp=MIDNIGHT),
            ]
        )

        assert summary.total_views == 4
        assert summary.unique_visitors == 2

    def test_counts_sum_to_total(self):
        views = [
            view(referrer=r, country=c, timestamp=MIDNIGHT + i)
            for i, (r, c) in enumerate([("QR", "AE"), ("QR", "US"), (None, None), ("Email", "AE")])
        ]

        summary = summarize_views(views)

        assert sum(r.count for r in summary.referrers) == summary.total_views
        assert sum(loc.count for loc in summary.locations) == summary.total_views


class TestIsoDate:
    """ms_to_iso_date()"""

    def test_utc_boundaries(self):
        assert ms_to_iso_date(MIDNIGHT) == "2023-11-14"
        assert ms_to_iso_date(MIDNIGHT - 1) == "2023-11-13"
        assert ms_to_iso_date(0) == "1970-01-01"
