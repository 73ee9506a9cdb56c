"""
In-process view aggregation.

Used by providers that cannot group server-side (the local store, Firestore,
PostgREST). The relational provider runs the same aggregation in SQL.
"""

from collections import Counter
from typing import Iterable

from models import (
    AnalyticsSummary,
    CardView,
    LocationCount,
    ReferrerCount,
    TimelinePoint,
)
from utils.time import ms_to_iso_date


def summarize_views(views: Iterable[CardView]) -> AnalyticsSummary:
    """
    Aggregate views into an AnalyticsSummary.

    Args:
        views: Views of one card in recording order

    Returns:
        Summary with referrers and locations by descending count (ties keep
        first-seen order) and the timeline by ascending UTC date.
    """
    # Stable sort: equal timestamps keep recording order
    ordered = sorted(views, key=lambda v: v.timestamp or 0)

    referrers = Counter(v.referrer_source for v in ordered)
    locations = Counter(v.location for v in ordered)
    days = Counter(ms_to_iso_date(v.timestamp or 0) for v in ordered)
    visitors = {v.visitor_key for v in ordered if v.visitor_key}

    return AnalyticsSummary(
        total_views=len(ordered),
        unique_visitors=len(visitors),
        referrers=[
            ReferrerCount(source=source, count=count)
            for source, count in referrers.most_common()
        ],
        timeline=[
            TimelinePoint(date=date, views=count)
            for date, count in sorted(days.items())
        ],
        locations=[
            LocationCount(country=country, count=count)
            for country, count in locations.most_common()
        ],
    )
