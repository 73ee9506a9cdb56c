"""
Card view events and the analytics summary built from them.
"""

from typing import Any

from pydantic import Field, field_validator

from models.card import RecordModel

DEFAULT_REFERRER = "Direct"
DEFAULT_COUNTRY = "Unknown"


class CardView(RecordModel):
    """
    A single recorded view of a card. Immutable once stored.

    Only the fields below are kept; anything else in the payload is ignored.
    """

    id: str | None = None
    card_id: str | None = None
    timestamp: int | None = None
    referrer: str | None = None
    country: str | None = None
    city: str | None = None
    region: str | None = None
    device_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None

    @field_validator(
        "referrer", "country", "city", "region", "device_id", "ip_address", "user_agent",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def visitor_key(self) -> str | None:
        """Identifies a visitor: IP address, falling back to device id."""
        return self.ip_address or self.device_id

    @property
    def referrer_source(self) -> str:
        return self.referrer or DEFAULT_REFERRER

    @property
    def location(self) -> str:
        return self.country or DEFAULT_COUNTRY

    @classmethod
    def coerce(cls, view_data: "CardView | dict[str, Any] | None") -> "CardView":
        if view_data is None:
            return cls()
        if isinstance(view_data, cls):
            return view_data.model_copy()
        return cls.model_validate(view_data)


class ReferrerCount(RecordModel):
    source: str
    count: int


class TimelinePoint(RecordModel):
    date: str
    views: int


class LocationCount(RecordModel):
    country: str
    count: int


class AnalyticsSummary(RecordModel):
    """Aggregated view statistics for one card."""

    total_views: int = 0
    unique_visitors: int = 0
    referrers: list[ReferrerCount] = Field(default_factory=list)
    timeline: list[TimelinePoint] = Field(default_factory=list)
    locations: list[LocationCount] = Field(default_factory=list)
