"""
Business card models.

Cards are stored with camelCase keys (``createdAt``, ``additionalPhones``) and
accept either camelCase or snake_case input.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

# Social platforms the editor knows about. Other keys are kept as-is.
KNOWN_SOCIAL_PLATFORMS = (
    "linkedin",
    "twitter",
    "facebook",
    "instagram",
    "github",
    "youtube",
    "tiktok",
    "website",
)


class RecordModel(BaseModel):
    """Base for persisted records: camelCase on the wire, unknown keys dropped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys, as written to storage."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, data: dict[str, Any]):
        return cls.model_validate(data)


# =============================================================================
# TEMPLATE (cosmetic only)
# =============================================================================


class TemplateColors(RecordModel):
    primary: str = "#000000"
    secondary: str = "#666666"
    background: str = "#FFFFFF"
    text: str = "#000000"
    accent: str | None = None


class TemplateFonts(RecordModel):
    primary: str = "System"
    secondary: str | None = None


class CardTemplate(RecordModel):
    id: str = "default"
    colors: TemplateColors = Field(default_factory=TemplateColors)
    fonts: TemplateFonts = Field(default_factory=TemplateFonts)
    layout: str = "standard"


# =============================================================================
# BUSINESS CARD
# =============================================================================


class BusinessCard(RecordModel):
    """
    A digital business card.

    ``id`` is assigned on first save when absent and never changes afterwards.
    ``created_at``/``updated_at`` are epoch milliseconds stamped by the storage
    backend.
    """

    id: str | None = None
    name: str
    title: str | None = None
    company: str | None = None
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    additional_phones: list[str] = Field(default_factory=list)
    additional_emails: list[str] = Field(default_factory=list)
    additional_websites: list[str] = Field(default_factory=list)
    social_profiles: dict[str, str] = Field(default_factory=dict)
    notes: str | None = None
    template: CardTemplate | None = None

    created_at: int | None = None
    updated_at: int | None = None

    views: int = Field(default=0, ge=0)
    shares: int = Field(default=0, ge=0)
    scans: int = Field(default=0, ge=0)

    user_id: str | None = None
    team_id: str | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value

    @model_validator(mode="after")
    def _timestamps_ordered(self) -> "BusinessCard":
        if (
            self.created_at is not None
            and self.updated_at is not None
            and self.updated_at < self.created_at
        ):
            raise ValueError("updatedAt must not be earlier than createdAt")
        return self

    @property
    def extra_social_profiles(self) -> dict[str, str]:
        """Profiles under platform keys outside KNOWN_SOCIAL_PLATFORMS."""
        return {
            key: url
            for key, url in self.social_profiles.items()
            if key not in KNOWN_SOCIAL_PLATFORMS
        }
