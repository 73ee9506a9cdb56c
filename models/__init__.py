"""
Sparx Card Models.

Exports the record types passed across the storage layer.
"""

from .analytics import (
    DEFAULT_COUNTRY,
    DEFAULT_REFERRER,
    AnalyticsSummary,
    CardView,
    LocationCount,
    ReferrerCount,
    TimelinePoint,
)
from .card import (
    KNOWN_SOCIAL_PLATFORMS,
    BusinessCard,
    CardTemplate,
    RecordModel,
    TemplateColors,
    TemplateFonts,
)
from .config import (
    DatabaseConfig,
    DatabaseProvider,
    FirebaseConfig,
    LocalConfig,
    PostgresConfig,
    ProviderBlock,
    SupabaseConfig,
    local_config,
)
from .team import TeamMember, TeamMemberUpdate

__all__ = [
    # Cards
    "BusinessCard",
    "CardTemplate",
    "TemplateColors",
    "TemplateFonts",
    "KNOWN_SOCIAL_PLATFORMS",
    "RecordModel",
    # Teams
    "TeamMember",
    "TeamMemberUpdate",
    # Analytics
    "CardView",
    "AnalyticsSummary",
    "ReferrerCount",
    "TimelinePoint",
    "LocationCount",
    "DEFAULT_REFERRER",
    "DEFAULT_COUNTRY",
    # Config
    "DatabaseConfig",
    "DatabaseProvider",
    "LocalConfig",
    "PostgresConfig",
    "FirebaseConfig",
    "SupabaseConfig",
    "ProviderBlock",
    "local_config",
]
