"""
Team member models.
"""

from pydantic import Field, field_validator, model_validator

from models.card import RecordModel


class TeamMember(RecordModel):
    """A member of exactly one team, scoped by ``team_id``."""

    id: str | None = None
    team_id: str | None = None
    name: str
    email: str | None = None
    role: str = "member"
    active: bool = True
    created_at: int | None = None
    updated_at: int | None = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


# Fields a stored member must always carry a value for
REQUIRED_MEMBER_FIELDS = ("name", "role", "active")


class TeamMemberUpdate(RecordModel):
    """Partial update for a team member. Only fields that were set are applied."""

    name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    role: str | None = None
    active: bool | None = None

    @model_validator(mode="after")
    def _no_null_required_fields(self) -> "TeamMemberUpdate":
        nulled = [
            f for f in REQUIRED_MEMBER_FIELDS
            if f in self.model_fields_set and getattr(self, f) is None
        ]
        if nulled:
            raise ValueError(f"cannot clear {', '.join(nulled)}")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)
