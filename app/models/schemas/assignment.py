from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, Field, field_validator

from app.core.clock import as_utc, utcnow
from app.models.schemas.base import CamelModel


class AssignmentRecord(CamelModel):
    """Data model for a persistent sticky assignment."""

    variant_id: str = Field(..., description="The variant the subject was assigned.")
    assigned_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @field_validator("assigned_at", "expires_at")
    @classmethod
    def _normalize_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())


class AssignmentCreateModel(AssignmentRecord):
    """Body of ``POST /assignment``: an assignment pushed to the shared store."""

    experiment_id: str = Field(..., min_length=1)
    subject_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("subjectId", "userId", "subject_id"),
        serialization_alias="subjectId",
    )
