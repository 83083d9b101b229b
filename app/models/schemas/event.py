from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, field_validator

from app.core.clock import as_utc
from app.models.schemas.base import CamelModel, JSONValue


#  event tracking flow


class EventCreateModel(CamelModel):
    """Schema for an exposure/conversion event (API input and recorder input)."""

    experiment_id: str = Field(..., min_length=1)
    variant_id: str = Field(..., min_length=1)
    # Anonymous sessions are allowed
    subject_id: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("subjectId", "userId", "subject_id"),
        serialization_alias="subjectId",
    )
    session_id: str = Field(..., min_length=1)
    event: str = Field(..., min_length=1, description="e.g., 'page_view', 'login_success'")
    value: JSONValue = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_tz(cls, value: datetime) -> datetime:
        return as_utc(value)


class ExperimentEvent(EventCreateModel):
    """A recorded event as returned by the sinks."""

    event_id: Optional[str] = None
