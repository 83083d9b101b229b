import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ConfigDict, Field, field_validator

from app.core.clock import as_utc
from app.models.schemas.base import CamelModel, JSONValue


class ExperimentStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class ConversionGoalType(str, enum.Enum):
    PAGE_VIEW = "page_view"
    CLICK = "click"
    FORM_SUBMIT = "form_submit"
    CUSTOM = "custom"


class FrozenCamelModel(CamelModel):
    # Catalog entries are swapped wholesale, never edited in place
    model_config = ConfigDict(frozen=True)


class Variant(FrozenCamelModel):
    """One treatment arm of an experiment."""

    id: str
    name: str
    allocation: float = Field(
        ...,
        ge=0.0,
        le=100.0,
        description="Percentage of traffic allocated to this variant.",
    )
    # Feature-flag style payload interpreted by callers
    config: Dict[str, JSONValue] = Field(default_factory=dict)


class TargetAudience(FrozenCamelModel):
    user_types: Optional[List[str]] = None
    locations: Optional[List[str]] = None
    percentage: float = Field(default=100.0, ge=0.0, le=100.0)


class ConversionGoal(FrozenCamelModel):
    id: str
    name: str
    type: ConversionGoalType
    value: str


class Experiment(FrozenCamelModel):
    """Definition of an experiment as held by the catalog."""

    id: str = Field(..., description="Unique ID for the experiment.")
    name: str
    description: Optional[str] = None
    status: ExperimentStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    variants: List[Variant] = Field(default_factory=list)
    target_audience: Optional[TargetAudience] = None
    conversion_goals: List[ConversionGoal] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("start_date", "end_date", "created_at", "updated_at")
    @classmethod
    def _normalize_tz(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def total_allocation(self) -> float:
        """Sum of all variant allocations, should be 100.0."""
        return sum(v.allocation for v in self.variants)

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        return next((v for v in self.variants if v.id == variant_id), None)


class AssignmentContext(CamelModel):
    """Request context used for audience targeting."""

    user_type: Optional[str] = None
    location: Optional[str] = None
    # Stable per-subject or per-session key for the rollout percentage
    rollout_key: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AssignmentResultModel(CamelModel):
    experiment_id: str
    subject_id: str
    variant_id: Optional[str] = None
    config: Optional[Dict[str, JSONValue]] = None
