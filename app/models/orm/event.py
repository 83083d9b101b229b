from sqlalchemy import JSON, Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB

from app.core.clock import utcnow

from .base import Base

# JSONB on PostgreSQL, generic JSON elsewhere (SQLite in tests)
JSON_TYPE = JSON().with_variant(JSONB(), "postgresql")


class EventORM(Base):
    __tablename__ = "events"

    event_id = Column(String, primary_key=True, index=True)

    experiment_id = Column(String, nullable=False, index=True)
    variant_id = Column(String, nullable=False)

    # Anonymous sessions have no subject
    subject_id = Column(String, nullable=True, index=True)
    session_id = Column(String, nullable=False)

    type = Column(String, nullable=False, index=True)
    value = Column(JSON_TYPE, nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    # "metadata" is reserved on declarative classes
    properties = Column(JSON_TYPE, default=dict, nullable=False)
