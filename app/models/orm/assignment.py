from sqlalchemy import Column, DateTime, PrimaryKeyConstraint, String

from app.core.clock import utcnow

from .base import Base


class AssignmentORM(Base):
    __tablename__ = "assignments"

    subject_id = Column(String, nullable=False, index=True)
    experiment_id = Column(String, nullable=False, index=True)
    variant_id = Column(String, nullable=False)

    assignment_timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    # Null means the record never expires
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)

    __table_args__ = (
        PrimaryKeyConstraint("subject_id", "experiment_id", name="assignment_pk"),
    )
