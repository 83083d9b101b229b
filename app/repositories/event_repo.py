import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.orm.event import EventORM
from app.models.schemas.event import EventCreateModel, ExperimentEvent


class EventRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def get_events_for_experiment(self, experiment_id: str) -> list[EventORM]:
        """Retrieves events for a specific experiment in recording order."""
        stmt = (
            select(EventORM)
            .where(EventORM.experiment_id == experiment_id)
            .order_by(EventORM.timestamp)
        )
        return list(self.db.scalars(stmt).all())

    def create_event(self, event_data: EventCreateModel) -> EventORM:
        """
        Appends an event record. Errors propagate to the caller after rollback;
        the event recorder decides whether they matter.
        """
        db_event = EventORM(
            event_id=str(uuid.uuid4()),
            experiment_id=event_data.experiment_id,
            variant_id=event_data.variant_id,
            subject_id=event_data.subject_id,
            session_id=event_data.session_id,
            type=event_data.event,
            value=event_data.value,
            timestamp=event_data.timestamp,
            properties=event_data.metadata or {},
        )
        try:
            self.db.add(db_event)
            self.db.commit()
            self.db.refresh(db_event)
        except Exception:
            self.db.rollback()
            raise

        return db_event

    @staticmethod
    def to_model(event_orm: EventORM) -> ExperimentEvent:
        data = event_orm.to_dict()
        return ExperimentEvent(
            event_id=data["event_id"],
            experiment_id=data["experiment_id"],
            variant_id=data["variant_id"],
            subject_id=data["subject_id"],
            session_id=data["session_id"],
            event=data["type"],
            value=data["value"],
            metadata=data["properties"] or None,
            timestamp=data["timestamp"],
        )
