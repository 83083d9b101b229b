from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.clock import as_utc, utcnow
from app.core.errors import StoreUnavailableError
from app.models.schemas.assignment import AssignmentRecord
from app.repositories.assignment_repo import AssignmentRepository
from app.stores.base import DEFAULT_TTL


class DatabaseAssignmentStore:
    """
    Shared assignment store backed by the ``assignments`` table.

    This is what the ``/assignment`` endpoints serve, and therefore what
    remote stores on other engine instances talk to. Each call uses its own
    session; rows are keyed per (subject, experiment) so there is no global lock.
    """

    def __init__(self, session_factory: sessionmaker, default_ttl: timedelta = DEFAULT_TTL):
        self.session_factory = session_factory
        self.default_ttl = default_ttl

    def get_record(self, experiment_id: str, subject_id: str) -> Optional[AssignmentRecord]:
        try:
            with self.session_factory() as db:
                assignment = AssignmentRepository(db).get_live_assignment(
                    experiment_id, subject_id
                )
                if assignment is None:
                    return None
                return AssignmentRecord(
                    variant_id=assignment.variant_id,
                    assigned_at=as_utc(assignment.assignment_timestamp),
                    expires_at=as_utc(assignment.expires_at),
                )
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Assignment lookup failed: {e}") from e

    def get(self, experiment_id: str, subject_id: str) -> Optional[str]:
        record = self.get_record(experiment_id, subject_id)
        return record.variant_id if record else None

    def set(
        self,
        experiment_id: str,
        subject_id: str,
        variant_id: str,
        ttl: Optional[timedelta] = None,
    ) -> None:
        now = utcnow()
        self.save(
            experiment_id,
            subject_id,
            variant_id,
            assigned_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
        )

    def save(
        self,
        experiment_id: str,
        subject_id: str,
        variant_id: str,
        assigned_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> AssignmentRecord:
        """Persists an assignment with explicit timestamps (used by ``POST /assignment``)."""
        if expires_at is None:
            expires_at = (assigned_at or utcnow()) + self.default_ttl
        try:
            with self.session_factory() as db:
                assignment = AssignmentRepository(db).save_assignment(
                    experiment_id,
                    subject_id,
                    variant_id,
                    assigned_at=assigned_at,
                    expires_at=expires_at,
                )
                return AssignmentRecord(
                    variant_id=assignment.variant_id,
                    assigned_at=as_utc(assignment.assignment_timestamp),
                    expires_at=as_utc(assignment.expires_at),
                )
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Assignment write failed: {e}") from e

    def delete(self, experiment_id: str, subject_id: str) -> None:
        try:
            with self.session_factory() as db:
                AssignmentRepository(db).delete_assignment(experiment_id, subject_id)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Assignment delete failed: {e}") from e
