# repositories/assignment_repo.py
from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import as_utc, utcnow
from app.models.orm.assignment import AssignmentORM


class AssignmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_assignment(
        self, experiment_id: str, subject_id: str
    ) -> Optional[AssignmentORM]:
        """Retrieves the stored assignment for a subject, expired or not."""
        return self.db.get(
            AssignmentORM, {"subject_id": subject_id, "experiment_id": experiment_id}
        )

    def get_live_assignment(
        self, experiment_id: str, subject_id: str, now: Optional[datetime] = None
    ) -> Optional[AssignmentORM]:
        """Retrieves the assignment only if it hasn't expired."""
        assignment = self.get_assignment(experiment_id, subject_id)
        if assignment is None:
            return None
        expires_at = as_utc(assignment.expires_at)
        if expires_at is not None and expires_at <= (now or utcnow()):
            return None
        return assignment

    def save_assignment(
        self,
        experiment_id: str,
        subject_id: str,
        variant_id: str,
        assigned_at: Optional[datetime] = None,
        expires_at: Optional[datetime] = None,
    ) -> AssignmentORM:
        """
        Creates or replaces the assignment record for a subject.

        Re-saving a live record with the same variant is a no-op, so the
        original assignment and expiry times are kept.
        """
        now = utcnow()
        stored = self.get_assignment(experiment_id, subject_id)
        if stored is not None:
            expires = as_utc(stored.expires_at)
            is_live = expires is None or expires > now
            if is_live and stored.variant_id == variant_id:
                return stored

        db_assignment = AssignmentORM(
            experiment_id=experiment_id,
            subject_id=subject_id,
            variant_id=variant_id,
            assignment_timestamp=assigned_at or now,
            expires_at=expires_at,
        )
        try:
            if stored is not None:
                # Expired or different variant: the old row is replaced, not edited
                self.db.delete(stored)
                self.db.flush()
            self.db.add(db_assignment)
            self.db.commit()
        except IntegrityError:
            # A concurrent writer created the same key first; keep theirs
            self.db.rollback()
            winner = self.get_assignment(experiment_id, subject_id)
            if winner is None:
                raise
            return winner
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(db_assignment)
        return db_assignment

    def delete_assignment(self, experiment_id: str, subject_id: str) -> None:
        try:
            self.db.execute(
                delete(AssignmentORM).where(
                    AssignmentORM.experiment_id == experiment_id,
                    AssignmentORM.subject_id == subject_id,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
