from datetime import timedelta
from typing import Dict, Optional, Tuple

from app.core.clock import utcnow
from app.models.schemas.assignment import AssignmentRecord
from app.stores.base import DEFAULT_TTL


class EphemeralAssignmentStore:
    """
    Process-local assignment map with TTL. Contents are lost on restart.

    Single dict reads and writes are atomic, so no lock is taken and
    different keys never contend.
    """

    def __init__(self, default_ttl: timedelta = DEFAULT_TTL):
        self.default_ttl = default_ttl
        self._records: Dict[Tuple[str, str], AssignmentRecord] = {}

    def get_record(self, experiment_id: str, subject_id: str) -> Optional[AssignmentRecord]:
        key = (experiment_id, subject_id)
        record = self._records.get(key)
        if record is None:
            return None
        if record.is_expired():
            self._records.pop(key, None)
            return None
        return record

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
        existing = self.get_record(experiment_id, subject_id)
        if existing is not None and existing.variant_id == variant_id:
            return

        now = utcnow()
        self._records[(experiment_id, subject_id)] = AssignmentRecord(
            variant_id=variant_id,
            assigned_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
        )

    def delete(self, experiment_id: str, subject_id: str) -> None:
        self._records.pop((experiment_id, subject_id), None)

    def __len__(self) -> int:
        return len(self._records)
