from datetime import timedelta
from typing import Optional, Protocol, runtime_checkable

from app.models.schemas.assignment import AssignmentRecord

DEFAULT_TTL = timedelta(days=30)


@runtime_checkable
class AssignmentStore(Protocol):
    """
    Sticky assignment persistence keyed by ``(experiment_id, subject_id)``.

    Implementations must treat expired records exactly like missing ones,
    make re-setting a live key to the same variant a no-op, and never hold
    a lock across different keys. Backend failures are raised as
    ``StoreUnavailableError``.
    """

    def get(self, experiment_id: str, subject_id: str) -> Optional[str]:
        ...

    def get_record(self, experiment_id: str, subject_id: str) -> Optional[AssignmentRecord]:
        ...

    def set(
        self,
        experiment_id: str,
        subject_id: str,
        variant_id: str,
        ttl: Optional[timedelta] = None,
    ) -> None:
        ...

    def delete(self, experiment_id: str, subject_id: str) -> None:
        ...
