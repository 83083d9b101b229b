import json
import logging
from datetime import timedelta
from typing import Dict, MutableMapping, Optional
from urllib.parse import quote, unquote

from pydantic import ValidationError

from app.core.clock import utcnow
from app.models.schemas.assignment import AssignmentRecord
from app.stores.base import DEFAULT_TTL

logger = logging.getLogger(__name__)


class ClientAssignmentStore:
    """
    Assignment store that lives with the caller, e.g. in HTTP cookies.

    ``state`` is the caller's key-value map (request cookies). Writes update it
    and are remembered in ``changes`` so the HTTP layer can send them back.
    Values are URL-quoted JSON ``{"variantId", "assignedAt", "expiresAt"}``.
    """

    def __init__(
        self,
        state: Optional[MutableMapping[str, str]] = None,
        prefix: str = "ab_test_",
        default_ttl: timedelta = DEFAULT_TTL,
    ):
        self.state: MutableMapping[str, str] = state if state is not None else {}
        self.prefix = prefix
        self.default_ttl = default_ttl
        # key -> new value, or None for a removal
        self.changes: Dict[str, Optional[str]] = {}

    def key_for(self, experiment_id: str, subject_id: str) -> str:
        # Percent-encoded so ids like e-mail addresses stay legal cookie names
        return f"{self.prefix}{quote(experiment_id, safe='')}_{quote(subject_id, safe='')}"

    def get_record(self, experiment_id: str, subject_id: str) -> Optional[AssignmentRecord]:
        key = self.key_for(experiment_id, subject_id)
        raw = self.state.get(key)
        if not raw:
            return None

        try:
            record = AssignmentRecord.model_validate(json.loads(unquote(raw)))
        except (ValueError, ValidationError):
            # Tampered or foreign value; behave as if nothing was stored
            logger.debug("Ignoring unreadable client assignment %s", key)
            return None

        if record.is_expired():
            self._remove(key)
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
        record = AssignmentRecord(
            variant_id=variant_id,
            assigned_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
        )
        key = self.key_for(experiment_id, subject_id)
        value = quote(record.model_dump_json(by_alias=True), safe="")
        self.state[key] = value
        self.changes[key] = value

    def delete(self, experiment_id: str, subject_id: str) -> None:
        self._remove(self.key_for(experiment_id, subject_id))

    def _remove(self, key: str) -> None:
        if key in self.state:
            del self.state[key]
        self.changes[key] = None

    def max_age_seconds(self, ttl: Optional[timedelta] = None) -> int:
        return int((ttl if ttl is not None else self.default_ttl).total_seconds())
