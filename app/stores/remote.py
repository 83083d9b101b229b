from datetime import timedelta
from typing import Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from app.core.clock import utcnow
from app.core.errors import StoreUnavailableError
from app.models.schemas.assignment import AssignmentCreateModel, AssignmentRecord
from app.stores.base import DEFAULT_TTL


class RemoteAssignmentStore:
    """
    Assignment store reached over HTTP, so that several stateless engine
    instances share the same sticky assignments.

    Talks to the ``/assignment`` endpoints of a service running
    ``DatabaseAssignmentStore``. Every call is bounded by ``timeout``;
    timeouts, transport errors and 5xx answers raise ``StoreUnavailableError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 0.05,
        api_token: Optional[str] = None,
        default_ttl: timedelta = DEFAULT_TTL,
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self.default_ttl = default_ttl
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout, headers=headers)

    @staticmethod
    def _path(experiment_id: str, subject_id: str) -> str:
        return f"/assignment/{quote(experiment_id, safe='')}/{quote(subject_id, safe='')}"

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise StoreUnavailableError(f"Assignment store timed out: {e}") from e
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Assignment store unreachable: {e}") from e

        if response.status_code >= 500:
            raise StoreUnavailableError(
                f"Assignment store returned {response.status_code}"
            )
        return response

    def get_record(self, experiment_id: str, subject_id: str) -> Optional[AssignmentRecord]:
        response = self._request("GET", self._path(experiment_id, subject_id))
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise StoreUnavailableError(
                f"Unexpected assignment store response {response.status_code}"
            )

        try:
            record = AssignmentRecord.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise StoreUnavailableError(f"Malformed assignment store response: {e}") from e

        if record.is_expired():
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
        now = utcnow()
        body = AssignmentCreateModel(
            experiment_id=experiment_id,
            subject_id=subject_id,
            variant_id=variant_id,
            assigned_at=now,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
        )
        response = self._request(
            "POST", "/assignment", json=body.model_dump(mode="json", by_alias=True)
        )
        if response.status_code >= 400:
            raise StoreUnavailableError(
                f"Assignment store rejected write with {response.status_code}"
            )

    def delete(self, experiment_id: str, subject_id: str) -> None:
        response = self._request("DELETE", self._path(experiment_id, subject_id))
        if response.status_code >= 400 and response.status_code != 404:
            raise StoreUnavailableError(
                f"Assignment store rejected delete with {response.status_code}"
            )

    def close(self) -> None:
        self._client.close()
