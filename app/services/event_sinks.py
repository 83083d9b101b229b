import threading
from collections import deque
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.errors import StoreUnavailableError
from app.models.schemas.event import EventCreateModel, ExperimentEvent
from app.repositories.event_repo import EventRepository


class EventSink(Protocol):
    """Append-only destination for tracking events."""

    def append(self, event: EventCreateModel) -> None:
        ...

    def list_for_experiment(self, experiment_id: str) -> list[ExperimentEvent]:
        ...


class MemoryEventSink:
    """Keeps the newest ``capacity`` events in process memory."""

    def __init__(self, capacity: int = 1000):
        self._events: deque[ExperimentEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, event: EventCreateModel) -> None:
        with self._lock:
            self._events.append(ExperimentEvent(**event.model_dump()))

    def list_for_experiment(self, experiment_id: str) -> list[ExperimentEvent]:
        with self._lock:
            return [e for e in self._events if e.experiment_id == experiment_id]

    def __len__(self) -> int:
        return len(self._events)


class DatabaseEventSink:
    """Writes events to the ``events`` table, one session per write."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(self, event: EventCreateModel) -> None:
        try:
            with self.session_factory() as db:
                EventRepository(db).create_event(event)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Event write failed: {e}") from e

    def list_for_experiment(self, experiment_id: str) -> list[ExperimentEvent]:
        try:
            with self.session_factory() as db:
                events = EventRepository(db).get_events_for_experiment(experiment_id)
                return [EventRepository.to_model(e) for e in events]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"Event read failed: {e}") from e


class RemoteEventSink:
    """Forwards events to the ``/track`` endpoint of a shared service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 1.0,
        api_token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout, headers=headers)

    def append(self, event: EventCreateModel) -> None:
        try:
            response = self._client.post(
                "/track", json=event.model_dump(mode="json", by_alias=True)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise StoreUnavailableError(f"Event delivery failed: {e}") from e

    def list_for_experiment(self, experiment_id: str) -> list[ExperimentEvent]:
        try:
            response = self._client.get(f"/events/{quote(experiment_id, safe='')}")
            response.raise_for_status()
            return [ExperimentEvent.model_validate(item) for item in response.json()]
        except (httpx.HTTPError, ValueError) as e:
            raise StoreUnavailableError(f"Event listing failed: {e}") from e

    def close(self) -> None:
        self._client.close()
