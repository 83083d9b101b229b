# services/event_recorder.py
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from threading import Lock
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from app.core.errors import EventValidationError
from app.models.schemas.event import EventCreateModel, ExperimentEvent
from app.services.event_sinks import EventSink

logger = logging.getLogger(__name__)


class EventRecorder:
    """
    Fire-and-forget recorder for exposure and conversion events.

    Validation happens on the caller's thread and raises
    ``EventValidationError``. The sink write is handed to a worker pool;
    it is retried a few times and then dropped with a warning. Nothing about
    the write ever reaches the caller.
    """

    def __init__(
        self,
        sink: EventSink,
        max_workers: int = 4,
        retry_attempts: int = 2,
        retry_delay: float = 0.05,
        backoff_factor: float = 2.0,
    ):
        self.sink = sink
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="event-recorder")
        self._pending: set[Future] = set()
        self._pending_lock = Lock()

    @staticmethod
    def validate(event: Union[EventCreateModel, Mapping[str, Any]]) -> EventCreateModel:
        if isinstance(event, EventCreateModel):
            return event
        try:
            return EventCreateModel.model_validate(event)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            raise EventValidationError(
                f"Invalid tracking event, check fields: {', '.join(fields)}",
                errors=e.errors(include_url=False),
            ) from e

    def track_event(self, event: Union[EventCreateModel, Mapping[str, Any]]) -> None:
        validated = self.validate(event)
        try:
            future = self._executor.submit(self._write, validated)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(
                "Dropping tracking event, recorder is shut down",
                extra={
                    "experiment_id": validated.experiment_id,
                    "variant_id": validated.variant_id,
                    "session_id": validated.session_id,
                    "event": validated.event,
                    "error": str(e),
                },
            )
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def get_results(self, experiment_id: str) -> list[ExperimentEvent]:
        """Raw, unaggregated events for an experiment."""
        try:
            return self.sink.list_for_experiment(experiment_id)
        except Exception as e:
            logger.warning(
                "Event sink read failed",
                extra={"experiment_id": experiment_id, "error": str(e)},
            )
            return []

    def flush(self, timeout: Optional[float] = None) -> None:
        """Waits for writes submitted so far."""
        with self._pending_lock:
            pending = list(self._pending)
        wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _discard(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _write(self, event: EventCreateModel) -> None:
        delay = self.retry_delay
        log_extra = {
            "experiment_id": event.experiment_id,
            "variant_id": event.variant_id,
            "session_id": event.session_id,
            "event": event.event,
        }
        for attempt in range(1, self.retry_attempts + 1):
            try:
                self.sink.append(event)
                return
            except Exception as e:
                if attempt < self.retry_attempts:
                    logger.warning(
                        "Event write failed (attempt %d/%d). Retrying in %ss",
                        attempt,
                        self.retry_attempts,
                        delay,
                        extra={**log_extra, "attempt": attempt, "error": str(e)},
                    )
                    time.sleep(delay)
                    delay *= self.backoff_factor
                else:
                    logger.warning(
                        "Dropping tracking event after %d attempts",
                        attempt,
                        extra={**log_extra, "attempt": attempt, "error": str(e)},
                    )
