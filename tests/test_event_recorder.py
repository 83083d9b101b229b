"""Tests for event validation, fire-and-forget writes and the sinks."""

import logging
from datetime import datetime, timezone

import httpx
import pytest

from app.core.errors import EventValidationError, StoreUnavailableError
from app.models.schemas.event import EventCreateModel
from app.services.event_recorder import EventRecorder
from app.services.event_sinks import DatabaseEventSink, MemoryEventSink, RemoteEventSink


def event_payload(**overrides):
    payload = {
        "experimentId": "exp-1",
        "variantId": "B",
        "subjectId": "user-1",
        "sessionId": "session-1",
        "event": "checkout_done",
        "value": 19.99,
        "metadata": {"page": "/cart"},
        "timestamp": "2025-06-01T12:00:00Z",
    }
    payload.update(overrides)
    return payload


class FailingSink:
    def __init__(self):
        self.attempts = 0

    def append(self, event):
        self.attempts += 1
        raise StoreUnavailableError("sink offline")

    def list_for_experiment(self, experiment_id):
        raise StoreUnavailableError("sink offline")


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def recorder(sink):
    recorder = EventRecorder(sink, max_workers=1, retry_delay=0)
    yield recorder
    recorder.shutdown()


class TestValidation:
    @pytest.mark.parametrize("missing", ["experimentId", "variantId", "sessionId", "event", "timestamp"])
    def test_missing_required_field(self, recorder, sink, missing) -> None:
        payload = event_payload()
        del payload[missing]

        with pytest.raises(EventValidationError) as exc_info:
            recorder.track_event(payload)

        assert exc_info.value.errors
        recorder.flush()
        assert len(sink) == 0

    def test_empty_event_name(self, recorder) -> None:
        with pytest.raises(EventValidationError):
            recorder.track_event(event_payload(event=""))

    def test_subject_is_optional(self, recorder, sink) -> None:
        payload = event_payload()
        del payload["subjectId"]

        recorder.track_event(payload)
        recorder.flush()

        assert sink.list_for_experiment("exp-1")[0].subject_id is None

    def test_user_id_alias(self) -> None:
        payload = event_payload(userId="legacy-user")
        del payload["subjectId"]

        event = EventRecorder.validate(payload)
        assert event.subject_id == "legacy-user"


class TestTracking:
    def test_records_event(self, recorder, sink) -> None:
        recorder.track_event(event_payload())
        recorder.flush()

        [event] = recorder.get_results("exp-1")
        assert event.variant_id == "B"
        assert event.value == 19.99
        assert event.metadata == {"page": "/cart"}
        assert event.timestamp == datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def test_results_are_per_experiment(self, recorder) -> None:
        recorder.track_event(event_payload())
        recorder.track_event(event_payload(experimentId="exp-2"))
        recorder.flush()

        assert [e.experiment_id for e in recorder.get_results("exp-2")] == ["exp-2"]

    def test_accepts_model(self, recorder) -> None:
        recorder.track_event(EventCreateModel.model_validate(event_payload()))
        recorder.flush()

        assert len(recorder.get_results("exp-1")) == 1

    def test_sink_failure_is_not_raised(self, caplog) -> None:
        sink = FailingSink()
        recorder = EventRecorder(sink, max_workers=1, retry_attempts=3, retry_delay=0)

        with caplog.at_level(logging.WARNING, logger="app.services.event_recorder"):
            recorder.track_event(event_payload())
            recorder.flush()
        recorder.shutdown()

        assert sink.attempts == 3
        assert any("Dropping" in r.getMessage() for r in caplog.records)

    def test_track_after_shutdown_is_dropped(self, sink, caplog) -> None:
        recorder = EventRecorder(sink, max_workers=1)
        recorder.shutdown()

        with caplog.at_level(logging.WARNING, logger="app.services.event_recorder"):
            recorder.track_event(event_payload())

        assert len(sink) == 0
        assert any("shut down" in r.getMessage() for r in caplog.records)

    def test_track_after_shutdown_still_validates(self, sink) -> None:
        recorder = EventRecorder(sink, max_workers=1)
        recorder.shutdown()

        with pytest.raises(EventValidationError):
            recorder.track_event(event_payload(event=""))

    def test_results_read_failure_is_empty(self) -> None:
        recorder = EventRecorder(FailingSink(), max_workers=1)

        assert recorder.get_results("exp-1") == []
        recorder.shutdown()


class TestSinks:
    def test_memory_sink_is_bounded(self) -> None:
        sink = MemoryEventSink(capacity=3)
        for i in range(5):
            sink.append(EventCreateModel.model_validate(event_payload(event=f"e{i}")))

        assert [e.event for e in sink.list_for_experiment("exp-1")] == ["e2", "e3", "e4"]

    def test_database_sink_round_trip(self, session_factory) -> None:
        sink = DatabaseEventSink(session_factory)
        sink.append(EventCreateModel.model_validate(event_payload()))

        [event] = sink.list_for_experiment("exp-1")
        assert event.event_id
        assert event.event == "checkout_done"
        assert event.metadata == {"page": "/cart"}
        assert event.timestamp.tzinfo is not None

    def test_database_sink_lists_in_timestamp_order(self, session_factory) -> None:
        sink = DatabaseEventSink(session_factory)
        sink.append(EventCreateModel.model_validate(event_payload(event="late", timestamp="2025-06-02T00:00:00Z")))
        sink.append(EventCreateModel.model_validate(event_payload(event="early", timestamp="2025-06-01T00:00:00Z")))
        sink.append(EventCreateModel.model_validate(event_payload(experimentId="exp-2")))

        assert [e.event for e in sink.list_for_experiment("exp-1")] == ["early", "late"]

    def test_remote_sink_posts_to_track(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202, json={"success": True})

        client = httpx.Client(transport=httpx.MockTransport(handler), base_url="http://svc")
        sink = RemoteEventSink("http://svc", client=client)
        sink.append(EventCreateModel.model_validate(event_payload()))

        assert seen[0].url.path == "/track"
        assert b'"sessionId":"session-1"' in seen[0].content.replace(b" ", b"")

    def test_remote_sink_error_is_unavailable(self) -> None:
        client = httpx.Client(
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
            base_url="http://svc",
        )
        sink = RemoteEventSink("http://svc", client=client)

        with pytest.raises(StoreUnavailableError):
            sink.append(EventCreateModel.model_validate(event_payload()))
