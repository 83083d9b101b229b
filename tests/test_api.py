"""HTTP contract tests against an in-memory SQLite database."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.core.clock import utcnow
from app.core.settings import StorageBackend
from app.main import create_app

TRACK_BODY = {
    "experimentId": "login_form_test",
    "variantId": "control",
    "userId": "student-1",
    "sessionId": "session-1",
    "event": "login_success",
    "timestamp": "2025-06-01T12:00:00Z",
}


def app_client(settings, **overrides) -> TestClient:
    return TestClient(create_app(settings.model_copy(update=overrides)))


class TestAssignmentStoreEndpoints:
    def test_post_then_get(self, client) -> None:
        response = client.post(
            "/assignment",
            json={
                "experimentId": "login_form_test",
                "userId": "student-1",
                "variantId": "variant_a",
                "assignedAt": "2025-06-01T12:00:00Z",
                "expiresAt": (utcnow() + timedelta(days=1)).isoformat(),
            },
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        response = client.get("/assignment/login_form_test/student-1")
        assert response.status_code == 200
        body = response.json()
        assert body["variantId"] == "variant_a"
        assert body["assignedAt"].startswith("2025-06-01T12:00:00")

    def test_missing_is_404(self, client) -> None:
        assert client.get("/assignment/login_form_test/nobody").status_code == 404

    def test_expired_is_404(self, client) -> None:
        client.post(
            "/assignment",
            json={
                "experimentId": "login_form_test",
                "subjectId": "student-2",
                "variantId": "control",
                "assignedAt": "2024-01-01T00:00:00Z",
                "expiresAt": "2024-01-31T00:00:00Z",
            },
        )

        assert client.get("/assignment/login_form_test/student-2").status_code == 404

    def test_invalid_body_is_400(self, client) -> None:
        response = client.post("/assignment", json={"experimentId": "login_form_test"})
        assert response.status_code == 400

    def test_delete(self, client) -> None:
        client.post(
            "/assignment",
            json={"experimentId": "e", "subjectId": "s", "variantId": "v"},
        )
        assert client.delete("/assignment/e/s").status_code == 204
        assert client.get("/assignment/e/s").status_code == 404


class TestTrackEndpoint:
    def test_accepts_valid_event(self, client) -> None:
        response = client.post("/track", json=TRACK_BODY)
        assert response.status_code == 202
        assert response.json() == {"success": True}

        client.app.state.recorder.flush()
        events = client.get("/events/login_form_test").json()
        assert len(events) == 1
        assert events[0]["subjectId"] == "student-1"
        assert events[0]["event"] == "login_success"

    def test_missing_session_is_400(self, client) -> None:
        body = {k: v for k, v in TRACK_BODY.items() if k != "sessionId"}

        response = client.post("/track", json=body)

        assert response.status_code == 400
        assert "sessionId" in response.json()["detail"]

    def test_results_tally(self, client) -> None:
        client.post("/track", json=TRACK_BODY)
        client.post("/track", json={**TRACK_BODY, "event": "page_view"})
        client.app.state.recorder.flush()

        response = client.get("/results/login_form_test")

        assert response.status_code == 200
        control = response.json()["variants"]["control"]
        assert control["participants"] == 1
        assert control["goal_conversions"]["login_success"] == 1
        assert control["events"] == {"login_success": 1, "page_view": 1}

    def test_results_unknown_experiment(self, client) -> None:
        assert client.get("/results/missing").status_code == 404


class TestConfigEndpoint:
    def test_variant_config(self, client) -> None:
        response = client.get("/config/login_form_test/variant_a")

        assert response.status_code == 200
        assert response.json()["buttonText"] == "Login Now"

    @pytest.mark.parametrize("path", ["/config/login_form_test/nope", "/config/missing/control"])
    def test_unknown_is_404(self, client, path) -> None:
        assert client.get(path).status_code == 404


class TestAssignEndpoint:
    def test_assigns_eligible_subject(self, client) -> None:
        url = "/experiments/login_form_test/assign/student-1"

        first = client.get(url, params={"userType": "admin"}).json()
        second = client.get(url, params={"userType": "admin"}).json()

        assert first["variantId"] in {"control", "variant_a", "variant_b"}
        assert second["variantId"] == first["variantId"]
        assert first["config"]["layout"]

    def test_ineligible_subject_gets_null(self, client) -> None:
        response = client.get(
            "/experiments/login_form_test/assign/visitor-1", params={"userType": "guest"}
        )

        assert response.status_code == 200
        assert response.json()["variantId"] is None
        assert response.json()["config"] is None

    def test_draft_experiment_gets_null(self, client) -> None:
        body = client.get("/experiments/button_style_test/assign/student-1").json()
        assert body["variantId"] is None

    def test_kill_switch(self, app_settings) -> None:
        with app_client(app_settings, enabled=False) as client:
            body = client.get("/experiments/pricing_test/assign/student-1").json()

        assert body["variantId"] is None

    def test_client_backend_round_trips_cookie(self, app_settings) -> None:
        with app_client(app_settings, storage_backend=StorageBackend.CLIENT) as client:
            url = "/experiments/pricing_test/assign/student-1"
            first = client.get(url)
            cookie = first.cookies.get("ab_test_pricing_test_student-1")
            second = client.get(url)

        assert cookie
        assert second.json()["variantId"] == first.json()["variantId"]

    @pytest.mark.parametrize("subject", ["student@campus.edu", "student 1", "a,b"])
    def test_client_backend_accepts_any_subject_id(self, app_settings, subject) -> None:
        with app_client(app_settings, storage_backend=StorageBackend.CLIENT) as client:
            url = f"/experiments/pricing_test/assign/{subject}"
            first = client.get(url)
            second = client.get(url)

        assert first.status_code == 200
        assert first.json()["subjectId"] == subject
        assert first.json()["variantId"] in {"control", "simplified"}
        assert second.json()["variantId"] == first.json()["variantId"]


class TestExperimentAdmin:
    NEW_EXPERIMENT = {
        "id": "onboarding_test",
        "name": "Onboarding copy",
        "status": "active",
        "variants": [
            {"id": "control", "name": "Control", "allocation": 50, "config": {"copy": "Welcome"}},
            {"id": "friendly", "name": "Friendly", "allocation": 50, "config": {"copy": "Hi there"}},
        ],
        "conversionGoals": [],
    }

    def test_lists_active_experiments(self, client) -> None:
        ids = {e["id"] for e in client.get("/experiments").json()}

        assert "cta_button_test" in ids
        assert "button_style_test" not in ids

    def test_create_update_remove(self, client) -> None:
        assert client.post("/experiments", json=self.NEW_EXPERIMENT).status_code == 201
        assert client.post("/experiments", json=self.NEW_EXPERIMENT).status_code == 409

        url = "/experiments/onboarding_test/assign/student-1"
        assert client.get(url).json()["variantId"] in {"control", "friendly"}

        paused = {**self.NEW_EXPERIMENT, "status": "paused"}
        assert client.put("/experiments/onboarding_test", json=paused).status_code == 200
        assert client.get(url).json()["variantId"] is None

        assert client.delete("/experiments/onboarding_test").status_code == 204
        assert client.get("/config/onboarding_test/control").status_code == 404

    def test_put_id_mismatch(self, client) -> None:
        response = client.put("/experiments/other", json=self.NEW_EXPERIMENT)
        assert response.status_code == 400


class TestAuth:
    def test_requires_configured_token(self, app_settings) -> None:
        with app_client(app_settings, api_tokens=["secret"]) as client:
            assert client.get("/experiments").status_code == 401
            assert client.get(
                "/experiments", headers={"Authorization": "Bearer wrong"}
            ).status_code == 401
            assert client.get(
                "/experiments", headers={"Authorization": "Bearer secret"}
            ).status_code == 200
