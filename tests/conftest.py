"""Shared pytest fixtures for the experiment service tests."""

from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from app.core.db import build_engine, build_session_factory
from app.core.settings import EventSinkKind, Settings
from app.main import create_app
from app.models.orm.base import Base
from app.models.schemas.experiment import Experiment
from app.services.catalog import ExperimentCatalog


@pytest.fixture
def experiment_factory() -> Callable[..., Experiment]:
    """Return a builder for experiments with A/B/C variants at 30/30/40."""

    def build(**overrides: Any) -> Experiment:
        data: dict[str, Any] = {
            "id": "exp-1",
            "name": "Checkout button",
            "status": "active",
            "variants": [
                {"id": "A", "name": "Control", "allocation": 30, "config": {"color": "blue"}},
                {"id": "B", "name": "Green", "allocation": 30, "config": {"color": "green"}},
                {"id": "C", "name": "Red", "allocation": 40, "config": {"color": "red"}},
            ],
            "conversionGoals": [
                {"id": "purchase", "name": "Purchase", "type": "custom", "value": "checkout_done"},
            ],
        }
        data.update(overrides)
        return Experiment.model_validate(data)

    return build


@pytest.fixture
def experiment(experiment_factory) -> Experiment:
    return experiment_factory()


@pytest.fixture
def catalog(experiment) -> ExperimentCatalog:
    return ExperimentCatalog([experiment])


@pytest.fixture
def session_factory():
    """Return a session factory bound to a fresh in-memory SQLite database."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def app_settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        event_sink=EventSinkKind.DATABASE,
        event_workers=1,
        log_json=False,
    )


@pytest.fixture
def client(app_settings):
    app = create_app(app_settings)
    with TestClient(app) as test_client:
        yield test_client
