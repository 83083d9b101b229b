import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Path, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

from app.core.auth import require_auth_token
from app.core.db import build_engine, build_session_factory
from app.core.default_experiments import default_experiments
from app.core.errors import EventValidationError, StoreUnavailableError
from app.core.logging_config import setup_logging
from app.core.settings import EventSinkKind, Settings, StorageBackend
from app.models.orm.base import Base
from app.models.schemas.assignment import AssignmentCreateModel, AssignmentRecord
from app.models.schemas.event import ExperimentEvent
from app.models.schemas.experiment import (
    AssignmentContext,
    AssignmentResultModel,
    Experiment,
)
from app.services.assignment_engine import AssignmentEngine
from app.services.catalog import ExperimentCatalog
from app.services.event_recorder import EventRecorder
from app.services.event_sinks import DatabaseEventSink, MemoryEventSink, RemoteEventSink
from app.services.results_service import ResultsSummarizer
from app.stores.client import ClientAssignmentStore
from app.stores.database import DatabaseAssignmentStore
from app.stores.ephemeral import EphemeralAssignmentStore
from app.stores.factory import build_assignment_store

logger = logging.getLogger(__name__)

router = APIRouter()


def build_event_sink(settings: Settings, session_factory):
    if settings.event_sink == EventSinkKind.MEMORY:
        return MemoryEventSink(capacity=settings.event_buffer_size)
    if settings.event_sink == EventSinkKind.REMOTE:
        return RemoteEventSink(settings.remote_store_url, api_token=settings.remote_api_token)
    return DatabaseEventSink(session_factory)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the service with its own catalog, stores and recorder.

    Nothing is shared between apps, so tests can create isolated instances.
    """
    settings = settings or Settings()
    setup_logging(settings.log_level, settings.log_json)

    db_engine = build_engine(settings.database_url)
    session_factory = build_session_factory(db_engine)

    if settings.experiments_file:
        catalog = ExperimentCatalog.from_file(settings.experiments_file)
    else:
        catalog = ExperimentCatalog(default_experiments())

    # Client-held stores are built per request from the request cookies
    shared_store = None
    if settings.storage_backend != StorageBackend.CLIENT:
        shared_store = build_assignment_store(settings)

    recorder = EventRecorder(
        build_event_sink(settings, session_factory),
        max_workers=settings.event_workers,
        retry_attempts=settings.event_retry_attempts,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=db_engine)
        logger.info(
            "Experiment service started",
            extra={"backend": settings.storage_backend.value},
        )
        yield
        recorder.shutdown()
        for closable in (shared_store, recorder.sink):
            if hasattr(closable, "close"):
                closable.close()
        db_engine.dispose()

    app = FastAPI(
        title="Experiment assignment service",
        description="Deterministic A/B assignment and event tracking",
        version="0.1.0",
        dependencies=[Depends(require_auth_token)],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db_engine = db_engine
    app.state.session_factory = session_factory
    app.state.catalog = catalog
    app.state.assignment_store = shared_store
    app.state.fallback_store = EphemeralAssignmentStore(default_ttl=settings.session_timeout)
    app.state.shared_assignments = DatabaseAssignmentStore(
        session_factory, default_ttl=settings.session_timeout
    )
    app.state.recorder = recorder
    app.state.summarizer = ResultsSummarizer()

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        # The tracking contract answers malformed bodies with 400, not 422
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_errors(exc)},
        )

    app.include_router(router)
    return app


def jsonable_errors(exc: RequestValidationError) -> List[Dict[str, Any]]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# --- Dependencies ---


def get_catalog(request: Request) -> ExperimentCatalog:
    return request.app.state.catalog


def get_recorder(request: Request) -> EventRecorder:
    return request.app.state.recorder


def get_shared_assignments(request: Request) -> DatabaseAssignmentStore:
    return request.app.state.shared_assignments


def get_engine(request: Request) -> AssignmentEngine:
    state = request.app.state
    settings: Settings = state.settings
    store = state.assignment_store
    if store is None:
        store = build_assignment_store(settings, client_state=dict(request.cookies))
    return AssignmentEngine(
        state.catalog,
        store,
        enabled=settings.enabled,
        ttl=settings.session_timeout,
        fallback_store=state.fallback_store,
    )


# --- Experiments ---


@router.get(
    "/experiments",
    response_model=List[Experiment],
    summary="List experiments that are active right now",
)
def list_active_experiments(catalog: ExperimentCatalog = Depends(get_catalog)):
    return catalog.list_active()


@router.post(
    "/experiments",
    response_model=Experiment,
    status_code=status.HTTP_201_CREATED,
)
def post_experiments(experiment: Experiment, catalog: ExperimentCatalog = Depends(get_catalog)):
    if experiment.id in catalog:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Experiment {experiment.id} already exists.",
        )
    _warn_on_allocation(experiment)
    catalog.update(experiment)
    return experiment


@router.put("/experiments/{experiment_id}", response_model=Experiment)
def put_experiment(
    experiment: Experiment,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    catalog: ExperimentCatalog = Depends(get_catalog),
):
    if experiment.id != experiment_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Experiment id in body does not match the path.",
        )
    _warn_on_allocation(experiment)
    catalog.update(experiment)
    return experiment


@router.delete("/experiments/{experiment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_experiment(experiment_id: str, catalog: ExperimentCatalog = Depends(get_catalog)):
    catalog.remove(experiment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _warn_on_allocation(experiment: Experiment) -> None:
    # Not rejected: the engine gives uncovered buckets to the last variant
    if experiment.variants and experiment.total_allocation != 100.0:
        logger.warning(
            "Variant allocations sum to %s%%, not 100%%",
            experiment.total_allocation,
            extra={"experiment_id": experiment.id},
        )


@router.get(
    "/experiments/{experiment_id}/assign/{subject_id}",
    response_model=AssignmentResultModel,
    summary="Resolve a subject's variant",
)
def get_subject_variant(
    response: Response,
    experiment_id: str = Path(..., description="The ID of the experiment."),
    subject_id: str = Path(..., description="The ID of the user or visitor."),
    user_type: Optional[str] = Query(None, alias="userType"),
    location: Optional[str] = Query(None),
    rollout_key: Optional[str] = Query(None, alias="rolloutKey"),
    engine: AssignmentEngine = Depends(get_engine),
):
    """
    Resolves the variant for a subject. A missing, ineligible or degraded
    assignment comes back as ``variantId: null``, meaning the default experience.
    """
    context = AssignmentContext(user_type=user_type, location=location, rollout_key=rollout_key)
    variant_id = engine.assign(experiment_id, subject_id, context)

    if isinstance(engine.store, ClientAssignmentStore):
        _write_client_cookies(response, engine.store)

    config = engine.get_variant_config(experiment_id, variant_id) if variant_id else None
    return AssignmentResultModel(
        experiment_id=experiment_id,
        subject_id=subject_id,
        variant_id=variant_id,
        config=config,
    )


def _write_client_cookies(response: Response, store: ClientAssignmentStore) -> None:
    for key, value in store.changes.items():
        if value is None:
            response.delete_cookie(key, path="/")
        else:
            response.set_cookie(
                key, value, max_age=store.max_age_seconds(), path="/", samesite="lax"
            )


# --- Shared assignment store ---


@router.post("/assignment", summary="Persist a sticky assignment")
def post_assignment(
    assignment: AssignmentCreateModel,
    store: DatabaseAssignmentStore = Depends(get_shared_assignments),
):
    try:
        store.save(
            assignment.experiment_id,
            assignment.subject_id,
            assignment.variant_id,
            assigned_at=assignment.assigned_at,
            expires_at=assignment.expires_at,
        )
    except StoreUnavailableError as e:
        logger.error("Failed to persist assignment: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assignment store unavailable.",
        )
    logger.info(
        "Assignment created",
        extra={
            "experiment_id": assignment.experiment_id,
            "subject_id": assignment.subject_id,
            "variant_id": assignment.variant_id,
        },
    )
    return {"success": True}


@router.get(
    "/assignment/{experiment_id}/{subject_id}",
    response_model=AssignmentRecord,
    summary="Get a subject's stored assignment",
)
def get_assignment(
    experiment_id: str,
    subject_id: str,
    store: DatabaseAssignmentStore = Depends(get_shared_assignments),
):
    try:
        record = store.get_record(experiment_id, subject_id)
    except StoreUnavailableError as e:
        logger.error("Failed to read assignment: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assignment store unavailable.",
        )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found",
        )
    return record


@router.delete("/assignment/{experiment_id}/{subject_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    experiment_id: str,
    subject_id: str,
    store: DatabaseAssignmentStore = Depends(get_shared_assignments),
):
    try:
        store.delete(experiment_id, subject_id)
    except StoreUnavailableError as e:
        logger.error("Failed to delete assignment: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Assignment store unavailable.",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Tracking ---


@router.post(
    "/track",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record an exposure or conversion event",
)
def post_track(
    payload: Dict[str, Any] = Body(...),
    recorder: EventRecorder = Depends(get_recorder),
):
    try:
        recorder.track_event(payload)
    except EventValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"success": True}


@router.get(
    "/events/{experiment_id}",
    response_model=List[ExperimentEvent],
    summary="Raw event stream for an experiment",
)
def get_events(experiment_id: str, recorder: EventRecorder = Depends(get_recorder)):
    return recorder.get_results(experiment_id)


@router.get("/results/{experiment_id}", summary="Per-variant tallies for an experiment")
def get_experiment_results(
    request: Request,
    experiment_id: str,
    catalog: ExperimentCatalog = Depends(get_catalog),
    recorder: EventRecorder = Depends(get_recorder),
):
    experiment = catalog.get(experiment_id)
    if experiment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Experiment {experiment_id} not found.",
        )
    events = recorder.get_results(experiment_id)
    return request.app.state.summarizer.summarize(experiment, events)


@router.get("/config/{experiment_id}/{variant_id}", summary="Variant configuration payload")
def get_variant_config(
    experiment_id: str,
    variant_id: str,
    engine: AssignmentEngine = Depends(get_engine),
):
    config = engine.get_variant_config(experiment_id, variant_id)
    if config is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Config not found",
        )
    return config


# Entry point for running the application directly (local development)
if __name__ == "__main__":
    uvicorn.run("app.main:create_app", factory=True, host="0.0.0.0", port=8000, reload=True)
