# services/assignment_engine.py
import logging
from datetime import timedelta
from typing import Any, Dict, Optional, Sequence

from app.core.errors import StoreUnavailableError
from app.models.schemas.experiment import (
    AssignmentContext,
    Experiment,
    ExperimentStatus,
    Variant,
)
from app.services.catalog import ExperimentCatalog
from app.services.hashing import bucket_key, compute_bucket
from app.stores.base import AssignmentStore
from app.stores.ephemeral import EphemeralAssignmentStore

logger = logging.getLogger(__name__)


def select_variant(variants: Sequence[Variant], bucket: int) -> Variant:
    """
    Picks the first variant whose cumulative allocation exceeds ``bucket``.

    When allocations sum to less than 100 the uncovered buckets fall through
    to the last variant; when they sum to more, the tail is unreachable.
    """
    cumulative_allocation = 0.0
    for variant in variants:
        cumulative_allocation += variant.allocation
        if bucket < cumulative_allocation:
            return variant

    return variants[-1]


def rollout_key_for(subject_id: str, context: Optional[AssignmentContext]) -> str:
    """
    Key hashed as ``f"{experiment_id}-{key}"`` for the rollout percentage.

    ``context.rollout_key`` wins, then ``context.metadata["sessionId"]``,
    else ``f"rollout-{subject_id}"``. Other clients must build the same key
    to reproduce rollout membership.
    """
    if context is not None:
        if context.rollout_key:
            return context.rollout_key
        session_id = context.metadata.get("sessionId")
        if session_id:
            return str(session_id)
    # Namespaced so the rollout bucket is independent of the variant bucket
    return f"rollout-{subject_id}"


def is_eligible(
    experiment: Experiment, subject_id: str, context: Optional[AssignmentContext] = None
) -> bool:
    """Audience targeting: user type, location and rollout percentage."""
    audience = experiment.target_audience
    if audience is None:
        return True

    user_type = context.user_type if context else None
    if audience.user_types and user_type:
        if user_type not in audience.user_types:
            return False

    location = context.location if context else None
    if audience.locations and location:
        if location not in audience.locations:
            return False

    if audience.percentage < 100:
        key = bucket_key(experiment.id, rollout_key_for(subject_id, context))
        if compute_bucket(key) >= audience.percentage:
            return False

    return True


class AssignmentEngine:
    """
    Resolves the variant a subject sees in an experiment.

    Everything except the store read and the single store write is a pure
    function of the catalog snapshot and the inputs. Store failures never
    reach the caller: the engine logs a warning, falls back to a process-local
    store and still returns the computed variant.
    """

    def __init__(
        self,
        catalog: ExperimentCatalog,
        store: AssignmentStore,
        enabled: bool = True,
        ttl: Optional[timedelta] = None,
        fallback_store: Optional[AssignmentStore] = None,
    ):
        self.catalog = catalog
        self.store = store
        self.enabled = enabled
        self.ttl = ttl
        self.fallback_store = fallback_store or EphemeralAssignmentStore()

    def assign(
        self,
        experiment_id: str,
        subject_id: str,
        context: Optional[AssignmentContext] = None,
    ) -> Optional[str]:
        if not self.enabled:
            return None

        log_extra = {"experiment_id": experiment_id, "subject_id": subject_id}

        experiment = self.catalog.get(experiment_id)
        if experiment is None or experiment.status != ExperimentStatus.ACTIVE:
            logger.debug("No active experiment", extra=log_extra)
            return None

        if not experiment.variants:
            logger.debug("Experiment has no variants", extra=log_extra)
            return None

        if not is_eligible(experiment, subject_id, context):
            logger.debug("Subject not eligible", extra=log_extra)
            return None

        existing = self._lookup(experiment_id, subject_id)
        if existing is not None:
            return existing

        bucket = compute_bucket(bucket_key(experiment_id, subject_id))
        variant = select_variant(experiment.variants, bucket)
        logger.debug(
            "Assigned bucket %d", bucket, extra={**log_extra, "variant_id": variant.id}
        )

        self._persist(experiment_id, subject_id, variant.id)
        return variant.id

    def get_variant_config(self, experiment_id: str, variant_id: str) -> Optional[Dict[str, Any]]:
        experiment = self.catalog.get(experiment_id)
        if experiment is None:
            return None
        variant = experiment.get_variant(variant_id)
        return dict(variant.config) if variant else None

    def _lookup(self, experiment_id: str, subject_id: str) -> Optional[str]:
        try:
            return self.store.get(experiment_id, subject_id)
        except StoreUnavailableError as e:
            logger.warning(
                "Assignment store read failed, using local fallback",
                extra={"experiment_id": experiment_id, "subject_id": subject_id, "error": str(e)},
            )
            return self.fallback_store.get(experiment_id, subject_id)

    def _persist(self, experiment_id: str, subject_id: str, variant_id: str) -> None:
        try:
            self.store.set(experiment_id, subject_id, variant_id, self.ttl)
        except StoreUnavailableError as e:
            logger.warning(
                "Assignment store write failed, assignment not persisted",
                extra={
                    "experiment_id": experiment_id,
                    "subject_id": subject_id,
                    "variant_id": variant_id,
                    "error": str(e),
                },
            )
            self.fallback_store.set(experiment_id, subject_id, variant_id, self.ttl)
