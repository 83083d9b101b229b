import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from pydantic import TypeAdapter

from app.core.clock import as_utc, utcnow
from app.models.schemas.experiment import Experiment, ExperimentStatus

logger = logging.getLogger(__name__)

_experiment_list = TypeAdapter(list[Experiment])


class ExperimentCatalog:
    """
    In-memory registry of experiment definitions.

    Reads never lock: the registry is an immutable snapshot that writers
    replace wholesale (copy-on-write) under a lock, so an in-flight assignment
    sees either the old or the new definition, never a mix.
    """

    def __init__(self, experiments: Optional[Iterable[Experiment]] = None):
        self._experiments: Mapping[str, Experiment] = {}
        self._write_lock = threading.Lock()
        if experiments:
            self.load(experiments)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ExperimentCatalog":
        """Builds a catalog from a JSON list of experiment definitions."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        experiments = _experiment_list.validate_python(raw)
        logger.info("Loaded %d experiments from %s", len(experiments), path)
        return cls(experiments)

    def load(self, experiments: Iterable[Experiment], replace: bool = False) -> None:
        """Merges definitions by id, or swaps the whole registry when ``replace`` is set."""
        with self._write_lock:
            snapshot = {} if replace else dict(self._experiments)
            for experiment in experiments:
                snapshot[experiment.id] = experiment
            self._experiments = snapshot

    def get(self, experiment_id: str) -> Optional[Experiment]:
        return self._experiments.get(experiment_id)

    def list_active(self, now: Optional[datetime] = None) -> list[Experiment]:
        """Experiments with status ``active`` whose inclusive date window contains ``now``."""
        now = as_utc(now) or utcnow()
        active = []
        for experiment in self._experiments.values():
            if experiment.status != ExperimentStatus.ACTIVE:
                continue
            if experiment.start_date and experiment.start_date > now:
                continue
            if experiment.end_date and experiment.end_date < now:
                continue
            active.append(experiment)
        return active

    def update(self, experiment: Experiment) -> None:
        with self._write_lock:
            snapshot = dict(self._experiments)
            snapshot[experiment.id] = experiment
            self._experiments = snapshot
        logger.info("Experiment updated", extra={"experiment_id": experiment.id})

    def remove(self, experiment_id: str) -> None:
        with self._write_lock:
            if experiment_id not in self._experiments:
                return
            snapshot = dict(self._experiments)
            del snapshot[experiment_id]
            self._experiments = snapshot
        logger.info("Experiment removed", extra={"experiment_id": experiment_id})

    def __len__(self) -> int:
        return len(self._experiments)

    def __contains__(self, experiment_id: str) -> bool:
        return experiment_id in self._experiments
