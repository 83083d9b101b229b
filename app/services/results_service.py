# services/results_service.py
from collections import defaultdict
from typing import Any, Dict, Iterable

from app.models.schemas.event import ExperimentEvent
from app.models.schemas.experiment import Experiment


class ResultsSummarizer:
    """
    Raw per-variant tallies of an experiment's event stream.

    Counts only; significance testing belongs to the analytics engine that
    consumes these numbers.
    """

    @staticmethod
    def _participant(event: ExperimentEvent) -> str:
        # Anonymous sessions are counted by session
        return event.subject_id or f"session:{event.session_id}"

    def summarize(self, experiment: Experiment, events: Iterable[ExperimentEvent]) -> Dict[str, Any]:
        # aggregate event stats on variant level, handle variants with no traffic
        variant_stats: Dict[str, Dict[str, Any]] = {}
        for variant in experiment.variants:
            variant_stats[variant.id] = {
                "participants": set(),
                "event_counts": defaultdict(int),
                "goal_participants": {goal.id: set() for goal in experiment.conversion_goals},
                "allocation": variant.allocation,
            }

        goal_for_event: Dict[str, list[str]] = defaultdict(list)
        for goal in experiment.conversion_goals:
            goal_for_event[goal.id].append(goal.id)
            if goal.value != goal.id:
                goal_for_event[goal.value].append(goal.id)

        total_events = 0
        all_participants = set()
        for event in events:
            stats = variant_stats.get(event.variant_id)
            if stats is None:
                # Events for variants that were removed from the definition
                continue
            total_events += 1
            participant = self._participant(event)
            all_participants.add(participant)
            stats["participants"].add(participant)
            stats["event_counts"][event.event] += 1
            for goal_id in goal_for_event.get(event.event, []):
                stats["goal_participants"][goal_id].add(participant)

        # structure aggregated variant stats
        variants: Dict[str, Dict[str, Any]] = {}
        for variant_id, stats in variant_stats.items():
            participants = len(stats["participants"])
            converted = set().union(*stats["goal_participants"].values()) if stats["goal_participants"] else set()
            variants[variant_id] = {
                "participants": participants,
                "conversions": len(converted),
                "conversion_rate": len(converted) / participants if participants else 0.0,
                "goal_conversions": {
                    goal_id: len(users) for goal_id, users in stats["goal_participants"].items()
                },
                "events": dict(stats["event_counts"]),
                "allocation": stats["allocation"],
            }

        return {
            "experiment_id": experiment.id,
            "name": experiment.name,
            "status": experiment.status.value,
            "total_participants": len(all_participants),
            "total_events": total_events,
            "variants": variants,
        }
