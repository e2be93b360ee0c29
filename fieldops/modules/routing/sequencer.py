"""Greedy route sequencing for a worker's open location-bound tasks.

The sequencer is a heuristic, not a solver: from the current position it
repeatedly picks the unvisited candidate with the best weighted score of
closeness, priority and reward, moves there, and repeats. It never writes
anything; the plan is advisory.
"""

import logging
import math
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from fieldops.core import clock as clock_module
from fieldops.core.clock import Clock
from fieldops.core.config import Constants
from fieldops.core.logging import span
from fieldops.domain.geofence import Position
from fieldops.domain.route import RouteCandidate, RoutePlan, RouteStop
from fieldops.domain.task import TaskPriority, TaskStatus
from fieldops.modules.geo import geofence_service, primitives
from fieldops.modules.geo.geofence_detector import resolve_center
from fieldops.modules.tasks import service as task_service


logger = logging.getLogger(__name__)

_BASE_PRIORITY = {TaskPriority.HIGH: 8, TaskPriority.MEDIUM: 5, TaskPriority.LOW: 2}
_TIME_MULTIPLIER = {TaskPriority.HIGH: 1.5, TaskPriority.MEDIUM: 1.2, TaskPriority.LOW: 1.0}

# (hours until due, bonus), checked in order
_URGENCY_BONUSES = ((24, 3), (48, 2), (72, 1))
# (reward above, bonus), checked in order
_REWARD_BONUSES = ((5000, 2), (2000, 1))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class RouteSequencer(Protocol):
    """Orders candidate stops for one worker."""

    def sequence(self, position: Position, candidates: Sequence[RouteCandidate]) -> RoutePlan:
        """Return the visiting order and its aggregate figures."""
        ...


def priority_score(candidate: RouteCandidate, now: datetime) -> float:
    """Priority on a 1-10 scale: base by priority, plus due-date urgency and reward bonuses."""
    score = _BASE_PRIORITY[candidate.priority]

    if candidate.due_date is not None:
        hours_until_due = (candidate.due_date - now) / timedelta(hours=1)
        for limit, bonus in _URGENCY_BONUSES:
            if hours_until_due < limit:
                score += bonus
                break

    for threshold, bonus in _REWARD_BONUSES:
        if candidate.reward > threshold:
            score += bonus
            break

    return float(min(score, Constants.ROUTE_SCORE_CEILING))


def estimate_stop_minutes(candidate: RouteCandidate) -> int:
    """Minutes on site: a priority-scaled base plus a capped allowance for description length."""
    complexity = min(
        len(candidate.description) / Constants.ROUTE_DESCRIPTION_CHARS_PER_MINUTE,
        Constants.ROUTE_MAX_COMPLEXITY_MINUTES,
    )
    return _round_half_up(Constants.ROUTE_BASE_STOP_MINUTES * _TIME_MULTIPLIER[candidate.priority] + complexity)


def composite_score(distance_meters: float, priority: float, reward: float) -> float:
    """Weighted score used to pick the next stop. Higher is better."""
    distance_score = max(0.0, Constants.ROUTE_SCORE_CEILING - distance_meters / 1000)
    reward_score = min(reward / Constants.ROUTE_REWARD_SCALE, Constants.ROUTE_SCORE_CEILING)
    return (
        Constants.ROUTE_DISTANCE_WEIGHT * distance_score
        + Constants.ROUTE_PRIORITY_WEIGHT * priority
        + Constants.ROUTE_REWARD_WEIGHT * reward_score
    )


class GreedyRouteSequencer:
    """Best-next-stop sequencer.

    Ties go to the candidate that appears first in the input.
    """

    def __init__(
        self,
        *,
        estimate_time: Callable[[RouteCandidate], int] = estimate_stop_minutes,
        clock: Clock | None = None,
    ) -> None:
        self._estimate_time = estimate_time
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock.now() if self._clock is not None else clock_module.now()

    def sequence(self, position: Position, candidates: Sequence[RouteCandidate]) -> RoutePlan:
        primitives.validate_coordinates(position.latitude, position.longitude)
        for candidate in candidates:
            primitives.validate_coordinates(candidate.latitude, candidate.longitude)

        now = self._now()
        priorities = {id(candidate): priority_score(candidate, now) for candidate in candidates}

        unvisited = list(candidates)
        current_lat, current_lng = position.latitude, position.longitude
        stops: list[RouteStop] = []
        total_distance = 0.0
        total_execution = 0
        total_reward = 0.0

        while unvisited:
            best: RouteCandidate | None = None
            best_score = -math.inf
            best_distance = 0.0
            for candidate in unvisited:
                distance = primitives.haversine_distance_meters(
                    current_lat, current_lng, candidate.latitude, candidate.longitude
                )
                score = composite_score(distance, priorities[id(candidate)], candidate.reward)
                if score > best_score:
                    best, best_score, best_distance = candidate, score, distance

            assert best is not None
            unvisited.remove(best)

            minutes = self._estimate_time(best)
            stops.append(
                RouteStop(
                    sequence=len(stops) + 1,
                    task_id=best.task_id,
                    title=best.title,
                    latitude=best.latitude,
                    longitude=best.longitude,
                    distance_from_previous_meters=best_distance,
                    estimated_minutes=minutes,
                    priority_score=priorities[id(best)],
                    score=best_score,
                    reward=best.reward,
                )
            )
            total_distance += best_distance
            total_execution += minutes
            total_reward += best.reward
            current_lat, current_lng = best.latitude, best.longitude

        travel_minutes = _round_half_up(total_distance / 1000 * Constants.ROUTE_TRAVEL_MINUTES_PER_KM)
        duration = total_execution + travel_minutes
        efficiency = total_reward / (duration / 60) if duration > 0 else 0.0

        return RoutePlan(
            stops=stops,
            total_distance_meters=total_distance,
            total_execution_minutes=total_execution,
            travel_minutes=travel_minutes,
            estimated_duration_minutes=duration,
            total_reward=total_reward,
            efficiency=efficiency,
        )


async def plan_route_for_worker(
    *,
    worker_id: str,
    position: Position,
    task_ids: list[str] | None = None,
    sequencer: RouteSequencer | None = None,
) -> RoutePlan:
    """Plan a route over the worker's Not Started tasks that have a usable location.

    Each task contributes its first location, with geofence centres read live.
    Tasks whose location cannot be resolved are left out.

    Args:
        worker_id: Assigned worker
        position: Where the worker is now
        task_ids: Restrict the plan to these tasks
        sequencer: Sequencing strategy (greedy by default)
    """
    with span("routing.plan_route_for_worker"):
        tasks = await task_service.list_tasks(statuses=[TaskStatus.NOT_STARTED], assigned_to=worker_id)
        if task_ids is not None:
            wanted = set(task_ids)
            tasks = [task for task in tasks if task.id in wanted]

        candidates = []
        for task in tasks:
            if not task.locations:
                continue
            location = task.locations[0]
            try:
                geofence = (
                    await geofence_service.get_geofence(geofence_id=location.geofence_id)
                    if location.geofence_id
                    else None
                )
                latitude, longitude, _ = resolve_center(location, geofence)
            except (KeyError, ValueError) as e:
                logger.warning("Leaving task %s out of route: %s", task.id, e)
                continue

            candidates.append(
                RouteCandidate(
                    task_id=task.id,
                    title=task.title,
                    description=task.description,
                    priority=task.priority,
                    due_date=task.due_date,
                    reward=task.reward,
                    latitude=latitude,
                    longitude=longitude,
                )
            )

        plan = (sequencer or GreedyRouteSequencer()).sequence(position, candidates)
        logger.info(
            "Planned route for worker %s: %d stops, %.1f km",
            worker_id,
            len(plan.stops),
            plan.total_distance_meters / 1000,
        )
        return plan
