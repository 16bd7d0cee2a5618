"""Observation resolution: many raw observations per driver -> one authoritative value.

Ordering is (source priority asc, measured_at desc); the first observation
wins. Disagreeing lower-priority observations only raise ``conflict_flag``
for a UI "double-check" prompt; they are never excluded from consideration
elsewhere and never change the winner.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Iterable

from primecard.domains.health.domain_logic.scorecard_models import (
    DEFAULT_SOURCE_PRIORITY,
    Observation,
    ResolvedObservation,
    as_number,
    ensure_utc,
)
from primecard.domains.health.registry.models import DriverConfig

DEFAULT_CONFLICT_THRESHOLD = 0.10

_SECONDS_PER_DAY = 86_400.0


def group_observations_by_driver(
    observations: Iterable[Observation],
) -> dict[str, list[Observation]]:
    """Group observations by ``driver_key`` in a single pass, keeping input order."""
    grouped: dict[str, list[Observation]] = defaultdict(list)
    for obs in observations:
        grouped[obs.driver_key].append(obs)
    return dict(grouped)


def _priority_index(source_type: str, priority: tuple[str, ...]) -> int:
    # Sources missing from an override list sort after every listed one.
    try:
        return priority.index(source_type)
    except ValueError:
        return len(priority)


def sort_by_priority(
    observations: Iterable[Observation], config: DriverConfig
) -> list[Observation]:
    """Return observations best-first for this driver."""
    priority = config.source_priority or DEFAULT_SOURCE_PRIORITY
    ordered = sorted(observations, key=lambda o: ensure_utc(o.measured_at), reverse=True)
    # Stable sort: within one source, newest stays first.
    ordered.sort(key=lambda o: _priority_index(o.source_type, priority))
    return ordered


def resolve_best_observation(
    observations: list[Observation], config: DriverConfig
) -> Observation | None:
    """Pick the winning observation, or None when there is nothing to pick."""
    if not observations:
        return None
    return sort_by_priority(observations, config)[0]


def detect_conflict(
    best: Observation,
    observations: Iterable[Observation],
    threshold: float = DEFAULT_CONFLICT_THRESHOLD,
) -> bool:
    """True when another numeric observation deviates from ``best`` by more than ``threshold``.

    Relative difference is measured against the winner. A winner of 0 conflicts
    with any non-zero numeric peer. Non-numeric values (including booleans)
    never conflict.
    """
    best_value = as_number(best.value)
    if best_value is None:
        return False

    for other in observations:
        if other is best:
            continue
        other_value = as_number(other.value)
        if other_value is None:
            continue
        if best_value == 0:
            if other_value != 0:
                return True
            continue
        if abs(other_value - best_value) / abs(best_value) > threshold:
            return True
    return False


def calculate_freshness(measured_at: datetime, half_life_days: float, now: datetime) -> float:
    """Exponential decay: 1.0 when just measured, 0.5 after one half-life.

    Future timestamps count as fresh (1.0).
    """
    age_days = (ensure_utc(now) - ensure_utc(measured_at)).total_seconds() / _SECONDS_PER_DAY
    if age_days <= 0:
        return 1.0
    freshness = math.exp(-math.log(2) * age_days / half_life_days)
    return max(0.0, min(1.0, freshness))


def resolve(
    observations: list[Observation],
    config: DriverConfig,
    now: datetime,
    conflict_threshold: float = DEFAULT_CONFLICT_THRESHOLD,
) -> ResolvedObservation | None:
    """Resolve one driver's observations into a ``ResolvedObservation``."""
    best = resolve_best_observation(observations, config)
    if best is None:
        return None

    return ResolvedObservation(
        observation=best,
        conflict_flag=detect_conflict(best, observations, conflict_threshold),
        freshness_score=calculate_freshness(best.measured_at, config.freshness_half_life_days, now),
        candidate_count=len(observations),
    )
