"""Domain confidence calculation.

    confidence = round(100 * (0.35*coverage + 0.25*quality
                              + 0.25*freshness + 0.15*stability))

coverage  - sum of the domain-specific weights of present drivers (0-1)
quality   - weight-weighted mean of source quality multipliers
freshness - weight-weighted mean of driver freshness scores
stability - always 0 until time-series baselines exist

Domain confidence caps (e.g. metabolism without lab biomarkers) are applied
to the raw weighted sum before rounding. Priors always get a fixed low
confidence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from primecard.domains.health.domain_logic.domain_score import select_domain_results
from primecard.domains.health.domain_logic.scorecard_models import (
    CONFIDENCE_COPY,
    CONFIDENCE_HIGH_THRESHOLD,
    CONFIDENCE_LOW_THRESHOLD,
    CONFIDENCE_WEIGHTS,
    PRIOR_CONFIDENCE,
    SOURCE_QUALITY_MULTIPLIERS,
    DriverScoringResult,
    clamp,
    round_half_up,
)
from primecard.domains.health.registry.models import ConfidenceCap, DriverRegistry

# Sources missing from the quality table are treated like a prior.
_UNKNOWN_SOURCE_QUALITY = SOURCE_QUALITY_MULTIPLIERS["prior"]


@dataclass(frozen=True)
class DomainConfidence:
    confidence: int
    label: str
    copy: str


def get_confidence_label(confidence: float) -> str:
    """<40 Low, 40-69 Medium, >=70 High."""
    if confidence < CONFIDENCE_LOW_THRESHOLD:
        return "Low"
    if confidence >= CONFIDENCE_HIGH_THRESHOLD:
        return "High"
    return "Medium"


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def _weighted_mean(pairs: list[tuple[float, float]]) -> float:
    total = sum(w for w, _ in pairs)
    if total <= 0:
        return 0.0
    return sum(w * v for w, v in pairs) / total


def calculate_coverage(
    domain: str, results: Iterable[DriverScoringResult], registry: DriverRegistry
) -> float:
    covered = 0.0
    for key in {r.driver_key for r in results}:
        contribution = registry.contribution(key, domain)
        if contribution is not None:
            covered += contribution.weight
    return min(covered, 1.0)


def calculate_quality(
    domain: str, results: Iterable[DriverScoringResult], registry: DriverRegistry
) -> float:
    pairs = []
    for r in results:
        contribution = registry.contribution(r.driver_key, domain)
        if contribution is None:
            continue
        quality = SOURCE_QUALITY_MULTIPLIERS.get(r.source_type, _UNKNOWN_SOURCE_QUALITY)
        pairs.append((contribution.weight, quality))
    return _weighted_mean(pairs)


def calculate_freshness_component(
    domain: str, results: Iterable[DriverScoringResult], registry: DriverRegistry
) -> float:
    pairs = []
    for r in results:
        contribution = registry.contribution(r.driver_key, domain)
        if contribution is None:
            continue
        pairs.append((contribution.weight, r.freshness_score))
    return _weighted_mean(pairs)


def calculate_stability(results: Iterable[DriverScoringResult]) -> float:
    """Always 0.

    TODO: score drivers whose time-series baseline meets their
    ``stability_requirement_days`` once observation history is stored.
    """
    return 0.0


def cap_applies(cap: ConfidenceCap, results: Iterable[DriverScoringResult]) -> bool:
    """True unless a qualifying driver (source and, if listed, key) is present."""
    for r in results:
        if r.source_type != cap.unless_source:
            continue
        if cap.unless_drivers and r.driver_key not in cap.unless_drivers:
            continue
        return False
    return True


# ---------------------------------------------------------------------------
# Domain confidence
# ---------------------------------------------------------------------------

def calculate_domain_confidence(
    domain: str,
    driver_results: Iterable[DriverScoringResult],
    registry: DriverRegistry,
    using_prior: bool,
) -> DomainConfidence:
    if using_prior:
        label = get_confidence_label(PRIOR_CONFIDENCE)
        return DomainConfidence(PRIOR_CONFIDENCE, label, CONFIDENCE_COPY[label])

    kept, _ = select_domain_results(domain, driver_results, registry)

    raw = 100 * (
        CONFIDENCE_WEIGHTS["coverage"] * calculate_coverage(domain, kept, registry)
        + CONFIDENCE_WEIGHTS["quality"] * calculate_quality(domain, kept, registry)
        + CONFIDENCE_WEIGHTS["freshness"] * calculate_freshness_component(domain, kept, registry)
        + CONFIDENCE_WEIGHTS["stability"] * calculate_stability(kept)
    )

    cap = registry.domains[domain].confidence_cap
    if cap is not None and cap_applies(cap, kept):
        raw = min(raw, cap.cap)

    confidence = int(clamp(round_half_up(raw)))
    label = get_confidence_label(confidence)
    return DomainConfidence(confidence, label, CONFIDENCE_COPY[label])
