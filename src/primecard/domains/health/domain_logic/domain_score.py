"""Domain score calculation.

For a domain with present drivers A:

    w_tmp_i   = w_i / sum(w_j for j in A)          # reallocate missing weight
    w_cap_i   = min(w_tmp_i, dominance_cap_i)      # no single driver dominates
    w_final_i = w_cap_i / sum(w_cap_k for k in A)  # renormalize to 1
    score     = sum(w_final_i * s_i)               # rounded to 1 decimal

With no present drivers the domain falls back to its prior score, so a
domain score is never missing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from primecard.domains.health.domain_logic.scorecard_models import (
    PRIOR_SCORE_CEILING,
    PRIOR_SCORE_FLOOR,
    DriverScoringResult,
    UserContext,
    clamp,
    round_half_up,
)
from primecard.domains.health.registry.models import DriverConfig, DriverRegistry


@dataclass(frozen=True)
class DomainScore:
    score: float
    using_prior: bool


def select_domain_results(
    domain: str,
    driver_results: Iterable[DriverScoringResult],
    registry: DriverRegistry,
) -> tuple[list[DriverScoringResult], list[DriverScoringResult]]:
    """Split driver results into (kept, suppressed) for one domain.

    Only drivers contributing to ``domain`` are considered. A ``fallback_only``
    driver is suppressed when any driver in its ``suppress_if_present`` list is
    also present for this domain.
    """
    contributing = [
        r for r in driver_results if registry.contribution(r.driver_key, domain) is not None
    ]
    present = {r.driver_key for r in contributing}

    kept: list[DriverScoringResult] = []
    suppressed: list[DriverScoringResult] = []
    for result in contributing:
        config = registry.drivers[result.driver_key]
        if config.fallback_only and present.intersection(config.suppress_if_present):
            suppressed.append(result)
        else:
            kept.append(result)
    return kept, suppressed


def get_prior_score(
    domain: str, registry: DriverRegistry, context: UserContext | None = None
) -> float:
    """Prior score for a domain with no evidence.

    Age-adjusted domains lose 3 points from age 50 and 5 from age 60; the
    adjusted prior is clamped to [30, 70].
    """
    policy = registry.domains[domain]
    prior = float(policy.prior_score)

    age = context.age if context is not None else None
    if not age:
        return prior

    adjustment = 0
    if policy.age_adjusted:
        if age >= 60:
            adjustment = -5
        elif age >= 50:
            adjustment = -3
    return clamp(prior + adjustment, PRIOR_SCORE_FLOOR, PRIOR_SCORE_CEILING)


def compute_domain_weights(
    domain: str,
    driver_results: Iterable[DriverScoringResult],
    registry: DriverRegistry,
) -> dict[str, float]:
    """Final per-driver weights (reallocated, capped, renormalized).

    ``driver_results`` must already be the kept set for ``domain``. Returns an
    empty dict when nothing contributes.
    """
    contributions = {}
    for result in driver_results:
        contribution = registry.contribution(result.driver_key, domain)
        if contribution is not None:
            contributions[result.driver_key] = contribution

    total = sum(c.weight for c in contributions.values())
    if total <= 0:
        return {}

    capped = {
        key: min(c.weight / total, c.dominance_cap) for key, c in contributions.items()
    }
    capped_total = sum(capped.values())
    if capped_total <= 0:
        return {}
    return {key: weight / capped_total for key, weight in capped.items()}


def calculate_domain_score(
    domain: str,
    driver_results: Iterable[DriverScoringResult],
    registry: DriverRegistry,
    context: UserContext | None = None,
) -> DomainScore:
    kept, _ = select_domain_results(domain, driver_results, registry)
    weights = compute_domain_weights(domain, kept, registry)
    if not weights:
        return DomainScore(get_prior_score(domain, registry, context), using_prior=True)

    total = sum(weights[r.driver_key] * r.driver_score for r in kept)
    return DomainScore(clamp(round_half_up(total, 1)), using_prior=False)


# ---------------------------------------------------------------------------
# Missing evidence
# ---------------------------------------------------------------------------

def get_missing_drivers(
    domain: str, present_driver_keys: Iterable[str], registry: DriverRegistry
) -> list[DriverConfig]:
    """Registry drivers for ``domain`` with no observation, highest weight first.

    A fallback driver is not missing while a driver that suppresses it is
    present.
    """
    present = set(present_driver_keys)
    missing = []
    for config in registry.drivers_for_domain(domain):
        if config.driver_key in present:
            continue
        if config.fallback_only and present.intersection(config.suppress_if_present):
            continue
        missing.append(config)

    # sorted() is stable, so equal weights keep registry order.
    return sorted(missing, key=lambda c: -c.contribution_for(domain).weight)


def get_fastest_upgrade_action(
    domain: str, present_driver_keys: Iterable[str], registry: DriverRegistry
) -> str | None:
    """``missing_copy`` of the highest-weight missing driver, if any."""
    missing = get_missing_drivers(domain, present_driver_keys, registry)
    if not missing:
        return None
    return missing[0].missing_copy
