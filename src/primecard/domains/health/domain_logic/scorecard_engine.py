"""Prime Scorecard engine: observations + registry -> ScorecardResult.

Pipeline:
    resolve (per driver) -> score (per driver)
        -> domain score + domain confidence (per domain)
        -> composite, evidence, explanations
        -> boundary validation (logged, never raised)

The engine is a pure function of (observations, registry, user_context, now).
It keeps no state between calls; the registry is passed in explicitly.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from primecard.domains.health.domain_logic.aggregator import (
    build_evidence_summary,
    build_how_calculated,
    calculate_prime_confidence,
    calculate_prime_score,
    derive_domain_atoms,
    extract_risk_flags,
)
from primecard.domains.health.domain_logic.domain_confidence import (
    calculate_domain_confidence,
)
from primecard.domains.health.domain_logic.domain_score import (
    calculate_domain_score,
    select_domain_results,
)
from primecard.domains.health.domain_logic.driver_scorers import score_driver
from primecard.domains.health.domain_logic.observation_resolver import (
    group_observations_by_driver,
    resolve,
)
from primecard.domains.health.domain_logic.result_validator import validate_and_log
from primecard.domains.health.domain_logic.scorecard_models import (
    PRIME_DOMAINS,
    DomainScoringResult,
    DriverScoringResult,
    Observation,
    ResolvedObservation,
    ScorecardResult,
    UserContext,
    ensure_utc,
)
from primecard.domains.health.registry.models import DriverRegistry

logger = logging.getLogger(__name__)


def score_observations(
    observations: Iterable[Observation],
    registry: DriverRegistry,
    context: UserContext | None,
    now: datetime,
) -> tuple[list[DriverScoringResult], dict[str, ResolvedObservation]]:
    """Resolve and score every registry driver that has observations.

    Drivers are processed in registry order so output is deterministic
    regardless of input order. A driver that fails is logged and skipped.
    """
    grouped = group_observations_by_driver(observations)

    for key in grouped:
        if registry.get(key) is None:
            logger.warning("Ignoring %d observation(s) for unknown driver %r", len(grouped[key]), key)

    results: list[DriverScoringResult] = []
    resolved_by_driver: dict[str, ResolvedObservation] = {}

    for key, config in registry.drivers.items():
        driver_obs = grouped.get(key)
        if not driver_obs:
            continue
        try:
            resolved = resolve(driver_obs, config, now, registry.conflict_threshold)
            if resolved is None:
                continue
            driver_score = score_driver(resolved, config, context)
        except Exception:
            logger.exception("Failed to score driver %s; skipping", key)
            continue

        if resolved.conflict_flag:
            logger.debug(
                "Conflicting observations for %s (%d candidates)", key, resolved.candidate_count
            )

        resolved_by_driver[key] = resolved
        results.append(
            DriverScoringResult(
                driver_key=key,
                driver_score=driver_score.score,
                source_type=resolved.source_type,
                measured_at=resolved.observation.measured_at,
                value=resolved.value,
                unit=resolved.observation.unit,
                freshness_score=resolved.freshness_score,
                conflict_flag=resolved.conflict_flag,
                label=driver_score.label,
            )
        )

    return results, resolved_by_driver


def compute_scorecard(
    observations: Iterable[Observation],
    registry: DriverRegistry,
    *,
    user_context: UserContext | None = None,
    now: datetime | None = None,
) -> ScorecardResult:
    """Compute a complete Prime Scorecard.

    Args:
        observations: Raw observations for any drivers; unknown drivers are ignored.
        registry: Loaded driver registry (see ``load_registry``).
        user_context: Optional age/sex used for prior adjustment.
        now: Reference time for freshness; defaults to the current UTC time.

    Returns:
        A ``ScorecardResult`` covering all five domains. Output validation
        problems are logged, not raised.
    """
    now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
    observations = list(observations)

    driver_results, resolved = score_observations(observations, registry, user_context, now)

    domain_results: dict[str, DomainScoringResult] = {}
    how_calculated: dict[str, list[str]] = {}

    for domain in PRIME_DOMAINS:
        kept, suppressed = select_domain_results(domain, driver_results, registry)
        domain_score = calculate_domain_score(domain, driver_results, registry, user_context)
        confidence = calculate_domain_confidence(
            domain, driver_results, registry, domain_score.using_prior
        )

        domain_results[domain] = DomainScoringResult(
            domain=domain,
            domain_score=domain_score.score,
            domain_confidence=confidence.confidence,
            confidence_label=confidence.label,
            confidence_copy=confidence.copy,
            evidence_summary=build_evidence_summary(domain, kept, suppressed, registry),
            risk_flags=extract_risk_flags(domain, resolved, registry),
            derived_atoms=derive_domain_atoms(domain, resolved, registry),
            driver_results=kept,
            using_prior=domain_score.using_prior,
        )
        how_calculated[domain] = build_how_calculated(
            domain, kept, registry, domain_score.using_prior
        )

    weights = registry.domain_weights()
    result = ScorecardResult(
        generated_at=now,
        prime_score=calculate_prime_score(
            {d: r.domain_score for d, r in domain_results.items()}, weights
        ),
        prime_confidence=calculate_prime_confidence(
            {d: r.domain_confidence for d, r in domain_results.items()}, weights
        ),
        domain_results=domain_results,
        how_calculated=how_calculated,
        scoring_revision=registry.scoring_revision,
    )

    validate_and_log(result)
    logger.debug(
        "Scorecard computed: prime_score=%.1f confidence=%d drivers=%d",
        result.prime_score,
        result.prime_confidence,
        len(driver_results),
    )
    return result
