"""Driver scoring: one resolved observation -> a 0-100 driver score.

Each scoring method is a pure function of (value, config). Values that a
method cannot score fall back to the method's ``default_score``; nothing here
raises for bad user data. Every returned score is clamped to [0, 100].

Clinical helpers at the bottom (BP category, RHR bucket, BMI, waist-to-height,
metabolic risk category) are shared by the onboarding converter and the
derived-atom builder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from primecard.domains.health.domain_logic.scorecard_models import (
    NEUTRAL_SCORE,
    Observation,
    ResolvedObservation,
    UserContext,
    as_number,
    clamp,
    proxy_key,
)
from primecard.domains.health.registry.models import (
    DriverConfig,
    LadderScoring,
    PassthroughScoring,
    PercentileScoring,
    ProxyMapScoring,
    TrendScoring,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriverScore:
    """Score plus the ladder band label that produced it, if any."""

    score: float
    label: str | None = None


# ---------------------------------------------------------------------------
# Method scorers
# ---------------------------------------------------------------------------

def score_ladder(value: Any, scoring: LadderScoring) -> DriverScore:
    """First band (in declaration order) containing the value wins."""
    number = as_number(value)
    if number is None:
        logger.debug("Ladder scoring got non-numeric value %r", value)
        return DriverScore(clamp(scoring.default_score))

    for band in scoring.bands:
        if band.matches(number):
            return DriverScore(clamp(band.score), band.label)
    return DriverScore(clamp(scoring.default_score))


def score_proxy_map(value: Any, scoring: ProxyMapScoring) -> DriverScore:
    key = proxy_key(value)
    score = scoring.mapping.get(key)
    if score is None:
        logger.debug("Proxy map has no entry for %r", key)
        return DriverScore(clamp(scoring.default_score))
    return DriverScore(clamp(score))


def score_percentile(
    value: Any, scoring: PercentileScoring, context: UserContext | None = None
) -> DriverScore:
    """Percentile placeholder.

    TODO: look up ``scoring.percentile_table`` by age/sex from ``context``
    once population tables exist. Until then the raw value is clamped into
    [0, 100].
    """
    number = as_number(value)
    if number is None:
        return DriverScore(clamp(scoring.default_score))
    return DriverScore(clamp(number))


def score_passthrough(value: Any, scoring: PassthroughScoring) -> DriverScore:
    """Value is a pre-computed 0-100 score."""
    number = as_number(value)
    if number is None:
        return DriverScore(clamp(scoring.default_score))
    return DriverScore(clamp(number))


def score_trend(value: Any, scoring: TrendScoring) -> DriverScore:
    """Trend placeholder.

    TODO: compare against a ``scoring.baseline_days`` baseline once stored
    time series are available. Always neutral for now.
    """
    return DriverScore(NEUTRAL_SCORE)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def score_driver(
    observation: ResolvedObservation | Observation,
    config: DriverConfig,
    context: UserContext | None = None,
) -> DriverScore:
    """Score a driver's winning observation using its registry scoring method."""
    value = observation.value
    scoring = config.scoring

    if isinstance(scoring, LadderScoring):
        return score_ladder(value, scoring)
    if isinstance(scoring, ProxyMapScoring):
        return score_proxy_map(value, scoring)
    if isinstance(scoring, PercentileScoring):
        return score_percentile(value, scoring, context)
    if isinstance(scoring, PassthroughScoring):
        return score_passthrough(value, scoring)
    if isinstance(scoring, TrendScoring):
        return score_trend(value, scoring)

    logger.warning(
        "Unknown scoring config %s for driver %s; using neutral score",
        type(scoring).__name__,
        config.driver_key,
    )
    return DriverScore(NEUTRAL_SCORE)


# ---------------------------------------------------------------------------
# Clinical helpers
# ---------------------------------------------------------------------------

def get_bp_category(systolic: float) -> str:
    """Blood pressure category from systolic pressure."""
    if systolic < 120:
        return "optimal"
    if systolic < 130:
        return "normal"
    if systolic < 140:
        return "elevated"
    if systolic < 160:
        return "stage1"
    if systolic < 180:
        return "stage2"
    return "crisis"


def is_bp_crisis(systolic: float, diastolic: float | None = None) -> bool:
    """Hypertensive crisis: systolic >= 180 or diastolic >= 120."""
    return systolic >= 180 or (diastolic is not None and diastolic >= 120)


def get_rhr_bucket(bpm: float) -> str:
    if bpm < 55:
        return "<55"
    if bpm < 65:
        return "55-64"
    if bpm < 75:
        return "65-74"
    if bpm < 85:
        return "75-84"
    return "85+"


def calculate_waist_to_height(waist_cm: float, height_cm: float) -> float:
    if height_cm <= 0:
        return 0.0
    return waist_cm / height_cm


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    if height_cm <= 0:
        return 0.0
    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)


_NOT_A_CONDITION = frozenset({"none", "unsure"})


def derive_metabolic_risk_category(
    diagnoses: list[str], family_history: list[str]
) -> str:
    """Collapse diagnosis and family-history answers into one risk category.

    Precedence: diabetes > multiple_conditions > one_condition > prediabetes
    > family_history_only > no_risk. Prediabetes is its own category and is
    not counted among the other conditions.
    """
    diagnoses = list(diagnoses or [])
    conditions = [
        d for d in diagnoses
        if d not in _NOT_A_CONDITION and d not in ("diabetes", "prediabetes")
    ]
    has_family_history = any(f not in _NOT_A_CONDITION for f in (family_history or []))

    if "diabetes" in diagnoses:
        return "diabetes"
    if len(conditions) > 1:
        return "multiple_conditions"
    if len(conditions) == 1:
        return "one_condition"
    if "prediabetes" in diagnoses:
        return "prediabetes"
    if has_family_history:
        return "family_history_only"
    return "no_risk"
