"""Aggregation: domain results -> composite score, evidence and explanations.

Composite score and confidence are weighted over all five domains. Because
domain scores are never missing (priors fill gaps), the composite is always
fully defined.

Derived atoms and risk flags are compact, coach-facing facts read from each
driver's winning observation. They are informational only and never feed
back into scoring.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from primecard.domains.health.domain_logic.domain_score import (
    get_fastest_upgrade_action,
    get_missing_drivers,
)
from primecard.domains.health.domain_logic.driver_scorers import (
    get_bp_category,
    get_rhr_bucket,
    is_bp_crisis,
)
from primecard.domains.health.domain_logic.scorecard_models import (
    DEFAULT_SOURCE_LABELS,
    PRIOR_EXPLANATION,
    DomainEvidenceSummary,
    DriverScoringResult,
    ResolvedObservation,
    as_number,
    clamp,
    format_timestamp,
    proxy_key,
    round_half_up,
)
from primecard.domains.health.registry.models import DriverRegistry

LAB_BIOMARKER_DRIVERS: tuple[str, ...] = ("hba1c", "apob", "hscrp")

DEFAULT_PRIME_CONFIDENCE = 50


# ---------------------------------------------------------------------------
# Composite
# ---------------------------------------------------------------------------

def calculate_prime_score(
    domain_scores: Mapping[str, float], domain_weights: Mapping[str, float]
) -> float:
    """Sum of weight * score over domains, rounded half-up to one decimal."""
    total = sum(domain_weights.get(d, 0.0) * score for d, score in domain_scores.items())
    return clamp(round_half_up(total, 1))


def calculate_prime_confidence(
    domain_confidences: Mapping[str, float], domain_weights: Mapping[str, float]
) -> int:
    """Weighted mean of domain confidences, rounded half-up."""
    weighted = 0.0
    total_weight = 0.0
    for domain, confidence in domain_confidences.items():
        weight = domain_weights.get(domain, 0.0)
        weighted += weight * confidence
        total_weight += weight
    if total_weight <= 0:
        return DEFAULT_PRIME_CONFIDENCE
    return int(clamp(round_half_up(weighted / total_weight)))


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------

def build_evidence_summary(
    domain: str,
    kept: list[DriverScoringResult],
    suppressed: list[DriverScoringResult],
    registry: DriverRegistry,
) -> DomainEvidenceSummary:
    drivers_used = [
        {
            "driver_key": r.driver_key,
            "display_name": registry.drivers[r.driver_key].display_name,
            "source_type": r.source_type,
            "measured_at": format_timestamp(r.measured_at),
            "has_value": True,
        }
        for r in kept
    ]

    present = [r.driver_key for r in kept] + [r.driver_key for r in suppressed]
    missing_drivers = [
        {
            "driver_key": config.driver_key,
            "display_name": config.display_name,
            "missing_copy": config.missing_copy,
        }
        for config in get_missing_drivers(domain, present, registry)
    ]

    return DomainEvidenceSummary(
        drivers_used=drivers_used,
        missing_drivers=missing_drivers,
        suppressed_drivers=[r.driver_key for r in suppressed],
        fastest_upgrade_action=get_fastest_upgrade_action(domain, present, registry),
    )


def source_label(driver_key: str, source_type: str, registry: DriverRegistry) -> str:
    """UI label for an evidence source; the driver's own label map wins."""
    config = registry.get(driver_key)
    if config is not None and source_type in config.evidence_label_map:
        return config.evidence_label_map[source_type]
    return DEFAULT_SOURCE_LABELS.get(source_type, source_type)


def build_how_calculated(
    domain: str,
    kept: Iterable[DriverScoringResult],
    registry: DriverRegistry,
    using_prior: bool,
) -> list[str]:
    """One explanation line per driver used, or the population-prior line."""
    if using_prior:
        return [PRIOR_EXPLANATION]

    lines = []
    for r in kept:
        config = registry.get(r.driver_key)
        if config is None or not config.contributes_to(domain):
            continue
        label = source_label(r.driver_key, r.source_type, registry)
        lines.append(
            f"{config.display_name}: {label} (score: {int(round_half_up(r.driver_score))})"
        )
    return lines


# ---------------------------------------------------------------------------
# Derived atoms and risk flags
# ---------------------------------------------------------------------------

def _domain_resolved(
    domain: str, resolved: Mapping[str, ResolvedObservation], registry: DriverRegistry
) -> dict[str, ResolvedObservation]:
    return {
        key: r for key, r in resolved.items() if registry.contribution(key, domain) is not None
    }


def _bp_values(obs: ResolvedObservation) -> tuple[float | None, float | None]:
    systolic = as_number(obs.value)
    diastolic = as_number(obs.observation.metadata.get("diastolic"))
    return systolic, diastolic


def derive_domain_atoms(
    domain: str,
    resolved: Mapping[str, ResolvedObservation],
    registry: DriverRegistry,
) -> dict[str, Any]:
    """Compact per-domain facts for the coaching layer."""
    present = _domain_resolved(domain, resolved, registry)
    atoms: dict[str, Any] = {}

    if domain == "heart":
        bp = present.get("bp")
        if bp is not None:
            systolic, diastolic = _bp_values(bp)
            if systolic is not None:
                atoms["bp_category"] = get_bp_category(systolic)
                atoms["bp_crisis_flag"] = is_bp_crisis(systolic, diastolic)
        if "cardio_fitness" in present:
            atoms["cardio_self_rating_bucket"] = proxy_key(present["cardio_fitness"].value)
        rhr = present.get("rhr")
        if rhr is not None and as_number(rhr.value) is not None:
            atoms["rhr_bucket"] = get_rhr_bucket(as_number(rhr.value))
        has_device = any(r.source_type == "device" for r in present.values())
        if "bp" not in present and not has_device:
            atoms["heart_missing_top_action"] = "Add blood pressure"
        elif not has_device:
            atoms["heart_missing_top_action"] = "Connect Apple Health"

    elif domain == "frame":
        wth = present.get("waist_to_height")
        if wth is not None and as_number(wth.value) is not None:
            atoms["waist_to_height"] = as_number(wth.value)
        if "pushups" in present:
            atoms["strength_bucket"] = proxy_key(present["pushups"].value)
        if "pain_limitation" in present:
            atoms["limitation_flag"] = present["pain_limitation"].value in ("moderate", "severe")

    elif domain == "metabolism":
        atoms["labs_present"] = any(
            key in LAB_BIOMARKER_DRIVERS and r.source_type == "lab"
            for key, r in present.items()
        )
        risk = present.get("metabolic_risk")
        if risk is not None:
            value = proxy_key(risk.value)
            atoms["met_risk_flags"] = [] if value == "no_risk" else [value]

    elif domain == "recovery":
        if "sleep_duration" in present:
            atoms["sleep_bucket"] = proxy_key(present["sleep_duration"].value)
        if "sleep_regularity" in present:
            atoms["regularity_flag"] = proxy_key(present["sleep_regularity"].value) == "true"
        if "insomnia" in present:
            atoms["insomnia_bucket"] = proxy_key(present["insomnia"].value)

    elif domain == "mind":
        atoms["mind_test_present"] = any(r.source_type == "test" for r in present.values())
        if "focus_stability" in present:
            atoms["focus_bucket"] = proxy_key(present["focus_stability"].value)
        if "brain_fog" in present:
            atoms["fog_bucket"] = proxy_key(present["brain_fog"].value)

    return atoms


def extract_risk_flags(
    domain: str,
    resolved: Mapping[str, ResolvedObservation],
    registry: DriverRegistry,
) -> dict[str, bool]:
    """Safety flags for a domain; a flag is only set when its driver is present."""
    present = _domain_resolved(domain, resolved, registry)
    flags: dict[str, bool] = {}

    if domain == "heart" and "bp" in present:
        systolic, diastolic = _bp_values(present["bp"])
        if systolic is not None:
            flags["bp_crisis_flag"] = is_bp_crisis(systolic, diastolic)
    elif domain == "frame" and "pain_limitation" in present:
        flags["severe_pain_flag"] = present["pain_limitation"].value == "severe"
    elif domain == "metabolism" and "metabolic_risk" in present:
        flags["diabetes_flag"] = proxy_key(present["metabolic_risk"].value) == "diabetes"

    return flags
