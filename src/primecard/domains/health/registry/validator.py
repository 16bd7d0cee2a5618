"""Driver registry validator: ensures registry documents are well-formed.

Runs over the raw (YAML-decoded) document before any model is built, and
collects every problem instead of stopping at the first one, so a broken
deployment reports all of its configuration errors at once.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from primecard.domains.health.domain_logic.scorecard_models import (
    DEFAULT_SOURCE_PRIORITY,
    PRIME_DOMAINS,
    proxy_key,
)
from primecard.domains.health.registry.models import SCORING_METHODS

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 1e-6

REQUIRED_DRIVER_FIELDS = ["driver_key", "display_name", "missing_copy", "scoring"]


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _is_score(value: Any) -> bool:
    return _is_number(value) and 0 <= value <= 100


def _is_unit_fraction(value: Any) -> bool:
    """True for numbers in (0, 1]."""
    return _is_number(value) and 0 < value <= 1


# ---------------------------------------------------------------------------
# Scoring configuration
# ---------------------------------------------------------------------------

def _validate_scoring(where: str, scoring: Any) -> list[str]:
    if not isinstance(scoring, dict):
        return [f"{where}.scoring: must be a mapping"]

    errors: list[str] = []
    method = scoring.get("method")
    if method not in SCORING_METHODS:
        return [
            f"{where}.scoring.method: unknown scoring method {method!r} "
            f"(expected one of {', '.join(SCORING_METHODS)})"
        ]

    if "default_score" in scoring and not _is_score(scoring["default_score"]):
        errors.append(f"{where}.scoring.default_score: must be a number in [0, 100]")

    if method == "ladder":
        bands = scoring.get("bands")
        if not isinstance(bands, list) or not bands:
            errors.append(f"{where}.scoring.bands: ladder needs at least one band")
            return errors
        for i, band in enumerate(bands):
            path = f"{where}.scoring.bands[{i}]"
            if not isinstance(band, dict):
                errors.append(f"{path}: must be a mapping")
                continue
            if not _is_score(band.get("score")):
                errors.append(f"{path}.score: must be a number in [0, 100]")
            lo, hi = band.get("min"), band.get("max")
            if lo is not None and not _is_number(lo):
                errors.append(f"{path}.min: must be a number")
            if hi is not None and not _is_number(hi):
                errors.append(f"{path}.max: must be a number")
            if _is_number(lo) and _is_number(hi) and lo >= hi:
                errors.append(f"{path}: min ({lo}) must be below max ({hi})")

    elif method == "proxy_map":
        mapping = scoring.get("mapping")
        if not isinstance(mapping, dict) or not mapping:
            errors.append(f"{where}.scoring.mapping: proxy_map needs a non-empty mapping")
        else:
            # Keys are matched as proxy_key(answer), so True and "true" are the same key.
            seen_keys: dict[str, Any] = {}
            for key, score in mapping.items():
                if not _is_score(score):
                    errors.append(
                        f"{where}.scoring.mapping[{key!r}]: must be a number in [0, 100]"
                    )
                canonical = proxy_key(key)
                if canonical in seen_keys:
                    errors.append(
                        f"{where}.scoring.mapping[{key!r}]: duplicates key "
                        f"{seen_keys[canonical]!r} (both match answer {canonical!r})"
                    )
                else:
                    seen_keys[canonical] = key

    elif method == "percentile":
        table = scoring.get("percentile_table")
        if not isinstance(table, str) or not table:
            errors.append(f"{where}.scoring.percentile_table: must be a non-empty string")

    elif method == "trend":
        baseline = scoring.get("baseline_days", 30)
        if not isinstance(baseline, int) or isinstance(baseline, bool) or baseline <= 0:
            errors.append(f"{where}.scoring.baseline_days: must be a positive integer")

    return errors


# ---------------------------------------------------------------------------
# Domain contributions
# ---------------------------------------------------------------------------

def raw_contributions(entry: dict[str, Any]) -> list[Any]:
    """Return the contribution list of a driver entry in either accepted form.

    A driver declares either ``domain_contributions: [...]`` or the
    single-domain shorthand ``domain`` / ``weight`` / ``dominance_cap``.
    """
    contributions = entry.get("domain_contributions")
    if contributions:
        return contributions if isinstance(contributions, list) else [contributions]
    if "domain" in entry:
        return [
            {
                "domain": entry.get("domain"),
                "weight": entry.get("weight"),
                "dominance_cap": entry.get("dominance_cap"),
            }
        ]
    return []


def _validate_contributions(where: str, entry: dict[str, Any]) -> list[str]:
    if entry.get("domain_contributions") and "domain" in entry:
        return [f"{where}: declare either domain_contributions or domain/weight, not both"]

    contributions = raw_contributions(entry)
    if not contributions:
        return [f"{where}: no domain contribution (missing domain weight)"]

    errors: list[str] = []
    seen: set[str] = set()
    for i, c in enumerate(contributions):
        path = f"{where}.domain_contributions[{i}]"
        if not isinstance(c, dict):
            errors.append(f"{path}: must be a mapping")
            continue
        domain = c.get("domain")
        if domain not in PRIME_DOMAINS:
            errors.append(f"{path}.domain: unknown domain {domain!r}")
        elif domain in seen:
            errors.append(f"{path}.domain: duplicate contribution to {domain!r}")
        else:
            seen.add(domain)
        if not _is_unit_fraction(c.get("weight")):
            errors.append(f"{path}.weight: missing or outside (0, 1]")
        if not _is_unit_fraction(c.get("dominance_cap")):
            errors.append(f"{path}.dominance_cap: missing or outside (0, 1]")
    return errors


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

def _validate_driver(index: int, entry: Any) -> list[str]:
    where = f"drivers[{index}]"
    if not isinstance(entry, dict):
        return [f"{where}: must be a mapping"]
    if isinstance(entry.get("driver_key"), str) and entry["driver_key"]:
        where = f"drivers.{entry['driver_key']}"

    errors: list[str] = []
    for field_name in REQUIRED_DRIVER_FIELDS:
        if not entry.get(field_name):
            errors.append(f"{where}: Missing or empty required field '{field_name}'")

    half_life = entry.get("freshness_half_life_days")
    if not _is_number(half_life) or half_life <= 0:
        errors.append(
            f"{where}.freshness_half_life_days: must be a positive number, got {half_life!r}"
        )

    if "scoring" in entry:
        errors.extend(_validate_scoring(where, entry["scoring"]))
    errors.extend(_validate_contributions(where, entry))

    priority = entry.get("source_priority")
    if priority is not None:
        if not isinstance(priority, list) or not priority:
            errors.append(f"{where}.source_priority: must be a non-empty list")
        else:
            for source in priority:
                if source not in DEFAULT_SOURCE_PRIORITY:
                    errors.append(f"{where}.source_priority: unknown source type {source!r}")

    if not isinstance(entry.get("fallback_only", False), bool):
        errors.append(f"{where}.fallback_only: must be a boolean")
    suppress = entry.get("suppress_if_present", [])
    if not isinstance(suppress, list):
        errors.append(f"{where}.suppress_if_present: must be a list of driver keys")
    elif suppress and not entry.get("fallback_only", False):
        logger.warning("%s: suppress_if_present has no effect without fallback_only", where)

    stability = entry.get("stability_requirement_days", 0)
    if not isinstance(stability, int) or isinstance(stability, bool) or stability < 0:
        errors.append(f"{where}.stability_requirement_days: must be a non-negative integer")

    label_map = entry.get("evidence_label_map", {})
    if not isinstance(label_map, dict):
        errors.append(f"{where}.evidence_label_map: must be a mapping")
    else:
        for source in label_map:
            if source not in DEFAULT_SOURCE_PRIORITY:
                errors.append(f"{where}.evidence_label_map: unknown source type {source!r}")

    return errors


def _validate_cross_references(drivers: list[dict[str, Any]]) -> list[str]:
    errors: list[str] = []
    keys = [d.get("driver_key") for d in drivers]

    seen: set[str] = set()
    for key in keys:
        if not isinstance(key, str) or not key:
            continue
        if key in seen:
            errors.append(f"drivers.{key}: Duplicate driver_key {key!r}")
        seen.add(key)

    for entry in drivers:
        suppress = entry.get("suppress_if_present") or []
        if not isinstance(suppress, list):
            continue
        for other in suppress:
            if not isinstance(other, str):
                errors.append(
                    f"drivers.{entry.get('driver_key')}.suppress_if_present: "
                    f"driver keys must be strings, got {other!r}"
                )
            elif other == entry.get("driver_key"):
                errors.append(f"drivers.{other}: cannot suppress itself")
            elif other not in seen:
                errors.append(
                    f"drivers.{entry.get('driver_key')}.suppress_if_present: "
                    f"unknown driver {other!r}"
                )

    # Coverage is the sum of present weights, so a domain's weights must not exceed 1.
    totals: dict[str, float] = {}
    for entry in drivers:
        for c in raw_contributions(entry):
            if isinstance(c, dict) and c.get("domain") in PRIME_DOMAINS and _is_number(c.get("weight")):
                totals[c["domain"]] = totals.get(c["domain"], 0.0) + c["weight"]
    for domain in PRIME_DOMAINS:
        total = totals.get(domain, 0.0)
        if total > 1 + WEIGHT_TOLERANCE:
            errors.append(f"domain {domain!r}: driver weights sum to {total:.4f} (> 1)")
        elif total == 0:
            logger.warning("Domain %r has no drivers; it will always use its prior", domain)
        elif total < 1 - WEIGHT_TOLERANCE:
            logger.warning(
                "Domain %r driver weights sum to %.4f; full coverage is unreachable",
                domain,
                total,
            )
    return errors


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

def _validate_domains(domains: Any, driver_keys: set[str]) -> list[str]:
    if not isinstance(domains, dict):
        return ["domains: must be a mapping of domain -> policy"]

    errors: list[str] = []
    for name in domains:
        if name not in PRIME_DOMAINS:
            errors.append(f"domains.{name}: unknown domain")

    total = 0.0
    for name in PRIME_DOMAINS:
        policy = domains.get(name)
        if not isinstance(policy, dict):
            errors.append(f"domains.{name}: missing domain weight")
            continue
        weight = policy.get("weight")
        if not _is_number(weight) or not 0 <= weight <= 1:
            errors.append(f"domains.{name}.weight: missing or outside [0, 1]")
        else:
            total += weight
        if "prior_score" in policy and not _is_score(policy["prior_score"]):
            errors.append(f"domains.{name}.prior_score: must be a number in [0, 100]")
        if not isinstance(policy.get("age_adjusted", False), bool):
            errors.append(f"domains.{name}.age_adjusted: must be a boolean")

        cap = policy.get("confidence_cap")
        if cap is None:
            continue
        if not isinstance(cap, dict):
            errors.append(f"domains.{name}.confidence_cap: must be a mapping")
            continue
        if not _is_score(cap.get("cap")):
            errors.append(f"domains.{name}.confidence_cap.cap: must be a number in [0, 100]")
        if cap.get("unless_source") not in DEFAULT_SOURCE_PRIORITY:
            errors.append(
                f"domains.{name}.confidence_cap.unless_source: "
                f"unknown source type {cap.get('unless_source')!r}"
            )
        for key in cap.get("unless_drivers", []) or []:
            if not isinstance(key, str) or key not in driver_keys:
                errors.append(f"domains.{name}.confidence_cap.unless_drivers: unknown driver {key!r}")

    if not errors and abs(total - 1.0) > WEIGHT_TOLERANCE:
        errors.append(f"domains: composite weights sum to {total:.4f}, expected 1.0")
    return errors


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate_registry_data(data: Any) -> list[str]:
    """Validate a decoded registry document.

    Returns:
        List of human-readable errors (empty when the document is valid).
    """
    if not isinstance(data, dict):
        return ["registry document must be a mapping"]

    errors: list[str] = []

    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        errors.append(f"version: must be a positive integer, got {version!r}")

    revision = data.get("scoring_revision")
    if not isinstance(revision, str) or not revision.strip():
        errors.append("scoring_revision: must be a non-empty string")

    threshold = data.get("conflict_threshold", 0.10)
    if not _is_number(threshold) or not 0 < threshold < 1:
        errors.append(f"conflict_threshold: must be a number in (0, 1), got {threshold!r}")

    drivers = data.get("drivers")
    if not isinstance(drivers, list) or not drivers:
        errors.append("drivers: must be a non-empty list")
        drivers = []

    for i, entry in enumerate(drivers):
        errors.extend(_validate_driver(i, entry))

    valid_entries = [d for d in drivers if isinstance(d, dict)]
    errors.extend(_validate_cross_references(valid_entries))

    driver_keys = {
        d["driver_key"] for d in valid_entries if isinstance(d.get("driver_key"), str)
    }
    errors.extend(_validate_domains(data.get("domains"), driver_keys))

    return errors
