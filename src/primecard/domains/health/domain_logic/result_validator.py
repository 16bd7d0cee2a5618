"""Boundary validation of the scorecard output contract.

Validation is diagnostic: failures are logged with their path and the result
is still returned to the caller. Domain scores are never null in this
contract; a null domain score is reported as an error.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from primecard.domains.health.domain_logic.scorecard_models import (
    CONFIDENCE_LABELS,
    DEFAULT_SOURCE_PRIORITY,
    PRIME_DOMAINS,
    ScorecardResult,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationError:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------

def _is_score(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and 0 <= value <= 100
    )


def _is_iso_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or "T" not in value:
        return False
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        datetime.fromisoformat(text)
    except ValueError:
        return False
    return True


def _check_score(errors: list[ValidationError], path: str, value: Any) -> None:
    if not _is_score(value):
        errors.append(ValidationError(path, "must be a number between 0-100"))


def _check_source(errors: list[ValidationError], path: str, value: Any) -> None:
    if value not in DEFAULT_SOURCE_PRIORITY:
        errors.append(ValidationError(path, f"invalid source type: {value!r}"))


def _validate_driver_result(
    errors: list[ValidationError], path: str, entry: Any
) -> None:
    if not isinstance(entry, dict):
        errors.append(ValidationError(path, "must be an object"))
        return
    if not isinstance(entry.get("driver_key"), str) or not entry.get("driver_key"):
        errors.append(ValidationError(f"{path}.driver_key", "must be a non-empty string"))
    _check_score(errors, f"{path}.driver_score", entry.get("driver_score"))
    _check_source(errors, f"{path}.source_type", entry.get("source_type"))
    if not _is_iso_timestamp(entry.get("measured_at")):
        errors.append(ValidationError(f"{path}.measured_at", "must be a valid ISO timestamp"))
    freshness = entry.get("freshness_score")
    if not _is_score(freshness) or freshness > 1:
        errors.append(ValidationError(f"{path}.freshness_score", "must be a number between 0-1"))


def _validate_evidence(errors: list[ValidationError], path: str, summary: Any) -> None:
    if not isinstance(summary, dict):
        errors.append(ValidationError(path, "must be an object"))
        return
    used = summary.get("drivers_used")
    if not isinstance(used, list):
        errors.append(ValidationError(f"{path}.drivers_used", "must be an array"))
    else:
        for i, entry in enumerate(used):
            entry_path = f"{path}.drivers_used[{i}]"
            if not isinstance(entry, dict):
                errors.append(ValidationError(entry_path, "must be an object"))
                continue
            _check_source(errors, f"{entry_path}.source_type", entry.get("source_type"))
    if not isinstance(summary.get("missing_drivers"), list):
        errors.append(ValidationError(f"{path}.missing_drivers", "must be an array"))


def _validate_domain_result(
    errors: list[ValidationError], domain: str, result: Any
) -> None:
    path = f"domain_results.{domain}"
    if not isinstance(result, dict):
        errors.append(ValidationError(path, "must be an object"))
        return

    if result.get("domain") != domain:
        errors.append(ValidationError(f"{path}.domain", f"must be {domain!r}"))
    if result.get("domain_score") is None:
        errors.append(ValidationError(f"{path}.domain_score", "must not be null"))
    else:
        _check_score(errors, f"{path}.domain_score", result.get("domain_score"))
    _check_score(errors, f"{path}.domain_confidence", result.get("domain_confidence"))
    if result.get("confidence_label") not in CONFIDENCE_LABELS:
        errors.append(ValidationError(
            f"{path}.confidence_label",
            f"must be one of {', '.join(CONFIDENCE_LABELS)}",
        ))
    if not isinstance(result.get("using_prior"), bool):
        errors.append(ValidationError(f"{path}.using_prior", "must be a boolean"))

    _validate_evidence(errors, f"{path}.evidence_summary", result.get("evidence_summary"))

    driver_results = result.get("driver_results")
    if not isinstance(driver_results, list):
        errors.append(ValidationError(f"{path}.driver_results", "must be an array"))
    else:
        for i, entry in enumerate(driver_results):
            _validate_driver_result(errors, f"{path}.driver_results[{i}]", entry)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_scorecard(data: Any) -> ValidationResult:
    """Check a scorecard in its JSON form (``ScorecardResult.to_dict()``)."""
    if not isinstance(data, dict):
        return ValidationResult(False, [ValidationError("", "scorecard must be an object")])

    errors: list[ValidationError] = []

    if not _is_iso_timestamp(data.get("generated_at")):
        errors.append(ValidationError("generated_at", "must be a valid ISO timestamp"))
    _check_score(errors, "prime_score", data.get("prime_score"))
    _check_score(errors, "prime_confidence", data.get("prime_confidence"))

    domain_results = data.get("domain_results")
    if not isinstance(domain_results, dict):
        errors.append(ValidationError("domain_results", "must be an object"))
    else:
        for domain in PRIME_DOMAINS:
            if domain not in domain_results:
                errors.append(ValidationError(f"domain_results.{domain}", "is missing"))
                continue
            _validate_domain_result(errors, domain, domain_results[domain])
        for domain in domain_results:
            if domain not in PRIME_DOMAINS:
                errors.append(ValidationError(f"domain_results.{domain}", "unknown domain"))

    how_calculated = data.get("how_calculated")
    if not isinstance(how_calculated, dict):
        errors.append(ValidationError("how_calculated", "must be an object"))
    else:
        for domain in PRIME_DOMAINS:
            lines = how_calculated.get(domain)
            if not isinstance(lines, list) or not all(isinstance(s, str) for s in lines):
                errors.append(ValidationError(
                    f"how_calculated.{domain}", "must be an array of strings"
                ))

    revision = data.get("scoring_revision")
    if not isinstance(revision, str) or not revision:
        errors.append(ValidationError("scoring_revision", "must be a non-empty string"))

    return ValidationResult(not errors, errors)


def is_valid_scorecard(data: Any) -> bool:
    return validate_scorecard(data).valid


def validate_and_log(result: ScorecardResult | dict[str, Any]) -> ValidationResult:
    """Validate and log every error at ERROR level. Never raises."""
    data = result.to_dict() if isinstance(result, ScorecardResult) else result
    validation = validate_scorecard(data)
    for error in validation.errors:
        logger.error("Scorecard validation failed at %s: %s", error.path or "<root>", error.message)
    return validation
