"""Prime Scorecard models and domain constants.

Everything here is plain data: observations going in, scoring results coming
out. ``to_dict()`` on the result types produces the JSON output contract that
downstream consumers (coach, storage, UI) rely on. Intermediate types
(``ResolvedObservation``, ``DriverScoringResult``) may change between scoring
revisions; ``ScorecardResult.to_dict()`` is the stable shape.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

PRIME_DOMAINS: tuple[str, ...] = ("heart", "frame", "metabolism", "recovery", "mind")

PRIOR_DOMAIN_SCORES: dict[str, float] = {
    "heart": 50,
    "frame": 50,
    "metabolism": 55,  # assume healthy when there is no evidence at all
    "recovery": 50,
    "mind": 50,
}

PRIOR_SCORE_FLOOR = 30
PRIOR_SCORE_CEILING = 70

# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

# Highest priority first.
DEFAULT_SOURCE_PRIORITY: tuple[str, ...] = (
    "lab",
    "test",
    "device",
    "measured_self_report",
    "image_estimate",
    "self_report_proxy",
    "prior",
)

SOURCE_QUALITY_MULTIPLIERS: dict[str, float] = {
    "lab": 1.0,
    "test": 0.9,
    "device": 0.8,
    "measured_self_report": 0.7,
    "image_estimate": 0.55,
    "self_report_proxy": 0.4,
    "prior": 0.2,
}

DEFAULT_SOURCE_LABELS: dict[str, str] = {
    "lab": "Lab result",
    "test": "Objective test",
    "device": "Device data",
    "measured_self_report": "Your measurement",
    "image_estimate": "Photo estimate",
    "self_report_proxy": "Quick check",
    "prior": "Population prior",
}

# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

CONFIDENCE_LABELS: tuple[str, ...] = ("Low", "Medium", "High")

CONFIDENCE_LOW_THRESHOLD = 40
CONFIDENCE_HIGH_THRESHOLD = 70

# Confidence = 100 * (0.35*coverage + 0.25*quality + 0.25*freshness + 0.15*stability)
CONFIDENCE_WEIGHTS: dict[str, float] = {
    "coverage": 0.35,
    "quality": 0.25,
    "freshness": 0.25,
    "stability": 0.15,
}

PRIOR_CONFIDENCE = 20

CONFIDENCE_COPY: dict[str, str] = {
    "Low": "Estimated from quick checks.",
    "Medium": "Based on measurements you provided (and quick checks).",
    "High": "Based on device, lab, or test data.",
}

NEUTRAL_SCORE = 50.0

PRIOR_EXPLANATION = "Based on population averages (no specific data provided)"


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------

def clamp(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    """Clamp a value to [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with ties going up, so 72.25 -> 72.3 and 39.5 -> 40."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def as_number(value: Any) -> float | None:
    """Return a finite float for numeric values, else None.

    Booleans are categorical here even though ``bool`` subclasses ``int``.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        # ints beyond float range, e.g. a long JSON integer literal
        return None
    if not math.isfinite(number):
        return None
    return number


def proxy_key(value: Any) -> str:
    """Coerce an answer value (or a proxy map key) to its canonical key.

    Booleans become ``true``/``false`` and integral floats drop the ``.0``,
    matching how answers are written by JSON producers and how YAML decodes
    unquoted mapping keys.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def ensure_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def parse_timestamp(raw: Any) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted) into an aware datetime."""
    if isinstance(raw, datetime):
        return ensure_utc(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"measured_at must be an ISO-8601 timestamp, got {raw!r}")
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def format_timestamp(moment: datetime) -> str:
    return ensure_utc(moment).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Input types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UserContext:
    """Optional demographics supplied by the caller."""

    age: int | None = None
    sex: str | None = None


@dataclass(frozen=True)
class Observation:
    """One timestamped, sourced evidence record for a driver."""

    driver_key: str
    value: float | int | str | bool
    measured_at: datetime
    source_type: str
    unit: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Observation:
        """Parse the ingestion boundary shape.

        Raises:
            ValueError: if a required field is missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError("observation must be an object")

        driver_key = data.get("driver_key")
        if not isinstance(driver_key, str) or not driver_key:
            raise ValueError("driver_key must be a non-empty string")

        if "value" not in data or data["value"] is None:
            raise ValueError(f"{driver_key}: value is required")
        value = data["value"]
        if not isinstance(value, (int, float, str, bool)):
            raise ValueError(f"{driver_key}: value must be a number, string or boolean")

        source_type = data.get("source_type")
        if source_type not in DEFAULT_SOURCE_PRIORITY:
            raise ValueError(f"{driver_key}: unknown source_type {source_type!r}")

        unit = data.get("unit")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValueError(f"{driver_key}: metadata must be an object")

        return cls(
            driver_key=driver_key,
            value=value,
            measured_at=parse_timestamp(data.get("measured_at")),
            source_type=source_type,
            unit=str(unit) if unit is not None else None,
            metadata=dict(metadata),
        )


# ---------------------------------------------------------------------------
# Intermediate types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedObservation:
    """The winning observation for a driver plus resolution diagnostics."""

    observation: Observation
    conflict_flag: bool
    freshness_score: float
    candidate_count: int = 1

    @property
    def driver_key(self) -> str:
        return self.observation.driver_key

    @property
    def value(self) -> float | int | str | bool:
        return self.observation.value

    @property
    def source_type(self) -> str:
        return self.observation.source_type


@dataclass
class DriverScoringResult:
    """Result of scoring a single driver."""

    driver_key: str
    driver_score: float
    source_type: str
    measured_at: datetime
    value: float | int | str | bool
    freshness_score: float
    unit: str | None = None
    conflict_flag: bool = False
    label: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "driver_key": self.driver_key,
            "driver_score": self.driver_score,
            "source_type": self.source_type,
            "measured_at": format_timestamp(self.measured_at),
            "value": self.value,
            "freshness_score": round(self.freshness_score, 4),
            "conflict_flag": self.conflict_flag,
        }
        if self.unit is not None:
            data["unit"] = self.unit
        if self.label is not None:
            data["label"] = self.label
        return data


# ---------------------------------------------------------------------------
# Output types
# ---------------------------------------------------------------------------

@dataclass
class DomainEvidenceSummary:
    """What evidence a domain used, what is missing, and the single best next step."""

    drivers_used: list[dict[str, Any]] = field(default_factory=list)
    missing_drivers: list[dict[str, Any]] = field(default_factory=list)
    suppressed_drivers: list[str] = field(default_factory=list)
    fastest_upgrade_action: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "drivers_used": [dict(d) for d in self.drivers_used],
            "missing_drivers": [dict(d) for d in self.missing_drivers],
            "suppressed_drivers": list(self.suppressed_drivers),
            "fastest_upgrade_action": self.fastest_upgrade_action,
        }


@dataclass
class DomainScoringResult:
    """Score, confidence and evidence for a single domain."""

    domain: str
    domain_score: float
    domain_confidence: int
    confidence_label: str
    confidence_copy: str
    evidence_summary: DomainEvidenceSummary
    risk_flags: dict[str, bool] = field(default_factory=dict)
    derived_atoms: dict[str, Any] = field(default_factory=dict)
    driver_results: list[DriverScoringResult] = field(default_factory=list)
    using_prior: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "domain_score": self.domain_score,
            "domain_confidence": self.domain_confidence,
            "confidence_label": self.confidence_label,
            "confidence_copy": self.confidence_copy,
            "evidence_summary": self.evidence_summary.to_dict(),
            "risk_flags": dict(self.risk_flags),
            "derived_atoms": dict(self.derived_atoms),
            "driver_results": [r.to_dict() for r in self.driver_results],
            "using_prior": self.using_prior,
        }


@dataclass
class ScorecardResult:
    """Complete scorecard: composite score, per-domain results and explanations."""

    generated_at: datetime
    prime_score: float
    prime_confidence: int
    domain_results: dict[str, DomainScoringResult]
    how_calculated: dict[str, list[str]]
    scoring_revision: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "generated_at": format_timestamp(self.generated_at),
            "prime_score": self.prime_score,
            "prime_confidence": self.prime_confidence,
            "domain_results": {
                domain: result.to_dict() for domain, result in self.domain_results.items()
            },
            "how_calculated": {
                domain: list(lines) for domain, lines in self.how_calculated.items()
            },
            "scoring_revision": self.scoring_revision,
        }
