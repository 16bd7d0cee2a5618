"""Driver registry models.

The registry is the single source of truth for which drivers exist, how each
one scores, and how it feeds the five domains. Instances are frozen and built
once by the loader; nothing in the engine mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Union


# ---------------------------------------------------------------------------
# Scoring methods (closed set)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LadderBand:
    """One band of a ladder: ``min`` inclusive, ``max`` exclusive."""

    score: float
    min: float | None = None
    max: float | None = None
    label: str | None = None

    def matches(self, value: float) -> bool:
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value >= self.max:
            return False
        return True


@dataclass(frozen=True)
class LadderScoring:
    """Map numeric ranges to fixed scores (BP, HbA1c, ApoB...)."""

    bands: tuple[LadderBand, ...]
    default_score: float = 50.0
    method: str = field(default="ladder", init=False)


@dataclass(frozen=True)
class ProxyMapScoring:
    """Map discrete answers to fixed scores (push-up bucket, focus stability...)."""

    mapping: Mapping[str, float]
    default_score: float = 50.0
    method: str = field(default="proxy_map", init=False)


@dataclass(frozen=True)
class PercentileScoring:
    """Age/sex percentile lookup against a named population table."""

    percentile_table: str
    lower_is_better: bool = False
    default_score: float = 50.0
    method: str = field(default="percentile", init=False)


@dataclass(frozen=True)
class PassthroughScoring:
    """Value is already a 0-100 score computed upstream."""

    default_score: float = 50.0
    method: str = field(default="passthrough", init=False)


@dataclass(frozen=True)
class TrendScoring:
    """Baseline-relative scoring over ``baseline_days`` of history."""

    baseline_days: int = 30
    improvement_target_percent: float = 10.0
    method: str = field(default="trend", init=False)


ScoringConfig = Union[
    LadderScoring,
    ProxyMapScoring,
    PercentileScoring,
    PassthroughScoring,
    TrendScoring,
]

SCORING_METHODS: tuple[str, ...] = ("ladder", "proxy_map", "percentile", "passthrough", "trend")


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DomainContribution:
    """How one driver feeds one domain."""

    domain: str
    weight: float
    dominance_cap: float


@dataclass(frozen=True)
class DriverConfig:
    """Registry entry for a single driver."""

    driver_key: str
    display_name: str
    scoring: ScoringConfig
    freshness_half_life_days: float
    missing_copy: str
    domain_contributions: tuple[DomainContribution, ...]
    source_priority: tuple[str, ...] | None = None
    fallback_only: bool = False
    suppress_if_present: tuple[str, ...] = ()
    evidence_label_map: Mapping[str, str] = field(default_factory=dict)
    stability_requirement_days: int = 0

    def contribution_for(self, domain: str) -> DomainContribution | None:
        for contribution in self.domain_contributions:
            if contribution.domain == domain:
                return contribution
        return None

    def contributes_to(self, domain: str) -> bool:
        return self.contribution_for(domain) is not None


# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConfidenceCap:
    """Hard ceiling on a domain's confidence unless qualifying evidence is present.

    Qualifying evidence is a driver sourced from ``unless_source``; when
    ``unless_drivers`` is non-empty, only those drivers qualify.
    """

    cap: float
    unless_source: str
    unless_drivers: tuple[str, ...] = ()


@dataclass(frozen=True)
class DomainPolicy:
    """Per-domain constants: composite weight, prior, confidence cap."""

    domain: str
    weight: float
    prior_score: float
    age_adjusted: bool = False
    confidence_cap: ConfidenceCap | None = None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DriverRegistry:
    """Immutable, versioned set of driver and domain configuration."""

    version: int
    scoring_revision: str
    drivers: Mapping[str, DriverConfig]
    domains: Mapping[str, DomainPolicy]
    conflict_threshold: float = 0.10

    def __post_init__(self) -> None:
        object.__setattr__(self, "drivers", MappingProxyType(dict(self.drivers)))
        object.__setattr__(self, "domains", MappingProxyType(dict(self.domains)))

    def get(self, driver_key: str) -> DriverConfig | None:
        return self.drivers.get(driver_key)

    def drivers_for_domain(self, domain: str) -> list[DriverConfig]:
        """Drivers contributing to ``domain``, in registry declaration order."""
        return [d for d in self.drivers.values() if d.contributes_to(domain)]

    def contribution(self, driver_key: str, domain: str) -> DomainContribution | None:
        config = self.drivers.get(driver_key)
        if config is None:
            return None
        return config.contribution_for(domain)

    def domain_weights(self) -> dict[str, float]:
        return {name: policy.weight for name, policy in self.domains.items()}
