"""Driver registry loader: reads the versioned YAML registry from disk.

Loading is the only place registry configuration can fail. Any structural
problem raises ``RegistryConfigError`` before a single scorecard is computed;
once loaded, the registry is immutable and passed explicitly to the engine.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from primecard.domains.health.domain_logic.scorecard_models import (
    PRIME_DOMAINS,
    PRIOR_DOMAIN_SCORES,
    proxy_key,
)
from primecard.domains.health.registry.models import (
    ConfidenceCap,
    DomainContribution,
    DomainPolicy,
    DriverConfig,
    DriverRegistry,
    LadderBand,
    LadderScoring,
    PassthroughScoring,
    PercentileScoring,
    ProxyMapScoring,
    ScoringConfig,
    TrendScoring,
)
from primecard.domains.health.registry.validator import (
    raw_contributions,
    validate_registry_data,
)

logger = logging.getLogger(__name__)

# Bundled registry lives next to this module under drivers/
DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent / "drivers" / "driver_registry.v3.yaml"


class RegistryConfigError(Exception):
    """Raised when a driver registry document is invalid."""

    def __init__(self, errors: list[str], source: str = "<mapping>") -> None:
        self.errors = list(errors)
        self.source = source
        detail = "\n  - ".join(self.errors)
        super().__init__(f"Invalid driver registry {source}:\n  - {detail}")


def load_registry(path: str | Path) -> DriverRegistry:
    """Parse and validate a registry YAML file.

    Raises:
        RegistryConfigError: if the file is missing, unreadable or invalid.
    """
    path = Path(path).expanduser()
    try:
        with open(path) as f:
            data: Any = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise RegistryConfigError([f"file not found: {path}"], source=str(path)) from exc
    except yaml.YAMLError as exc:
        raise RegistryConfigError([f"YAML parse error: {exc}"], source=str(path)) from exc

    registry = load_registry_from_mapping(data, source=str(path))
    logger.info(
        "Loaded driver registry v%d (%s): %d drivers from %s",
        registry.version,
        registry.scoring_revision,
        len(registry.drivers),
        path,
    )
    return registry


def load_default_registry() -> DriverRegistry:
    """Load the registry bundled with the package."""
    return load_registry(DEFAULT_REGISTRY_PATH)


def load_registry_from_mapping(data: Any, *, source: str = "<mapping>") -> DriverRegistry:
    """Build a ``DriverRegistry`` from an already-decoded document."""
    errors = validate_registry_data(data)
    if errors:
        raise RegistryConfigError(errors, source=source)

    drivers = {}
    for entry in data["drivers"]:
        config = _parse_driver(entry)
        drivers[config.driver_key] = config

    domains = {
        name: _parse_domain(name, data["domains"][name]) for name in PRIME_DOMAINS
    }

    return DriverRegistry(
        version=data["version"],
        scoring_revision=data["scoring_revision"].strip(),
        drivers=drivers,
        domains=domains,
        conflict_threshold=float(data.get("conflict_threshold", 0.10)),
    )


# ---------------------------------------------------------------------------
# Parsing (input already validated)
# ---------------------------------------------------------------------------

def _parse_scoring(data: dict[str, Any]) -> ScoringConfig:
    method = data["method"]
    default_score = float(data.get("default_score", 50))

    if method == "ladder":
        return LadderScoring(
            bands=tuple(
                LadderBand(
                    score=float(b["score"]),
                    min=float(b["min"]) if b.get("min") is not None else None,
                    max=float(b["max"]) if b.get("max") is not None else None,
                    label=b.get("label"),
                )
                for b in data["bands"]
            ),
            default_score=default_score,
        )
    if method == "proxy_map":
        return ProxyMapScoring(
            mapping=MappingProxyType(
                {proxy_key(k): float(v) for k, v in data["mapping"].items()}
            ),
            default_score=default_score,
        )
    if method == "percentile":
        return PercentileScoring(
            percentile_table=data["percentile_table"],
            lower_is_better=bool(data.get("lower_is_better", False)),
            default_score=default_score,
        )
    if method == "passthrough":
        return PassthroughScoring(default_score=default_score)
    return TrendScoring(
        baseline_days=int(data.get("baseline_days", 30)),
        improvement_target_percent=float(data.get("improvement_target_percent", 10)),
    )


def _parse_driver(entry: dict[str, Any]) -> DriverConfig:
    priority = entry.get("source_priority")
    return DriverConfig(
        driver_key=entry["driver_key"],
        display_name=entry["display_name"],
        scoring=_parse_scoring(entry["scoring"]),
        freshness_half_life_days=float(entry["freshness_half_life_days"]),
        missing_copy=entry["missing_copy"].strip(),
        domain_contributions=tuple(
            DomainContribution(
                domain=c["domain"],
                weight=float(c["weight"]),
                dominance_cap=float(c["dominance_cap"]),
            )
            for c in raw_contributions(entry)
        ),
        source_priority=tuple(priority) if priority else None,
        fallback_only=entry.get("fallback_only", False),
        suppress_if_present=tuple(entry.get("suppress_if_present", [])),
        evidence_label_map=MappingProxyType(dict(entry.get("evidence_label_map", {}))),
        stability_requirement_days=int(entry.get("stability_requirement_days", 0)),
    )


def _parse_domain(name: str, data: dict[str, Any]) -> DomainPolicy:
    cap_data = data.get("confidence_cap")
    cap = None
    if cap_data:
        cap = ConfidenceCap(
            cap=float(cap_data["cap"]),
            unless_source=cap_data["unless_source"],
            unless_drivers=tuple(cap_data.get("unless_drivers", [])),
        )
    return DomainPolicy(
        domain=name,
        weight=float(data["weight"]),
        prior_score=float(data.get("prior_score", PRIOR_DOMAIN_SCORES[name])),
        age_adjusted=data.get("age_adjusted", False),
        confidence_cap=cap,
    )
