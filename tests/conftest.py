"""Shared test fixtures for Prime Scorecard tests."""

from __future__ import annotations

import copy
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "PRIMECARD_HOST",
        "PRIMECARD_PORT",
        "PRIMECARD_LOG_LEVEL",
        "PRIMECARD_ALLOW_INSECURE_BIND",
        "DRIVER_REGISTRY_PATH",
    ):
        monkeypatch.delenv(name, raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from primecard.domains.health.domain_logic.scorecard_models import (  # noqa: E402
    DriverScoringResult,
    Observation,
)
from primecard.domains.health.registry.loader import (  # noqa: E402
    load_default_registry,
    load_registry_from_mapping,
)
from primecard.domains.health.registry.models import DriverRegistry  # noqa: E402

# Fixed reference time so freshness is deterministic.
NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_observation(
    driver_key: str,
    value: Any,
    source_type: str = "self_report_proxy",
    *,
    days_ago: float = 0,
    now: datetime = NOW,
    unit: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Observation:
    """Create an observation measured ``days_ago`` days before ``now``."""
    return Observation(
        driver_key=driver_key,
        value=value,
        measured_at=now - timedelta(days=days_ago),
        source_type=source_type,
        unit=unit,
        metadata=metadata or {},
    )


def make_driver_result(
    driver_key: str,
    driver_score: float = 50.0,
    source_type: str = "device",
    *,
    freshness_score: float = 1.0,
    days_ago: float = 0,
) -> DriverScoringResult:
    """Create a scored driver result without going through the resolver."""
    return DriverScoringResult(
        driver_key=driver_key,
        driver_score=driver_score,
        source_type=source_type,
        measured_at=NOW - timedelta(days=days_ago),
        value=driver_score,
        freshness_score=freshness_score,
    )


# Small registry: two heart drivers, a frame driver with a BMI-style fallback,
# and one driver feeding both frame and recovery.
_SMALL_REGISTRY: dict[str, Any] = {
    "version": 1,
    "scoring_revision": "test-1",
    "conflict_threshold": 0.10,
    "domains": {
        "heart": {"weight": 0.2, "prior_score": 50, "age_adjusted": True},
        "frame": {"weight": 0.2, "prior_score": 50, "age_adjusted": True},
        "metabolism": {
            "weight": 0.2,
            "prior_score": 55,
            "confidence_cap": {"cap": 40, "unless_source": "lab"},
        },
        "recovery": {"weight": 0.2, "prior_score": 50},
        "mind": {"weight": 0.2, "prior_score": 50},
    },
    "drivers": [
        {
            "driver_key": "alpha",
            "display_name": "Alpha",
            "missing_copy": "Add alpha",
            "freshness_half_life_days": 30,
            "scoring": {
                "method": "ladder",
                "bands": [
                    {"max": 10, "score": 90, "label": "low"},
                    {"min": 10, "max": 20, "score": 60, "label": "mid"},
                    {"min": 20, "score": 20, "label": "high"},
                ],
            },
            "domain": "heart",
            "weight": 0.6,
            "dominance_cap": 0.7,
        },
        {
            "driver_key": "beta",
            "display_name": "Beta",
            "missing_copy": "Add beta",
            "freshness_half_life_days": 30,
            "scoring": {"method": "passthrough"},
            "domain": "heart",
            "weight": 0.4,
            "dominance_cap": 0.5,
        },
        {
            "driver_key": "gamma",
            "display_name": "Gamma",
            "missing_copy": "Add gamma",
            "freshness_half_life_days": 60,
            "scoring": {"method": "proxy_map", "mapping": {"good": 80, "bad": 30}},
            "domain_contributions": [
                {"domain": "frame", "weight": 0.5, "dominance_cap": 1.0},
                {"domain": "recovery", "weight": 0.5, "dominance_cap": 1.0},
            ],
        },
        {
            "driver_key": "fallback",
            "display_name": "Fallback",
            "missing_copy": "Add fallback",
            "freshness_half_life_days": 90,
            "scoring": {"method": "passthrough"},
            "fallback_only": True,
            "suppress_if_present": ["gamma"],
            "domain": "frame",
            "weight": 0.2,
            "dominance_cap": 1.0,
        },
    ],
}


def make_registry_data() -> dict[str, Any]:
    """Return a fresh, mutable copy of the small test registry document."""
    return copy.deepcopy(_SMALL_REGISTRY)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def default_registry() -> DriverRegistry:
    """The registry bundled with the package."""
    return load_default_registry()


@pytest.fixture
def small_registry() -> DriverRegistry:
    return load_registry_from_mapping(make_registry_data(), source="<test>")


@pytest.fixture
def make_obs():
    """Factory fixture for observations (see ``make_observation``)."""
    return make_observation


@pytest.fixture
def make_result():
    """Factory fixture for driver results (see ``make_driver_result``)."""
    return make_driver_result


@pytest.fixture
def registry_data() -> dict[str, Any]:
    """Mutable small-registry document for fail-fast tests."""
    return make_registry_data()
