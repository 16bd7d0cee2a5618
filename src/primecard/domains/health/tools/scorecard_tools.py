"""MCP tools for Prime Scorecard computation.

Tools only parse input, call the engine and return the output contract as
JSON. They hold no state beyond the registry loaded at startup.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastmcp import Context, FastMCP

if TYPE_CHECKING:
    from primecard.domains.health.registry.models import DriverRegistry

from primecard.domains.health.connectors.prime_check import (
    convert_prime_check_to_observations,
    user_context_from_identity,
)
from primecard.domains.health.domain_logic.result_validator import validate_scorecard
from primecard.domains.health.domain_logic.scorecard_engine import compute_scorecard
from primecard.domains.health.domain_logic.scorecard_models import (
    Observation,
    ScorecardResult,
    UserContext,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------

def _parse_now(value: str | None) -> datetime:
    """Reference time for freshness; defaults to the current UTC time."""
    if value in (None, ""):
        return datetime.now(timezone.utc)
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(f"now must be an ISO-8601 timestamp, got {value!r}") from exc


def parse_observations(records: list[dict[str, Any]]) -> tuple[list[Observation], list[dict[str, Any]]]:
    """Parse observation records, collecting the malformed ones instead of failing."""
    observations: list[Observation] = []
    skipped: list[dict[str, Any]] = []
    for index, record in enumerate(records or []):
        try:
            observations.append(Observation.from_dict(record))
        except ValueError as exc:
            logger.warning("Skipping malformed observation #%d: %s", index, exc)
            skipped.append({"index": index, "error": str(exc)})
    return observations, skipped


def _render(result: ScorecardResult, skipped: list[dict[str, Any]]) -> str:
    data = result.to_dict()
    validation = validate_scorecard(data)
    return json.dumps({
        "status": "ok",
        "scorecard": data,
        "validation": {
            "valid": validation.valid,
            "errors": [{"path": e.path, "message": e.message} for e in validation.errors],
        },
        "skipped_observations": skipped,
    })


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

def register_scorecard_tools(mcp: FastMCP, registry: DriverRegistry) -> None:
    """Register Prime Scorecard tools on the MCP server."""

    @mcp.tool
    async def prime_scorecard(
        ctx: Context,
        observations: list[dict[str, Any]],
        age: int | None = None,
        sex: str | None = None,
        now: str | None = None,
    ) -> str:
        """Compute a Prime Scorecard from sourced health observations.

        Each observation is an object with driver_key, value, measured_at
        (ISO 8601), source_type (lab, test, device, measured_self_report,
        image_estimate, self_report_proxy or prior) and optional unit and
        metadata. Domains with no evidence fall back to population priors
        with low confidence.

        Args:
            observations: Observation records to score. Malformed records are skipped.
            age: Optional age in years (adjusts priors for physical domains).
            sex: Optional sex.
            now: Optional reference time (ISO 8601) for freshness. Defaults to now.
        """
        reference = _parse_now(now)
        parsed, skipped = parse_observations(observations)
        result = compute_scorecard(
            parsed,
            registry,
            user_context=UserContext(age=age, sex=sex or None),
            now=reference,
        )
        logger.info(
            "Scorecard computed from %d observations (%d skipped): prime_score=%.1f",
            len(parsed),
            len(skipped),
            result.prime_score,
        )
        return _render(result, skipped)

    @mcp.tool
    async def prime_check_scorecard(
        ctx: Context,
        prime_check: dict[str, Any],
        identity: dict[str, Any] | None = None,
        now: str | None = None,
    ) -> str:
        """Compute a Prime Scorecard from onboarding Prime Check answers.

        Args:
            prime_check: Prime Check answers with optional heart, frame,
                metabolism, recovery and mind sections and completed_at.
            identity: Optional height (cm), weight (kg), age and sex.
            now: Optional reference time (ISO 8601) for freshness. Defaults to now.
        """
        reference = _parse_now(now)
        observations = convert_prime_check_to_observations(prime_check, identity, now=reference)
        result = compute_scorecard(
            observations,
            registry,
            user_context=user_context_from_identity(identity),
            now=reference,
        )
        logger.info(
            "Prime Check scorecard computed from %d observations: prime_score=%.1f",
            len(observations),
            result.prime_score,
        )
        return _render(result, [])
