"""MCP Resources for driver registry discovery."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import FastMCP

if TYPE_CHECKING:
    from primecard.domains.health.registry.models import DriverRegistry


def register_registry_resources(mcp: FastMCP, registry: DriverRegistry) -> None:
    """Register driver registry discovery resources on the MCP server."""

    @mcp.resource("registry://health/drivers")
    def driver_registry_resource() -> str:
        """Describe the loaded driver registry: drivers, methods and domain weights."""
        return json.dumps(
            {
                "version": registry.version,
                "scoring_revision": registry.scoring_revision,
                "conflict_threshold": registry.conflict_threshold,
                "domains": {
                    name: {
                        "weight": policy.weight,
                        "prior_score": policy.prior_score,
                        "age_adjusted": policy.age_adjusted,
                        "confidence_cap": (
                            {
                                "cap": policy.confidence_cap.cap,
                                "unless_source": policy.confidence_cap.unless_source,
                                "unless_drivers": list(policy.confidence_cap.unless_drivers),
                            }
                            if policy.confidence_cap is not None
                            else None
                        ),
                    }
                    for name, policy in registry.domains.items()
                },
                "driver_count": len(registry.drivers),
                "drivers": [
                    {
                        "driver_key": d.driver_key,
                        "display_name": d.display_name,
                        "method": d.scoring.method,
                        "freshness_half_life_days": d.freshness_half_life_days,
                        "source_priority": list(d.source_priority) if d.source_priority else None,
                        "fallback_only": d.fallback_only,
                        "suppress_if_present": list(d.suppress_if_present),
                        "domain_contributions": [
                            {
                                "domain": c.domain,
                                "weight": c.weight,
                                "dominance_cap": c.dominance_cap,
                            }
                            for c in d.domain_contributions
                        ],
                    }
                    for d in registry.drivers.values()
                ],
            },
            indent=2,
        )
