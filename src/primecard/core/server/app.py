"""Prime Scorecard MCP Server: application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging

from fastmcp import FastMCP

from primecard.core.config.settings import get_settings
from primecard.domains.health.registry.loader import (
    DEFAULT_REGISTRY_PATH,
    load_registry,
)
from primecard.domains.health.registry.models import DriverRegistry
from primecard.domains.health.resources.registry_resource import register_registry_resources
from primecard.domains.health.tools.scorecard_tools import register_scorecard_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "Prime Scorecard"
SERVER_VERSION = "0.1.0"


def create_app(*, registry_override: DriverRegistry | None = None) -> FastMCP:
    """Create and configure the Prime Scorecard MCP server.

    This is the main application factory. It:
    1. Loads the driver registry once (fails fast on bad configuration)
    2. Creates the FastMCP server instance
    3. Registers the scorecard tools and the registry resource

    Raises:
        RegistryConfigError: if the configured registry is missing or invalid.
    """
    settings = get_settings()

    # --- Driver registry (immutable, shared by every call) ---
    if registry_override is not None:
        registry = registry_override
    else:
        registry_path = settings.driver_registry_path or DEFAULT_REGISTRY_PATH
        registry = load_registry(registry_path)

    # --- Server instance ---
    server = FastMCP(
        SERVER_NAME,
        instructions=(
            "Prime Scorecard server. Computes deterministic 0-100 health domain "
            "scores (heart, frame, metabolism, recovery, mind), a composite Prime "
            "score and calibrated confidence from sourced observations, with "
            "plain-language explanations of how each number was derived."
        ),
    )

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": SERVER_NAME,
            "version": SERVER_VERSION,
            "registry_version": registry.version,
            "scoring_revision": registry.scoring_revision,
            "drivers_loaded": len(registry.drivers),
        }

    register_scorecard_tools(server, registry)
    logger.info("Scorecard tools registered (%d drivers)", len(registry.drivers))

    # --- Register resources ---
    register_registry_resources(server, registry)

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
