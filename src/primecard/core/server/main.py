"""Prime Scorecard server entry point: ``python -m primecard.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address
from pathlib import Path

from primecard.core.config.settings import Settings, get_settings
from primecard.core.server.app import create_app
from primecard.domains.health.registry.loader import DEFAULT_REGISTRY_PATH, load_registry


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _registry_path(settings: Settings) -> Path:
    """Configured registry file, or the one bundled with the package."""
    if settings.driver_registry_path:
        return Path(settings.driver_registry_path)
    return DEFAULT_REGISTRY_PATH


def run() -> None:
    """Start the Prime Scorecard MCP server with Streamable HTTP transport.

    The driver registry is loaded and validated before the port is bound, so
    a broken deployment exits with every registry error listed instead of
    serving scorecards from a half-read configuration.
    """
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.primecard_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.primecard_allow_insecure_bind and not _is_loopback_host(settings.primecard_host):
        raise RuntimeError(
            "Refusing to bind the Prime Scorecard server to a non-loopback host without an "
            "auth layer. Set PRIMECARD_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )

    registry_path = _registry_path(settings)
    registry = load_registry(registry_path)
    logger.info(
        "Driver registry %s loaded from %s (%d drivers, %s)",
        registry.scoring_revision,
        registry_path,
        len(registry.drivers),
        "bundled" if registry_path == DEFAULT_REGISTRY_PATH else "DRIVER_REGISTRY_PATH",
    )

    logger.info(
        "Starting Prime Scorecard server on %s:%d",
        settings.primecard_host,
        settings.primecard_port,
    )
    mcp = create_app(registry_override=registry)
    mcp.run(
        transport="streamable-http",
        host=settings.primecard_host,
        port=settings.primecard_port,
    )


if __name__ == "__main__":
    run()
