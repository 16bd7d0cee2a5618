"""Application settings loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Prime Scorecard server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Default to loopback so scorecards are not served to the LAN/WAN by
    # accident. Opt into `0.0.0.0` explicitly when you intend remote access.
    primecard_host: str = "127.0.0.1"
    primecard_port: int = 8001
    primecard_log_level: str = "info"
    # Non-loopback binds are refused unless this is true (there is no auth layer).
    primecard_allow_insecure_bind: bool = False

    # Driver registry YAML. Empty means the registry bundled with the package.
    driver_registry_path: str = ""


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
