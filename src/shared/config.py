"""
Runtime configuration for the marketplace server.

Values come from environment variables and fall back to development
defaults, so the server starts with no configuration at all.
"""

import os
from typing import List


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _env_log_level(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    level = raw.strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"{name} must be one of {', '.join(LOG_LEVELS)}, got {raw!r}")
    return level


class Settings:
    """Marketplace server settings."""

    def __init__(self):
        self.host = os.getenv("MARKETPLACE_HOST", "0.0.0.0")
        self.port = _env_int("MARKETPLACE_PORT", 8081)
        self.log_level = _env_log_level("MARKETPLACE_LOG_LEVEL", "INFO")
        self.cors_origins = _env_list("MARKETPLACE_CORS_ORIGINS", [
            "http://localhost:5173",  # Marketplace web UI
            "http://localhost:8080",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:8080"
        ])

        # Sessions issued by /login
        self.session_ttl_minutes = _env_int("MARKETPLACE_SESSION_TTL_MINUTES", 60)

        # Credential issuer collision retries before giving up
        self.credential_max_attempts = _env_int("MARKETPLACE_CREDENTIAL_MAX_ATTEMPTS", 5)
        if self.credential_max_attempts < 1:
            raise ValueError("MARKETPLACE_CREDENTIAL_MAX_ATTEMPTS must be at least 1")

        # Default page size for marketplace top-rated/recent listings
        self.listing_limit = _env_int("MARKETPLACE_LISTING_LIMIT", 10)


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings()


settings = get_settings()
