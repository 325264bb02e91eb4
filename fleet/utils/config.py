from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Central configuration loaded from environment variables."""

    # Persistence: "memory" or "strapi"
    backend: str = field(
        default_factory=lambda: os.environ.get("FLEET_BACKEND", "memory").lower()
    )
    seed_demo_data: bool = field(
        default_factory=lambda: _env_flag("FLEET_SEED_DEMO_DATA")
    )

    # Strapi CMS
    strapi_url: str = field(
        default_factory=lambda: os.environ.get("FLEET_STRAPI_URL", "http://localhost:1337/api")
    )
    strapi_token: str | None = field(
        default_factory=lambda: os.environ.get("FLEET_STRAPI_TOKEN")
    )
    strapi_timeout: float = field(
        default_factory=lambda: float(os.environ.get("FLEET_STRAPI_TIMEOUT", "10"))
    )

    # Local wall-clock zone of dates and times stored in the CMS
    timezone: str = field(
        default_factory=lambda: os.environ.get("FLEET_TIMEZONE", "Europe/Berlin")
    )

    # TÜV warning window
    inspection_warning_days: int = field(
        default_factory=lambda: int(os.environ.get("FLEET_INSPECTION_WARNING_DAYS", "60"))
    )

    # Logging
    log_level: str = field(
        default_factory=lambda: os.environ.get("FLEET_LOG_LEVEL", "INFO")
    )


def get_config() -> Config:
    """Return a Config instance (singleton-friendly via module caching)."""
    return Config()
