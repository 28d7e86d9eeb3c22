"""Process-wide settings access for inscert.

Usage:
    from inscert.core.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging(settings)

Settings are read from the environment once and cached; tests reset the
cache with clear_settings_cache(). An invalid environment ends the process
with exit status 1 after logging every offending variable.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import ValidationError

from inscert.core.config import (
    ConfigValidationError,
    Settings,
    validate_settings,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _describe_errors(error: ValidationError) -> str:
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "settings"
        lines.append(f"  - {location}: {item['msg']}")
    return "\n".join(lines)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache the application settings.

    Raises:
        SystemExit: If the environment does not describe a valid configuration.
    """
    logger.info("Loading application settings from environment")
    try:
        settings = Settings()  # type: ignore[call-arg]
        validate_settings(settings)
    except ValidationError as e:
        logger.critical("Configuration validation failed:\n%s", _describe_errors(e))
        raise SystemExit(1) from e
    except ConfigValidationError as e:
        logger.critical(
            "Configuration validation failed: %s (field: %s)",
            e.message,
            e.field or "unknown",
        )
        raise SystemExit(1) from e

    logger.info(
        "Configuration loaded: environment=%s, expiration_enabled=%s, timezone=%s, "
        "policy_hash=%s",
        settings.environment.value,
        settings.expiration.enabled,
        settings.expiration.timezone,
        settings.get_policy_hash()[:16] + "...",
    )
    return settings


def clear_settings_cache() -> None:
    get_settings.cache_clear()
    logger.debug("Settings cache cleared")


def get_settings_safe() -> Settings | None:
    """Return the settings, or None when the environment is invalid."""
    try:
        return get_settings()
    except SystemExit:
        return None


def configure_logging(settings: Settings) -> None:
    """Install the root log handler at the configured level.

    Used by the API and worker entry points; library code only creates
    module loggers.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )
