"""inscert core module.

Shared components used across all services:
- Configuration management
- Settings accessor
"""

from inscert.core.config import (
    ConfigValidationError,
    DatabaseSettings,
    Environment,
    ExpirationSettings,
    Settings,
)
from inscert.core.settings import (
    clear_settings_cache,
    get_settings,
    get_settings_safe,
)

__all__ = [
    "ConfigValidationError",
    "DatabaseSettings",
    "Environment",
    "ExpirationSettings",
    "Settings",
    "clear_settings_cache",
    "get_settings",
    "get_settings_safe",
]
