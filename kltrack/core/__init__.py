"""
Core module - Configuration, errors, and shared protocols.
"""

from kltrack.core.base import PyramidProvider
from kltrack.core.config import (
    ConfigurationError,
    KltConfig,
    load_config,
    save_config,
    get_env_config,
    resolve_config,
)

__all__ = [
    "PyramidProvider",
    "ConfigurationError",
    "KltConfig",
    "load_config",
    "save_config",
    "get_env_config",
    "resolve_config",
]
