"""
Configuration management for the KLT tracker.

Provides the tracker parameters as a dataclass that can be loaded from
JSON files and overridden from environment variables.
"""

import json
import os
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any


class ConfigurationError(ValueError):
    """Raised when tracker parameters or input pyramids are malformed."""


@dataclass
class KltConfig:
    """
    Parameters for detection and tracking.

    Intensities are expected in [0, 1] (pyramids built by
    ``kltrack.image.ImagePyramid`` are normalized), so ``min_determinant``
    is expressed in those units.

    Example:
        config = KltConfig.load("klt.json")
        config.window_size = 9
        config.validate()
    """
    window_size: int = 7
    max_iterations: int = 10
    min_update_squared_distance: float = 0.03
    min_determinant: float = 1e-6
    min_feature_distance: float = 10.0
    pyramid_levels: int = 3
    pyramid_sigma: float = 0.9
    min_trackness: float | None = None  # None -> trackness mean
    trackness_floor: float = 1e-9
    use_aligned: bool = False

    @property
    def half_window_size(self) -> int:
        return (self.window_size - 1) // 2

    def validate(self) -> "KltConfig":
        """
        Check every parameter and return self.

        Raises:
            ConfigurationError: If any parameter is out of range
        """
        if self.window_size <= 0 or self.window_size % 2 == 0:
            raise ConfigurationError(
                f"window_size must be a positive odd integer, got {self.window_size}"
            )
        if self.max_iterations <= 0:
            raise ConfigurationError(
                f"max_iterations must be positive, got {self.max_iterations}"
            )
        if self.pyramid_levels <= 0:
            raise ConfigurationError(
                f"pyramid_levels must be positive, got {self.pyramid_levels}"
            )
        if self.min_update_squared_distance < 0:
            raise ConfigurationError("min_update_squared_distance must be >= 0")
        if self.min_determinant < 0:
            raise ConfigurationError("min_determinant must be >= 0")
        if self.min_feature_distance < 0:
            raise ConfigurationError("min_feature_distance must be >= 0")
        if self.trackness_floor < 0:
            raise ConfigurationError("trackness_floor must be >= 0")
        if self.pyramid_sigma < 0:
            raise ConfigurationError("pyramid_sigma must be >= 0")
        return self

    @classmethod
    def load(cls, path: str | Path) -> "KltConfig":
        """Load configuration from a JSON file."""
        return load_config(path)

    def save(self, path: str | Path) -> None:
        """Save configuration to a JSON file."""
        save_config(self, path)

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KltConfig":
        """
        Build a configuration from a dictionary, ignoring unknown keys.

        Values are coerced to the field's type so that strings coming from
        environment variables are accepted.
        """
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            kwargs[f.name] = _coerce(f.name, data[f.name])
        return cls(**kwargs).validate()


_INT_FIELDS = {"window_size", "max_iterations", "pyramid_levels"}
_BOOL_FIELDS = {"use_aligned"}
_NULLABLE_FIELDS = {"min_trackness"}


def _coerce(name: str, value: Any) -> Any:
    if name in _NULLABLE_FIELDS and (
        value is None or (isinstance(value, str) and value.strip().lower() == "none")
    ):
        return None
    try:
        if name in _INT_FIELDS:
            return int(value)
        if name in _BOOL_FIELDS:
            if isinstance(value, str):
                return value.strip().lower() in ("1", "true", "yes", "on")
            return bool(value)
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value for {name}: {value!r}") from e


def load_config(path: str | Path) -> KltConfig:
    """
    Load configuration from a JSON file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Parsed and validated KltConfig

    Raises:
        FileNotFoundError: If the config file doesn't exist
        json.JSONDecodeError: If the JSON is invalid
        ConfigurationError: If a value is out of range
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, "r") as f:
        data = json.load(f)

    return KltConfig.from_dict(data)


def save_config(config: KltConfig, path: str | Path) -> None:
    """
    Save configuration to a JSON file.

    Args:
        config: Configuration object to save
        path: Output path for the JSON file
    """
    path = Path(path)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)


def get_env_config(prefix: str = "KLT_") -> dict[str, Any]:
    """
    Get configuration from environment variables.

    All environment variables starting with the prefix will be included.
    Variable names are converted to lowercase with the prefix removed.

    Example:
        KLT_WINDOW_SIZE=9 -> {"window_size": "9"}
    """
    config = {}
    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            config[config_key] = value
    return config


def resolve_config(
    path: str | Path | None = None,
    prefix: str = "KLT_",
    **overrides: Any,
) -> KltConfig:
    """
    Build the effective configuration.

    Precedence, lowest first: defaults, JSON file, environment, overrides.
    """
    data: dict[str, Any] = {}
    if path is not None:
        data.update(load_config(path).to_dict())
    data.update(get_env_config(prefix))
    data.update({k: v for k, v in overrides.items() if v is not None})
    return KltConfig.from_dict(data)
