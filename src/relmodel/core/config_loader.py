"""Configuration loader for YAML-based configuration.

This module loads relmodel configuration with:
- Environment variable overrides (env var → YAML → defaults)
- Type coercion (string to int, bool, float)
- Schema defaults kept in a dataclass
- Graceful degradation (missing file uses defaults)
"""

import logging
import os
from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml  # type: ignore

logger = logging.getLogger(__name__)

ENV_PREFIX = "RELMODEL_"


def get_project_root() -> Path:
    """
    Get project root directory.

    Uses pattern: config_loader.py → core/ → relmodel/ → src/ → project_root
    """
    return Path(__file__).parent.parent.parent.parent


def default_config_path() -> Path:
    """Path of the default config file (may not exist)."""
    env_path = os.getenv(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path)
    return get_project_root() / "config" / "relmodel.yaml"


def _coerce_type(value: Any, target_type: type) -> Any:
    """
    Coerce value to target type.

    Handles:
    - String "6" → int 6 (also "6.0")
    - String "true"/"false" → bool True/False (case-insensitive)
    - String "1.5" → float 1.5

    Raises:
        ValueError: If coercion fails
    """
    if value is None:
        return None

    if isinstance(value, target_type) and not (target_type is int and isinstance(value, bool)):
        return value

    if target_type is bool:
        if isinstance(value, str):
            return value.lower() in ("true", "1", "yes", "on")
        return bool(value)

    if target_type is int:
        if isinstance(value, str):
            return int(float(value))
        return int(value)

    if target_type is float:
        return float(value)

    if target_type is str:
        return str(value)

    return value


@dataclass(frozen=True)
class RelModelConfig:
    """
    Runtime configuration.

    Attributes:
        max_examples: Cap on example values in mismatch/duplicate summaries
        percentage_precision: Decimal places of mismatch percentages
        log_level: Root log level name
        log_format: "console" or "json"
    """

    max_examples: int = 6
    percentage_precision: int = 1
    log_level: str = "INFO"
    log_format: str = "console"

    def __post_init__(self) -> None:
        if self.max_examples < 1:
            raise ValueError(f"max_examples must be >= 1, got {self.max_examples}")
        if self.percentage_precision < 0:
            raise ValueError(f"percentage_precision must be >= 0, got {self.percentage_precision}")
        if self.log_format not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {self.log_format!r}")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# Keys whose coercion failure must not fall back silently
_CRITICAL_KEYS = {"max_examples", "percentage_precision"}


def _merge(config: dict[str, Any], key: str, value: Any, source: str) -> None:
    target_type = type(config[key])
    try:
        config[key] = _coerce_type(value, target_type)
    except (ValueError, TypeError) as e:
        if key in _CRITICAL_KEYS:
            raise ValueError(
                f"Type coercion failed for critical config {key}={value!r} from {source}: "
                f"expected {target_type.__name__}. Error: {e}"
            ) from e
        logger.warning(f"Failed to coerce {source} value {key}={value!r} to {target_type.__name__}: {e}, using default")


def load_config(config_path: Path | None = None) -> RelModelConfig:
    """
    Load configuration from YAML with env var overrides.

    Precedence: Environment variable (RELMODEL_<KEY>) → YAML value → Default value

    Args:
        config_path: Optional path to config file. If None, uses RELMODEL_CONFIG
            or config/relmodel.yaml at the project root.

    Returns:
        RelModelConfig

    Raises:
        ValueError: If YAML is invalid or a critical value cannot be coerced
    """
    config = RelModelConfig().to_dict()

    if config_path is None:
        config_path = default_config_path()

    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
        if not isinstance(yaml_data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping, got {type(yaml_data).__name__}")
        for key, value in yaml_data.items():
            if key in config:
                _merge(config, key, value, "YAML")
            else:
                logger.warning(f"Ignoring unknown config key {key!r} in {config_path}")
    else:
        logger.debug(f"Config file not found at {config_path}, using defaults")

    for key in list(config):
        env_value = os.getenv(f"{ENV_PREFIX}{key.upper()}")
        if env_value is not None:
            _merge(config, key, env_value, "env")

    return RelModelConfig(**config)


@lru_cache(maxsize=8)
def _cached_config(config_path: Path) -> RelModelConfig:
    return load_config(config_path)


def get_config(config_path: Path | None = None) -> RelModelConfig:
    """Cached variant of load_config, keyed by resolved path."""
    return _cached_config(config_path or default_config_path())


def clear_config_cache() -> None:
    """Forget cached configs (tests and long-running processes after edits)."""
    _cached_config.cache_clear()
