"""Activation Engine Configuration

Configuration loading with environment variable support and sensible defaults.

Environment Variables:
    ACTIVATION_CONFIG_PATH: Path to config file (default: activation-config.yaml in package dir)
    ACTIVATION_CATALOG_PATH: Override catalog path from config

Configuration Schema:
    engine:
        version: str - Engine version (e.g., "activation-1.0")
        features: dict - Feature flags for engine (e.g., {"deprecation_penalty": False})
    catalog:
        path: str - Path to catalog directory (default: bundled catalog)
    policy:
        limits: dict - Load limit per task scope (null = unbounded)
        weights: dict - Score weight per trigger kind
        priority_multiplier: int - Multiplier applied to declared priority
        min_confidence: float - Minimum agent score for a clear route
        tie_margin: float - Score distance treated as a tie between agents
        deprecated_factor: float - Score factor for deprecated units
    scan:
        timeout_seconds: float - Budget for project marker probing
    server:
        log_level: str - Logging level (default: "INFO")
        watch: bool - Hot-reload catalog on file changes
        debounce_seconds: float - Quiet period before a hot reload
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from activation_engine.models import TaskScope, TriggerKind

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


# Default configuration values
DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "version": None,  # Use registered default engine
        "features": {},  # No feature overrides
    },
    "catalog": {
        "path": None,  # Use bundled catalog
    },
    "policy": {
        "limits": {
            "single_file": 3,
            "feature": 5,
            "multi_file": 7,
            "architecture": None,
        },
        "weights": {
            "project_marker": 3,
            "file_extension": 2,
            "keyword": 1,
        },
        "priority_multiplier": 10,
        "min_confidence": 10,
        "tie_margin": 2,
        "deprecated_factor": 0.5,
    },
    "scan": {
        "timeout_seconds": 2.0,
    },
    "server": {
        "log_level": "INFO",
        "watch": True,
        "debounce_seconds": 3.0,
    },
}


def _number(value: Any, setting: str, convert: Callable[[Any], Any] = float) -> Any:
    try:
        return convert(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{setting} must be a number, got {value!r}") from None


@dataclass(frozen=True)
class PolicyConfig:
    """
    Scoring and load-limit policy for one classification call.

    Passed explicitly into select/route so callers and tests can vary it
    without shared state.
    """

    limits: Dict[TaskScope, Optional[int]] = field(
        default_factory=lambda: {
            TaskScope.SINGLE_FILE: 3,
            TaskScope.FEATURE: 5,
            TaskScope.MULTI_FILE: 7,
            TaskScope.ARCHITECTURE: None,
        }
    )
    weights: Dict[TriggerKind, float] = field(
        default_factory=lambda: {
            TriggerKind.PROJECT_MARKER: 3,
            TriggerKind.FILE_EXTENSION: 2,
            TriggerKind.KEYWORD: 1,
        }
    )
    priority_multiplier: float = 10
    min_confidence: float = 10
    tie_margin: float = 2
    deprecated_factor: float = 0.5

    def limit(self, scope: TaskScope) -> Optional[int]:
        """Load limit for a task scope; None means unbounded."""
        return self.limits.get(scope)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "PolicyConfig":
        """
        Build policy from the ``policy`` section of a loaded config.

        Raises:
            ConfigurationError: If a policy value is unknown, negative or
                not numeric
        """
        policy = config.get("policy", {}) or {}
        defaults = cls()

        limits = dict(defaults.limits)
        for name, value in (policy.get("limits") or {}).items():
            try:
                scope = TaskScope(name)
            except ValueError:
                raise ConfigurationError(f"Unknown task scope in policy.limits: '{name}'")
            if value is not None:
                value = _number(value, f"policy.limits.{name}", int)
                if value < 0:
                    raise ConfigurationError(f"Negative limit for scope '{name}': {value}")
            limits[scope] = value

        weights = dict(defaults.weights)
        for name, value in (policy.get("weights") or {}).items():
            try:
                kind = TriggerKind(name)
            except ValueError:
                raise ConfigurationError(f"Unknown trigger kind in policy.weights: '{name}'")
            weights[kind] = _number(value, f"policy.weights.{name}")

        scalars = {
            name: _number(policy.get(name, getattr(defaults, name)), f"policy.{name}")
            for name in (
                "priority_multiplier",
                "min_confidence",
                "tie_margin",
                "deprecated_factor",
            )
        }
        return cls(limits=limits, weights=weights, **scalars)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge override dict into base dict.

    Args:
        base: Base dictionary (defaults)
        override: Override dictionary (user config)

    Returns:
        Merged dictionary with override values taking precedence
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _resolve_path(path: Optional[str], base_dir: Path) -> Optional[Path]:
    """
    Resolve a path, making relative paths absolute from base_dir.

    Args:
        path: Path string (absolute or relative) or None
        base_dir: Base directory for relative path resolution

    Returns:
        Resolved absolute Path or None if path was None
    """
    if path is None:
        return None

    path_obj = Path(path)
    if path_obj.is_absolute():
        return path_obj
    return (base_dir / path_obj).resolve()


def _read_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise yaml.YAMLError(f"top-level value must be a mapping, got {type(data).__name__}")
    return data


def load_config(
    config_path: Optional[str] = None,
    base_dir: Optional[Path] = None
) -> Dict[str, Any]:
    """
    Load configuration from YAML file with environment variable overrides.

    Configuration Loading Order (later overrides earlier):
    1. Default values (DEFAULT_CONFIG)
    2. Config file (from ACTIVATION_CONFIG_PATH or config_path parameter)
    3. Environment variable overrides (ACTIVATION_CATALOG_PATH)

    Args:
        config_path: Explicit config file path (overrides ACTIVATION_CONFIG_PATH)
        base_dir: Directory for relative path resolution and default config lookup

    Returns:
        Merged configuration dictionary

    Raises:
        ConfigurationError: If an explicit config file exists but is invalid YAML

    Examples:
        # Load with defaults (no config file required)
        config = load_config()

        # Load from specific file
        config = load_config("/path/to/activation-config.yaml")
    """
    if base_dir is None:
        base_dir = Path(__file__).parent

    config = DEFAULT_CONFIG.copy()

    file_path = config_path or os.environ.get("ACTIVATION_CONFIG_PATH")

    if file_path:
        # Explicit config path - must be valid if it exists
        resolved_path = _resolve_path(file_path, base_dir)
        if resolved_path and resolved_path.exists():
            try:
                config = _deep_merge(config, _read_yaml(resolved_path))
                logger.info(f"Loaded configuration from: {resolved_path}")
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in config file: {e}")
            except IOError as e:
                raise ConfigurationError(f"Cannot read config file: {e}")
        else:
            logger.warning(f"Config file not found (using defaults): {file_path}")
    else:
        default_config_path = base_dir / "activation-config.yaml"
        if default_config_path.exists():
            try:
                config = _deep_merge(config, _read_yaml(default_config_path))
                logger.info(f"Loaded configuration from: {default_config_path}")
            except yaml.YAMLError as e:
                logger.warning(f"Invalid YAML in default config (ignoring): {e}")
            except IOError as e:
                logger.warning(f"Cannot read default config (ignoring): {e}")
        else:
            logger.debug("No config file found, using defaults")

    catalog_path_override = os.environ.get("ACTIVATION_CATALOG_PATH")
    if catalog_path_override:
        config["catalog"] = {**config.get("catalog", {}), "path": catalog_path_override}
        logger.info(f"Catalog path override from env: {catalog_path_override}")

    if config.get("catalog", {}).get("path"):
        resolved = _resolve_path(config["catalog"]["path"], base_dir)
        config["catalog"]["path"] = str(resolved) if resolved else None

    return config


def get_bundled_catalog_path() -> Path:
    """Path of the catalog shipped inside the package."""
    return Path(__file__).parent / "catalog"


def get_catalog_path(config: Dict[str, Any]) -> Path:
    """
    Get catalog directory from config or the bundled default.

    Args:
        config: Configuration dictionary from load_config()

    Returns:
        Path to the catalog directory
    """
    path_str = config.get("catalog", {}).get("path")
    if path_str:
        return Path(path_str)
    return get_bundled_catalog_path()


def get_engine_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Extract engine configuration for the create_engine() factory.

    Args:
        config: Configuration dictionary from load_config()

    Returns:
        Dictionary suitable for passing to create_engine()
    """
    engine = config.get("engine", {})
    return {
        "engine": {
            "version": engine.get("version"),
            "features": engine.get("features", {}),
        }
    }


def get_scan_timeout(config: Dict[str, Any]) -> float:
    """Project marker probing budget in seconds."""
    value = (config.get("scan") or {}).get("timeout_seconds", 2.0)
    return _number(value, "scan.timeout_seconds")
