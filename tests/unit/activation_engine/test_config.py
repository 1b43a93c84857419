"""Unit tests for activation engine config module.

Tests YAML configuration loading, environment variable overrides,
path resolution and policy construction.
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from activation_engine.config import (
    DEFAULT_CONFIG,
    ConfigurationError,
    PolicyConfig,
    _deep_merge,
    _resolve_path,
    get_bundled_catalog_path,
    get_catalog_path,
    get_engine_config,
    get_scan_timeout,
    load_config,
)
from activation_engine.models import TaskScope, TriggerKind


class TestDeepMerge:
    """Tests for _deep_merge helper function."""

    def test_merge_nested_dicts(self):
        """Merge nested dictionaries."""
        base = {"policy": {"min_confidence": 10, "tie_margin": 2}}
        override = {"policy": {"tie_margin": 5}}

        result = _deep_merge(base, override)

        assert result == {"policy": {"min_confidence": 10, "tie_margin": 5}}

    def test_merge_does_not_modify_base(self):
        """Merge should not modify the base dictionary."""
        base = {"a": {"b": 1}}

        _deep_merge(base, {"a": {"b": 2}})

        assert base == {"a": {"b": 1}}


class TestResolvePath:
    """Tests for _resolve_path helper function."""

    def test_resolve_none_returns_none(self, tmp_path: Path):
        assert _resolve_path(None, tmp_path) is None

    def test_resolve_absolute_path(self, tmp_path: Path):
        absolute = "/absolute/path/to/catalog"
        assert _resolve_path(absolute, tmp_path) == Path(absolute)

    def test_resolve_relative_path(self, tmp_path: Path):
        """Resolve relative path makes it absolute from base_dir."""
        result = _resolve_path("catalog", tmp_path)
        assert result == (tmp_path / "catalog").resolve()


class TestDefaultConfig:
    """Tests for DEFAULT_CONFIG structure."""

    def test_default_engine_is_none(self):
        """Default engine should be None (use registered default)."""
        assert DEFAULT_CONFIG["engine"]["version"] is None

    def test_default_limits(self):
        assert DEFAULT_CONFIG["policy"]["limits"] == {
            "single_file": 3,
            "feature": 5,
            "multi_file": 7,
            "architecture": None,
        }

    def test_default_has_server(self):
        assert DEFAULT_CONFIG["server"]["log_level"] == "INFO"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_returns_defaults_without_file(self, tmp_path: Path):
        """Load returns defaults when no config file exists."""
        with patch.dict(os.environ, {}, clear=True):
            config = load_config(base_dir=tmp_path)

        assert config["policy"]["priority_multiplier"] == 10
        assert config["catalog"]["path"] is None

    def test_load_from_explicit_path(self, tmp_path: Path):
        """Load reads from explicit config path."""
        config_path = tmp_path / "custom-config.yaml"
        with open(config_path, "w") as f:
            yaml.dump({"policy": {"min_confidence": 15}}, f)

        config = load_config(str(config_path), base_dir=tmp_path)

        assert config["policy"]["min_confidence"] == 15
        # Default value preserved
        assert config["policy"]["tie_margin"] == 2

    def test_load_from_env_var(self, tmp_path: Path):
        """Load reads from ACTIVATION_CONFIG_PATH env var."""
        config_path = tmp_path / "env-config.yaml"
        with open(config_path, "w") as f:
            yaml.dump({"server": {"log_level": "DEBUG"}}, f)

        with patch.dict(os.environ, {"ACTIVATION_CONFIG_PATH": str(config_path)}):
            config = load_config(base_dir=tmp_path)

        assert config["server"]["log_level"] == "DEBUG"

    def test_load_catalog_path_override(self, tmp_path: Path):
        """Load respects ACTIVATION_CATALOG_PATH env var."""
        custom_path = str(tmp_path / "custom-catalog")

        with patch.dict(os.environ, {"ACTIVATION_CATALOG_PATH": custom_path}, clear=True):
            config = load_config(base_dir=tmp_path)

        assert config["catalog"]["path"] == custom_path

    def test_load_default_config_file(self, tmp_path: Path):
        """Load reads activation-config.yaml from base_dir."""
        with open(tmp_path / "activation-config.yaml", "w") as f:
            yaml.dump({"engine": {"version": "activation-1.0"}}, f)

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(base_dir=tmp_path)

        assert config["engine"]["version"] == "activation-1.0"

    def test_relative_catalog_path_resolved_from_base_dir(self, tmp_path: Path):
        with open(tmp_path / "activation-config.yaml", "w") as f:
            yaml.dump({"catalog": {"path": "my-catalog"}}, f)

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(base_dir=tmp_path)

        assert config["catalog"]["path"] == str((tmp_path / "my-catalog").resolve())

    def test_load_invalid_yaml_raises(self, tmp_path: Path):
        """Explicit invalid YAML raises ConfigurationError."""
        config_path = tmp_path / "invalid.yaml"
        config_path.write_text("invalid: yaml: content: [")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(config_path), base_dir=tmp_path)

    def test_invalid_default_config_is_ignored(self, tmp_path: Path):
        """An invalid default config file falls back to defaults."""
        (tmp_path / "activation-config.yaml").write_text("invalid: yaml: content: [")

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(base_dir=tmp_path)

        assert config["policy"]["min_confidence"] == 10

    def test_missing_explicit_file_uses_defaults(self, tmp_path: Path):
        config = load_config(str(tmp_path / "missing.yaml"), base_dir=tmp_path)

        assert config["scan"]["timeout_seconds"] == 2.0


class TestConfigAccessors:
    """Tests for the get_* helpers."""

    def test_catalog_path_defaults_to_bundled(self):
        config = {"catalog": {"path": None}}

        assert get_catalog_path(config) == get_bundled_catalog_path()

    def test_bundled_catalog_exists(self):
        assert (get_bundled_catalog_path() / "catalog.yaml").is_file()

    def test_catalog_path_from_config(self, tmp_path: Path):
        config = {"catalog": {"path": str(tmp_path)}}

        assert get_catalog_path(config) == tmp_path

    def test_engine_config_shape(self):
        config = {"engine": {"version": "activation-1.0", "features": {"keyword_hit_bonus": False}}}

        assert get_engine_config(config) == {
            "engine": {
                "version": "activation-1.0",
                "features": {"keyword_hit_bonus": False},
            }
        }

    def test_scan_timeout(self):
        assert get_scan_timeout({"scan": {"timeout_seconds": 0.5}}) == 0.5
        assert get_scan_timeout({}) == 2.0

    def test_scan_timeout_not_numeric(self):
        with pytest.raises(ConfigurationError, match="scan.timeout_seconds must be a number"):
            get_scan_timeout({"scan": {"timeout_seconds": "soon"}})


class TestPolicyConfig:
    """Tests for PolicyConfig construction."""

    def test_defaults(self):
        policy = PolicyConfig()

        assert policy.limit(TaskScope.SINGLE_FILE) == 3
        assert policy.limit(TaskScope.FEATURE) == 5
        assert policy.limit(TaskScope.MULTI_FILE) == 7
        assert policy.limit(TaskScope.ARCHITECTURE) is None
        assert policy.weights[TriggerKind.PROJECT_MARKER] == 3

    def test_from_default_config_matches_defaults(self):
        assert PolicyConfig.from_config(DEFAULT_CONFIG) == PolicyConfig()

    def test_from_config_overrides(self):
        config = {
            "policy": {
                "limits": {"single_file": 1, "architecture": 20},
                "weights": {"keyword": 4},
                "min_confidence": 12,
            }
        }

        policy = PolicyConfig.from_config(config)

        assert policy.limit(TaskScope.SINGLE_FILE) == 1
        assert policy.limit(TaskScope.ARCHITECTURE) == 20
        assert policy.limit(TaskScope.FEATURE) == 5
        assert policy.weights[TriggerKind.KEYWORD] == 4
        assert policy.min_confidence == 12

    def test_unknown_scope_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown task scope"):
            PolicyConfig.from_config({"policy": {"limits": {"huge": 3}}})

    def test_unknown_trigger_kind_raises(self):
        with pytest.raises(ConfigurationError, match="Unknown trigger kind"):
            PolicyConfig.from_config({"policy": {"weights": {"regex": 3}}})

    def test_negative_limit_raises(self):
        with pytest.raises(ConfigurationError, match="Negative limit"):
            PolicyConfig.from_config({"policy": {"limits": {"feature": -1}}})

    @pytest.mark.parametrize(
        "policy,setting",
        [
            ({"limits": {"feature": "five"}}, "policy.limits.feature"),
            ({"weights": {"keyword": "heavy"}}, "policy.weights.keyword"),
            ({"min_confidence": [10]}, "policy.min_confidence"),
            ({"deprecated_factor": "half"}, "policy.deprecated_factor"),
        ],
    )
    def test_non_numeric_value_raises(self, policy, setting):
        with pytest.raises(ConfigurationError, match=f"{setting} must be a number"):
            PolicyConfig.from_config({"policy": policy})

    def test_numeric_strings_accepted(self):
        policy = PolicyConfig.from_config(
            {"policy": {"limits": {"feature": "4"}, "tie_margin": "1.5"}}
        )

        assert policy.limit(TaskScope.FEATURE) == 4
        assert policy.tie_margin == 1.5
