"""Shared pytest fixtures for activation engine tests.

Fixture catalogs are written to tmp_path so each test owns its declarations;
the bundled catalog is loaded once per test where scenario tests need it.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

import activation_engine.engine  # noqa: F401 - registers activation-1.0
from activation_engine.config import PolicyConfig, get_bundled_catalog_path
from activation_engine.routing_engine import ActivationEngine, create_engine
from activation_engine.rule_index import RuleIndex


# =============================================================================
# Path Fixtures
# =============================================================================


@pytest.fixture
def project_root() -> Path:
    """Return the repository root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def bundled_catalog() -> Path:
    """Return the catalog shipped inside the package."""
    return get_bundled_catalog_path()


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def write_catalog(tmp_path: Path) -> Callable[..., Path]:
    """
    Factory writing a catalog directory.

    Usage:
        path = write_catalog({"units": [...]}, files={"agents/a.md": "---\\n..."})
    """

    def _write(
        table: dict[str, Any] | None = None,
        files: dict[str, str] | None = None,
        name: str = "catalog",
    ) -> Path:
        catalog_dir = tmp_path / name
        catalog_dir.mkdir(parents=True, exist_ok=True)
        if table is not None:
            (catalog_dir / "catalog.yaml").write_text(
                yaml.safe_dump(table, sort_keys=False), encoding="utf-8"
            )
        for relative, content in (files or {}).items():
            path = catalog_dir / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        return catalog_dir

    return _write


@pytest.fixture
def build_index(write_catalog) -> Callable[..., RuleIndex]:
    """Factory building a RuleIndex from a catalog table."""

    def _build(table: dict[str, Any], files: dict[str, str] | None = None) -> RuleIndex:
        return RuleIndex.from_path(write_catalog(table, files))

    return _build


@pytest.fixture
def bundled_index(bundled_catalog: Path) -> RuleIndex:
    """RuleIndex over the bundled catalog."""
    return RuleIndex.from_path(bundled_catalog)


@pytest.fixture
def engine(bundled_index: RuleIndex) -> ActivationEngine:
    """Default engine over the bundled catalog."""
    return create_engine(bundled_index)


@pytest.fixture
def policy() -> PolicyConfig:
    """Default scoring policy."""
    return PolicyConfig()
