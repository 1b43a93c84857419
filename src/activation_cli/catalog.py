"""Catalog loading shared by CLI commands."""

import logging
from pathlib import Path
from typing import Any

import typer

from activation_engine.catalog_loader import CatalogError
from activation_engine.config import (
    ConfigurationError,
    PolicyConfig,
    get_catalog_path,
    get_engine_config,
    get_scan_timeout,
    load_config,
)
from activation_engine.snapshot import CatalogStore

from .console import print_error

CATALOG_OPTION = typer.Option(
    None,
    "--catalog",
    "-c",
    help="Catalog directory (default: from config or the bundled catalog)",
)
CONFIG_OPTION = typer.Option(
    None,
    "--config",
    help="Path to activation-config.yaml",
)


def configure_logging(verbose: bool) -> None:
    """Send engine logs to stderr when --verbose is given."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def open_store(
    catalog: Path | None = None, config_path: str | None = None
) -> tuple[CatalogStore, dict[str, Any]]:
    """
    Load configuration and the catalog snapshot.

    Exits with status 1 on configuration or catalog errors.
    """
    try:
        config = load_config(config_path, base_dir=Path.cwd())
        catalog_path = catalog or get_catalog_path(config)
        get_scan_timeout(config)
        store = CatalogStore(
            catalog_path,
            engine_config=get_engine_config(config),
            policy=PolicyConfig.from_config(config),
        )
    except CatalogError as e:
        print_error(f"Catalog error: {e}")
        raise typer.Exit(1)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        raise typer.Exit(1)
    return store, config
