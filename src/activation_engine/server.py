#!/usr/bin/env python3
"""
Activation Engine MCP Server

FastMCP server exposing the activation engine to AI coding-assistant hosts
via Model Context Protocol. The host supplies touched files, project root
and request text; the server answers with the selected content units and
primary agent. Rendering the units into a prompt stays with the host.

Features:
- Context classification (rules/skills selection + agent routing)
- Catalog hot reload via file watcher (copy-on-write snapshot swap)
- Manual reload via the reload_catalog tool
- Graceful shutdown on SIGTERM/SIGINT
"""

import logging
import signal
import sys
from datetime import date
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from activation_engine.catalog_loader import CatalogError
from activation_engine.config import (
    ConfigurationError,
    PolicyConfig,
    get_catalog_path,
    get_engine_config,
    get_scan_timeout,
    load_config,
)
from activation_engine.models import Category
from activation_engine.project_scanner import build_work_context, parse_marker
from activation_engine.snapshot import CatalogStore, start_watcher

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

mcp = FastMCP("activation-engine")

# Priority: ACTIVATION_CONFIG_PATH env var > ./activation-config.yaml > defaults
SERVER_DIR = Path(__file__).parent
server_config = load_config(base_dir=SERVER_DIR)
logging.getLogger().setLevel(server_config.get("server", {}).get("log_level", "INFO"))

CATALOG_PATH = get_catalog_path(server_config)

# Catalog configuration errors abort startup
try:
    SCAN_TIMEOUT = get_scan_timeout(server_config)
    store = CatalogStore(
        CATALOG_PATH,
        engine_config=get_engine_config(server_config),
        policy=PolicyConfig.from_config(server_config),
    )
except (CatalogError, ConfigurationError) as e:
    logger.critical(f"FATAL: cannot load activation catalog from {CATALOG_PATH}: {e}")
    raise SystemExit(1)

_observer = None
_watch_handler = None


@mcp.tool()
async def classify_context(
    request_text: str = "",
    files: list[str] | None = None,
    task_scope: str = "feature",
    markers: list[str] | None = None,
    project_root: str | None = None,
    as_of: str | None = None,
) -> dict:
    """
    Select rules, skills and a primary agent for the current task.

    Args:
        request_text: Free-form description of the task
        files: Paths touched by the task (extensions are derived from these)
        task_scope: single_file | feature | multi_file | architecture
        markers: Known project markers as "file" or "file:dependency-key"
        project_root: Directory to probe for project markers
        as_of: ISO date for lifecycle evaluation (default: today)

    Returns:
        Dictionary with:
        - ordered_units: Unit ids, highest priority first
        - chosen_agent: Agent id, or null when ambiguous
        - ambiguous: True when the caller should ask a clarifying question
        - routing_state: clear | multi_domain | ambiguous
        - rejected: Unit id -> reason
        - scores: Unit id -> final score
        - engine_version: Engine that produced the result
    """
    engine = store.engine()
    try:
        context = build_work_context(
            files=files or [],
            request_text=request_text,
            task_scope=task_scope,
            project_root=Path(project_root) if project_root else None,
            index=engine.index,
            markers=[parse_marker(m) for m in markers or []],
            timeout=SCAN_TIMEOUT,
        )
        as_of_date = date.fromisoformat(as_of) if as_of else None
    except ValueError as e:
        return {"error": f"Invalid input: {e}", "engine_version": engine.version}

    logger.info(
        f"classify_context called: scope={task_scope}, files={len(files or [])}, "
        f"text={request_text[:60]!r}"
    )
    result = engine.classify(context, as_of=as_of_date).to_dict()
    result["engine_version"] = engine.version
    return result


@mcp.tool()
async def get_unit(unit_id: str) -> dict:
    """
    Get a catalog unit descriptor by id.

    Returns:
        Unit dictionary, or an error entry if the id is unknown
    """
    unit = store.current().get_unit(unit_id)
    if unit is None:
        return {"error": f"Unknown unit: {unit_id}"}
    return unit.to_dict()


@mcp.tool()
async def list_units(category: str | None = None) -> dict:
    """
    List catalog units in declaration order.

    Args:
        category: Optional filter (rule, skill, agent)
    """
    try:
        wanted = Category(category) if category else None
    except ValueError:
        return {"error": f"Unknown category: {category}", "units": [], "count": 0}
    units = [u.to_dict() for u in store.current().units(wanted)]
    return {"units": units, "count": len(units)}


@mcp.tool()
async def reload_catalog() -> dict:
    """
    Reload the catalog from disk.

    The previous snapshot stays in effect if the new catalog is invalid.
    """
    return store.reload()


def _signal_handler(sig, frame):
    """Stop the watcher and exit on SIGTERM/SIGINT."""
    logger.info(f"Received signal {sig} ({signal.Signals(sig).name}), shutting down...")
    if _watch_handler is not None:
        _watch_handler.cancel()
    if _observer is not None:
        _observer.stop()
        _observer.join(timeout=5)
    logger.info("Shutdown complete")
    sys.exit(0)


def main():
    """Main entry point for the activation-server command."""
    global _observer, _watch_handler

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    engine = store.engine()
    logger.info("=== Starting Activation Engine MCP Server ===")
    logger.info(f"Catalog path: {CATALOG_PATH} ({len(engine.index)} units)")
    logger.info(f"Engine: {engine.version} ({engine.description})")

    server_settings = server_config.get("server", {})
    if server_settings.get("watch", True):
        _observer, _watch_handler = start_watcher(
            store, debounce_seconds=float(server_settings.get("debounce_seconds", 3.0))
        )

    logger.info("MCP server ready - listening for tool calls")
    mcp.run()


if __name__ == "__main__":
    main()
