#!/usr/bin/env python3
"""
Hook entry point for the activation engine.

The activation-route command is called by a host hook before a prompt is
built. It classifies the work context and prints the Selection as JSON.
"""

import json
import logging
import sys
from pathlib import Path

from activation_engine.catalog_loader import CatalogError
from activation_engine.config import (
    ConfigurationError,
    PolicyConfig,
    get_catalog_path,
    get_engine_config,
    get_scan_timeout,
    load_config,
)
from activation_engine.project_scanner import build_work_context
from activation_engine.snapshot import CatalogStore

logger = logging.getLogger(__name__)


def _read_input(argv: list[str], stdin_data: str) -> dict:
    """
    Parse hook input.

    Args (direct CLI) take precedence; otherwise stdin holds JSON
    {"prompt", "files", "cwd", "task_scope"} or plain prompt text.
    """
    if argv:
        return {"prompt": " ".join(argv)}
    stdin_data = stdin_data.strip()
    if not stdin_data:
        return {}
    try:
        data = json.loads(stdin_data)
    except json.JSONDecodeError:
        # Plain text prompt
        return {"prompt": stdin_data}
    return data if isinstance(data, dict) else {"prompt": str(data)}


def route_cli() -> None:
    """
    CLI entry point for hook-based classification.

    Usage:
        echo '{"prompt": "add a button", "files": ["src/App.tsx"]}' | activation-route
        activation-route "optimize query"

    Exit codes:
        0: Success (Selection JSON on stdout, or nothing for empty input)
        1: Catalog or configuration error
    """
    input_data = _read_input(sys.argv[1:], "" if sys.argv[1:] else sys.stdin.read())
    if not input_data:
        sys.exit(0)

    try:
        config = load_config()
        timeout = get_scan_timeout(config)
        store = CatalogStore(
            get_catalog_path(config),
            engine_config=get_engine_config(config),
            policy=PolicyConfig.from_config(config),
        )
    except (CatalogError, ConfigurationError) as e:
        # Errors go to stderr, stdout stays clean for the host
        print(f"Activation engine error: {e}", file=sys.stderr)
        sys.exit(1)

    engine = store.engine()
    cwd = input_data.get("cwd")
    try:
        context = build_work_context(
            files=input_data.get("files") or [],
            request_text=input_data.get("prompt", ""),
            task_scope=input_data.get("task_scope") or "feature",
            project_root=Path(cwd) if cwd else None,
            index=engine.index,
            timeout=timeout,
        )
    except ValueError as e:
        print(f"Activation engine error: invalid input: {e}", file=sys.stderr)
        sys.exit(1)

    result = engine.classify(context).to_dict()
    result["engine_version"] = engine.version
    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    route_cli()
