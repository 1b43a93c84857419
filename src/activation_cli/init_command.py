"""The activation init and status commands.

Detects the project's tech stack from manifest markers, records the
active agents in .agent/project.json and shows that file again later.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel

from activation_engine import __version__
from activation_engine.config import get_scan_timeout
from activation_engine.models import Category, LifecycleState, TaskScope, WorkContext
from activation_engine.project_scanner import marker_probes, scan_project
from activation_engine.routing_engine import ActivationEngine
from activation_engine.selector import shortlist
from activation_engine.signals import extract_signals

from .catalog import CATALOG_OPTION, CONFIG_OPTION, open_store
from .console import (
    console,
    create_table,
    print_error,
    print_info,
    print_success,
    print_warning,
)

AGENT_DIR = ".agent"
PROJECT_FILE = "project.json"

# Manifests worth mentioning when nothing is detected
MANIFEST_HINTS = [
    "package.json (Node.js)",
    "composer.json (PHP)",
    "requirements.txt / pyproject.toml (Python)",
    "go.mod (Go)",
    "Cargo.toml (Rust)",
    "pubspec.yaml (Flutter)",
]


@dataclass
class StackReport:
    """What init found in a project."""

    markers: list[str] = field(default_factory=list)
    tech_stack: dict[str, list[str]] = field(default_factory=dict)
    active_agents: list[str] = field(default_factory=list)

    @property
    def detected(self) -> bool:
        return bool(self.markers)


def detect_stack(
    engine: ActivationEngine, root: Path, timeout: float = 2.0, as_of: date | None = None
) -> StackReport:
    """
    Scan a project root and derive its stack and agents.

    Rules fired by markers (after lifecycle and exclusion filtering) make up
    the tech stack, grouped by domain. Agents fired by markers plus agents
    flagged always_active make up the active agents.
    """
    index = engine.index
    as_of = as_of or date.today()
    markers = scan_project(root, marker_probes(index), timeout)
    context = WorkContext(project_markers=markers, task_scope=TaskScope.ARCHITECTURE)
    signals = extract_signals(context, index)

    rules, _ = shortlist(signals, index, engine.policy, as_of, categories={Category.RULE})
    tech_stack: dict[str, list[str]] = {}
    for candidate in rules:
        tech_stack.setdefault(candidate.unit.domain or "general", []).append(candidate.id)

    agents, _ = shortlist(signals, index, engine.policy, as_of, categories={Category.AGENT})
    active = [c.id for c in agents]
    for unit in index.units(Category.AGENT):
        if unit.always_active and unit.id not in active:
            if unit.lifecycle.effective(as_of) == LifecycleState.REMOVED:
                continue
            active.append(unit.id)

    return StackReport(
        markers=sorted(f"{name}:{key}" if key else name for name, key in markers),
        tech_stack=tech_stack,
        active_agents=active,
    )


def init_command(
    path: Path = typer.Argument(
        Path("."), help="Project root to initialize", file_okay=False
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing .agent/project.json",
    ),
    catalog: Optional[Path] = CATALOG_OPTION,
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Detect the project's tech stack and write .agent/project.json."""
    root = path.resolve()
    project_file = root / AGENT_DIR / PROJECT_FILE

    if project_file.exists() and not force:
        print_warning(f"Project already initialized ({AGENT_DIR}/{PROJECT_FILE} exists)")
        print_info("Use --force to reinitialize")
        raise typer.Exit(0)

    store, config = open_store(catalog, config_path)
    engine = store.engine()

    console.print(f"[bold]Detecting tech stack in {root}...[/bold]")
    report = detect_stack(engine, root, timeout=get_scan_timeout(config))

    if not report.detected:
        print_error("Could not auto-detect tech stack!")
        print_info("Please ensure you have at least one of:")
        for hint in MANIFEST_HINTS:
            console.print(f"  - {hint}")
        raise typer.Exit(1)

    for domain, unit_ids in report.tech_stack.items():
        console.print(f"  [cyan]{domain.capitalize()}:[/cyan] {', '.join(unit_ids)}")
    for agent_id in report.active_agents:
        console.print(f"  [green]→[/green] {agent_id}")

    project = {
        "version": __version__,
        "initialized": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "engine": engine.version,
        "markers": report.markers,
        "tech_stack": report.tech_stack,
        "active_agents": report.active_agents,
    }
    project_file.parent.mkdir(parents=True, exist_ok=True)
    project_file.write_text(json.dumps(project, indent=2) + "\n", encoding="utf-8")

    console.print(
        Panel(
            f"[green]Configuration saved to {AGENT_DIR}/{PROJECT_FILE}[/green]\n\n"
            f"Active agents: {', '.join(report.active_agents) or '(none)'}",
            title="Initialized",
            border_style="green",
        )
    )


def status_command(
    path: Path = typer.Argument(
        Path("."), help="Project root to inspect", file_okay=False
    ),
) -> None:
    """Show the configuration stored in .agent/project.json."""
    project_file = path.resolve() / AGENT_DIR / PROJECT_FILE

    if not project_file.is_file():
        print_warning("Not initialized. Run: activation init")
        return

    try:
        project = json.loads(project_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print_error(f"Cannot read {AGENT_DIR}/{PROJECT_FILE}: {e}")
        raise typer.Exit(1)
    if not isinstance(project, dict):
        print_error(f"{AGENT_DIR}/{PROJECT_FILE} is not a JSON object")
        raise typer.Exit(1)

    print_success("Project initialized!")
    table = create_table()
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("Initialized", str(project.get("initialized", "")))
    table.add_row("Engine", str(project.get("engine", "")))
    for domain, unit_ids in (project.get("tech_stack") or {}).items():
        table.add_row(domain.capitalize(), ", ".join(unit_ids))
    table.add_row("Agents", ", ".join(project.get("active_agents") or []) or "(none)")
    console.print(table)
