"""Catalog inspection and classification commands."""

import json
from datetime import date
from pathlib import Path
from typing import List, Optional

import typer

from activation_engine.config import get_scan_timeout
from activation_engine.models import Category, Selection, TaskScope
from activation_engine.project_scanner import build_work_context, parse_marker

from .catalog import CATALOG_OPTION, CONFIG_OPTION, configure_logging, open_store
from .console import console, create_table, print_error, print_success, print_warning


def _print_selection(selection: Selection) -> None:
    table = create_table("Selected units")
    table.add_column("#", justify="right")
    table.add_column("Unit")
    table.add_column("Score", justify="right")
    for position, unit_id in enumerate(selection.ordered_units, start=1):
        table.add_row(str(position), unit_id, f"{selection.scores.get(unit_id, 0):g}")
    console.print(table)

    if selection.ambiguous:
        print_warning("No clear agent - ask a clarifying question")
    else:
        console.print(
            f"Agent: [bold]{selection.chosen_agent}[/bold] "
            f"({selection.routing_state.value})"
        )

    if selection.rejected:
        rejected = create_table("Rejected")
        rejected.add_column("Unit")
        rejected.add_column("Reason")
        for unit_id, reason in selection.rejected.items():
            rejected.add_row(unit_id, reason)
        console.print(rejected)


def classify_command(
    request_text: str = typer.Argument("", help="Free-form task description"),
    files: List[str] = typer.Option(
        [], "--file", "-f", help="File touched by the task (repeatable)"
    ),
    scope: TaskScope = typer.Option(
        TaskScope.FEATURE, "--scope", "-s", help="Task scope (selects the load limit)"
    ),
    project_root: Optional[Path] = typer.Option(
        None, "--project-root", "-p", help="Probe this directory for project markers"
    ),
    markers: List[str] = typer.Option(
        [], "--marker", "-m", help="Known marker as file or file:key (repeatable)"
    ),
    as_of: Optional[str] = typer.Option(
        None, "--as-of", help="Evaluate lifecycle as of this date (YYYY-MM-DD)"
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the selection as JSON"),
    verbose: bool = typer.Option(False, "--verbose", help="Show engine logs"),
    catalog: Optional[Path] = CATALOG_OPTION,
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """Select rules, skills and an agent for a work context."""
    configure_logging(verbose)
    try:
        as_of_date = date.fromisoformat(as_of) if as_of else None
    except ValueError:
        print_error(f"Invalid --as-of date: {as_of}")
        raise typer.Exit(2)

    store, config = open_store(catalog, config_path)
    engine = store.engine()
    context = build_work_context(
        files=files,
        request_text=request_text,
        task_scope=scope,
        project_root=project_root,
        index=engine.index,
        markers=[parse_marker(m) for m in markers],
        timeout=get_scan_timeout(config),
    )
    selection = engine.classify(context, as_of=as_of_date)

    if as_json:
        result = selection.to_dict()
        result["engine_version"] = engine.version
        console.print_json(json.dumps(result))
    else:
        _print_selection(selection)


def validate_command(
    catalog: Optional[Path] = CATALOG_OPTION,
    config_path: Optional[str] = CONFIG_OPTION,
    verbose: bool = typer.Option(False, "--verbose", help="Show engine logs"),
) -> None:
    """Load the catalog and report configuration errors."""
    configure_logging(verbose)
    store, _ = open_store(catalog, config_path)
    index = store.current()

    if index.skipped:
        print_error(f"{len(index.skipped)} unit file(s) could not be loaded:")
        for relative, reason in index.skipped:
            console.print(f"  - {relative}: {reason}")
        raise typer.Exit(1)

    counts = {category: len(index.units(category)) for category in Category}
    trigger_count = sum(len(u.triggers) for u in index.units())
    print_success(f"Catalog is valid: {store.catalog_path}")
    console.print(
        f"  {counts[Category.RULE]} rules, {counts[Category.SKILL]} skills, "
        f"{counts[Category.AGENT]} agents, {trigger_count} triggers, "
        f"{len(index.exclusion_groups)} exclusion groups"
    )
    if index.coordinator is None:
        print_warning("No coordinator agent declared; multi-domain work will be ambiguous")
    else:
        console.print(f"  Coordinator: {index.coordinator}")


def units_command(
    category: Optional[Category] = typer.Option(
        None, "--category", help="Only list units of this category"
    ),
    catalog: Optional[Path] = CATALOG_OPTION,
    config_path: Optional[str] = CONFIG_OPTION,
) -> None:
    """List catalog units in declaration order."""
    store, _ = open_store(catalog, config_path)
    as_of = date.today()

    table = create_table()
    table.add_column("Unit")
    table.add_column("Category")
    table.add_column("Priority", justify="right")
    table.add_column("Domain")
    table.add_column("Lifecycle")
    for unit in store.current().units(category):
        state = unit.lifecycle.effective(as_of).value
        if unit.lifecycle.sunset_date:
            state = f"{state} (sunset {unit.lifecycle.sunset_date})"
        table.add_row(
            unit.id, unit.category.value, str(unit.priority), unit.domain or "", state
        )
    console.print(table)
