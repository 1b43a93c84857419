"""Activation CLI entry point."""

from typing import Optional

import typer

from . import __version__
from .console import console
from .commands import classify_command, units_command, validate_command
from .init_command import init_command, status_command

app = typer.Typer(
    name="activation",
    help="Activation - context-aware selection of rules, skills and agents",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print the installed version for --version."""
    if value:
        console.print(f"activation version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Activation - context-aware selection of rules, skills and agents."""
    pass


app.command(name="init")(init_command)
app.command(name="status")(status_command)
app.command(name="classify")(classify_command)
app.command(name="validate")(validate_command)
app.command(name="units")(units_command)


if __name__ == "__main__":
    app()
