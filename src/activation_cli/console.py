"""Console output helpers shared by the CLI commands.

Usage:
    from activation_cli.console import console, print_success, print_error

    print_success("Catalog is valid")
    print_error("Unknown unit")
"""

from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message (green checkmark)."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message (red X) to stderr."""
    err_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message (yellow warning sign)."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message (blue info sign)."""
    console.print(f"[blue]ℹ[/blue] {message}")


def create_table(title: str = "") -> Table:
    """Create a rich table."""
    return Table(title=title) if title else Table()
