import os

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.table import Table
from rich.text import Text

from opswand.types import MigrationConfig

# Global console for UI functions
_console = Console()

# Check if we should use simple UI (e.g., when running in CI)
_use_simple_ui = os.getenv("OPSWAND_SIMPLE_UI") == "1"


def print_success(message: str, prefix: str = "✅"):
    """Print a success message."""
    _console.print(f"[green]{prefix}[/green] {message}")


def print_info(message: str, prefix: str = "ℹ️"):
    """Print an info message."""
    _console.print(f"[blue]{prefix}[/blue]  {message}")


def print_step(message: str, prefix: str = "🔧"):
    """Print a step/progress message."""
    _console.print(f"[cyan]{prefix}[/cyan] {message}")


def print_warning(message: str, prefix: str = "⚠️"):
    _console.print(f"[yellow]{prefix}[/yellow]  {message}")


def print_error(message: str, prefix: str = "❌"):
    _console.print(f"[red]{prefix}[/red] {message}")


def render_migration_config(config: MigrationConfig, gcp_project_id: str):
    table = Table(title=f"Migration of {config.app_name}")

    table.add_column("", style="bold")
    table.add_column("Source", style="cyan")
    table.add_column("Target", style="green")

    source = config.source.describe()
    target = config.target.describe()
    for key in source:
        table.add_row(key, source[key], target[key])

    _console.print(table)
    _console.print(
        f"Application [cyan]{config.app_name}[/cyan] in namespace "
        f"[magenta]{config.namespace}[/magenta], GCP project [blue]{gcp_project_id}[/blue]"
    )


def progress_spinner(text: str) -> Status:
    """Start and return a spinner. Raises rich.errors.LiveError if one is already live."""
    status = _console.status(text, spinner="dots")
    status.start()
    return status


def print_completion_message(message: str):
    _console.print()

    if _use_simple_ui:
        _console.print("[green]" + "=" * 75 + "[/green]")
        _console.print(message, markup=False, highlight=False, soft_wrap=True)
        _console.print("[green]" + "=" * 75 + "[/green]")
    else:
        _console.print(
            Panel(
                Text(message),
                border_style="green",
                title="Migration setup started",
                expand=False,
            ),
            soft_wrap=True,
        )
