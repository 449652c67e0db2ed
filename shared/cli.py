"""Console helpers shared by the tool CLIs."""

import functools
import sys
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)


def info(message: str) -> None:
    console.print(f"[cyan]{message}[/cyan]")


def success(message: str) -> None:
    console.print(f"[green]✓ {message}[/green]")


def warning(message: str) -> None:
    console.print(f"[yellow]! {message}[/yellow]")


def error(message: str) -> None:
    err_console.print(f"[red]✗ {message}[/red]")


def create_table(title: Optional[str] = None) -> Table:
    """Create a table with the house style."""
    return Table(title=title, show_header=True, header_style="bold")


def print_table(table: Table) -> None:
    console.print(table)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Turn uncaught exceptions into a red message and exit code 1.

    ``click`` exits and aborts pass through untouched.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
            raise
        except KeyboardInterrupt:
            error("Interrupted")
            sys.exit(130)
        except Exception as e:
            error(str(e))
            sys.exit(1)

    return wrapper
