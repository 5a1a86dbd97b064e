"""
Rich-powered console output for devalias.

Provides status lines and the alias table used by the CLI.
"""

import sys

from rich.console import Console
from rich.table import Table

from .errors import ConfigError

# Global console instance with force_terminal=None to respect TTY detection
# and legacy_windows=True for better Windows compatibility
console = Console(force_terminal=None, legacy_windows=True)
err_console = Console(stderr=True, force_terminal=None, legacy_windows=True)

# ASCII-safe icons for non-TTY output
_USE_ASCII = not sys.stdout.isatty()


def print_success(message: str):
    """Print a success message"""
    icon = "+" if _USE_ASCII else "✓"
    console.print(f"[green]{icon}[/green] {message}")


def print_error(message: str):
    """Print an error message"""
    icon = "x" if _USE_ASCII else "✗"
    err_console.print(f"[red]{icon}[/red] {message}", style="red", highlight=False)


def print_warning(message: str):
    """Print a warning message"""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str):
    """Print an info message"""
    icon = "i" if _USE_ASCII else "ℹ"
    console.print(f"[blue]{icon}[/blue] {message}")


def print_aliases(directives, hosts_entries: dict[str, str] | None = None) -> None:
    """Print configured aliases as a table, marking which are in the hosts file."""
    if not directives:
        print_info("No aliases configured")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Alias", style="cyan")
    table.add_column("Upstream")
    if hosts_entries is not None:
        table.add_column("Hosts", justify="center")

    for directive in directives:
        row = [directive.alias, directive.upstream]
        if hosts_entries is not None:
            try:
                host = directive.alias_address().host
            except ConfigError:
                host = directive.alias
            row.append("[green]yes[/green]" if host in hosts_entries else "[dim]no[/dim]")
        table.add_row(*row)

    console.print(table)
