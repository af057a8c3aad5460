"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from hashget.models.config import CONFIG_FIELDS, FIELDS_BY_KEY
from hashget.models.outcome import ExecutionOutcome, format_steps
from hashget.utils.formatting import format_duration, format_size


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `hashget --show-config` to see the effective settings.",
            "• Run `hashget init --force` to recreate a default file.",
        ],
        "HashMismatchError": [
            "• The server may have published a new version of the file.",
            "• Double-check the digest given with the request.",
            "• Make sure the --hash-algo matches the digest you supplied.",
        ],
        "TransferTimeoutError": [
            "• The whole-request timeout expired before the download ended.",
            "• Raise --whole-request-timeout or set it to 0.",
        ],
        "TransferError": [
            "• The server refused the request or the connection dropped.",
            "• Check the URL and your proxy settings.",
            "• Partial downloads are resumed on the next run.",
        ],
        "PeerCacheError": [
            "• Check the peer_backend setting ('module:factory').",
            "• Make sure the peer port is free and the interface exists.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The server might be temporarily unavailable.",
            "• Please try again in a few minutes.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration, hiding sensitive data."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        field = FIELDS_BY_KEY.get(key)
        if field is not None and field.secret:
            value = "[hidden]" if value else ""
        elif isinstance(value, list):
            value = ", ".join(value)
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_config_help():
    """Displays every configuration key with its flag, default and meaning."""
    console = Console()

    table = Table(
        box=box.ROUNDED,
        title="[bold]Configuration Reference[/bold]",
        title_style="",
    )
    table.add_column("Key", style="bold magenta", no_wrap=True)
    table.add_column("Flag", style="cyan", no_wrap=True)
    table.add_column("Default", style="dim")
    table.add_column("Description")

    current_section = None
    for field in CONFIG_FIELDS:
        if field.section != current_section:
            current_section = field.section
            table.add_section()
            table.add_row(f"[bold]-- {escape(f'[{current_section}]')} --[/bold]")
        default = field.default
        if isinstance(default, list):
            default = ",".join(default)
        description = field.help
        if field.choices:
            description += f"\n[dim]One of: {', '.join(field.choices)}[/dim]"
        table.add_row(field.key, field.flag, escape(str(default)), description)

    console.print(
        Panel(
            Text(
                "Values are read from the INI file, then overridden by command-line"
                " flags. Keys of the [peer] and [tls] sections live in those sections.",
                justify="center",
            ),
            title="[bold]hashget Configuration Guide[/bold]",
            border_style="cyan",
            padding=(1, 2),
        )
    )
    console.print(table)


def print_summary_panel(outcomes: list[ExecutionOutcome], duration_s: float):
    """Displays the result of every request of the session."""
    console = Console(stderr=True)

    table = Table(box=box.SIMPLE, expand=False)
    table.add_column("Request", style="cyan", overflow="fold")
    table.add_column("Algorithm", style="magenta")
    table.add_column("Steps")
    table.add_column("Size", justify="right", style="green")

    total_size = 0
    for outcome in outcomes:
        size = 0
        if outcome.path and Path(outcome.path).is_file():
            size = Path(outcome.path).stat().st_size
            total_size += size
        steps = format_steps(outcome.steps) if outcome.path else "[red]failed[/red]"
        table.add_row(
            escape(outcome.url), outcome.hash_algo.value, steps, format_size(size)
        )

    succeeded = sum(1 for o in outcomes if o.path)
    footer = Table(show_header=False, box=None, padding=(0, 2))
    footer.add_column(style="bold cyan", justify="right")
    footer.add_column()
    footer.add_row("✓ Downloaded:", f"[bold green]{succeeded}[/bold green]")
    if failed := len(outcomes) - succeeded:
        footer.add_row("✗ Failed:", f"[bold red]{failed}[/bold red]")
    footer.add_row("Total Size:", f"[cyan]{format_size(total_size)}[/cyan]")
    footer.add_row("Time Elapsed:", f"[blue]{format_duration(duration_s)}[/blue]")

    grid = Table.grid()
    grid.add_row(table)
    grid.add_row(footer)

    console.print(
        Panel(
            grid,
            title="[bold]Transfer Summary[/bold]",
            border_style="green" if not failed else "yellow",
            expand=False,
        )
    )
