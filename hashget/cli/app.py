"""
Defines the command-line interface for the application using Typer.
Requests can be given as arguments or piped through stdin.
"""

import asyncio
import logging
import os
import sys
import time
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from hashget import __version__
from hashget.core.orchestrator import DownloadOrchestrator
from hashget.exceptions import HashgetError, TransferError
from hashget.models.config import CONFIG_FIELDS, ProcessConfig
from hashget.models.outcome import ExecutionOutcome
from hashget.storage.cache import HashCache
from hashget.storage.config_manager import ConfigManager

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_config_help,
    print_summary_panel,
)

console = Console(stderr=True)

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("hashget")

app = typer.Typer(
    name="hashget",
    help=(
        "Download files over HTTP(S) with resume, digest verification, a local"
        " hash cache and an optional peer cache. Use 'hashget <command> --help'"
        " for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "hashget"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _fail(error: Exception) -> typer.Exit:
    console.print(format_error_with_suggestions(error))
    return typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for info, -vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    config_help: bool = typer.Option(
        False,
        "--config-help",
        help="Show every configuration key with its flag and default, then exit.",
        is_eager=True,
    ),
    clear_cache: bool = typer.Option(
        False, "--clear-cache", help="Clear the local hash cache and exit."
    ),
):
    """hashget downloader CLI"""
    if config_help:
        print_config_help()
        raise typer.Exit()

    if version:
        console.print(f"[bold]hashget[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "WARNING"
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    log.setLevel(log_level)

    config_manager = ConfigManager(CONFIG_FILE)

    if clear_cache:
        try:
            config = config_manager.load_config()
        except HashgetError as e:
            raise _fail(e) from e
        cache = HashCache(
            Path(config.cache_folder or config_manager.default_cache_folder),
            config.cache_max_age_days,
        )
        console.print("[cyan]Clearing hash cache...[/cyan]")
        files_count = len(cache.entries())
        if cache.clear():
            console.print(
                f"[green]✓ Cache cleared successfully ({files_count} entries removed"
                ").[/green]"
            )
        else:
            console.print("[red]✗ Failed to clear cache.[/red]")
        raise typer.Exit()

    if show_config:
        if CONFIG_FILE.is_file():
            try:
                config_manager.read()
            except HashgetError as e:
                raise _fail(e) from e
            config_data = config_manager.get_config_as_dict()
        else:
            console.print(
                "[yellow]No config file found, showing defaults.[/yellow] Run"
                " [cyan]hashget init[/cyan] to create one."
            )
            config_data = {f.key: f.default for f in CONFIG_FIELDS}
        print_config(CONFIG_FILE, config_data)
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing file without asking."
    ),
):
    """Write a configuration file holding every default value."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except HashgetError as e:
        raise _fail(e) from e
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Ready to download! Try: [cyan]hashget download <URL>[/cyan]")


def _read_requests_from_stdin() -> list[str]:
    """Reads requests from stdin, one per line."""
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  No input detected on stdin. Please pipe requests or"
            " redirect a file.[/yellow]"
        )
        raise typer.Exit(code=1)

    requests = []
    for line in sys.stdin:
        line = line.strip()
        if line and not line.startswith("#"):
            requests.append(line)

    if not requests:
        console.print("[yellow]⚠️  No requests found in stdin.[/yellow]")
        raise typer.Exit(code=1)

    log.info(f"Read {len(requests)} requests from stdin.")
    return requests


async def run_requests(
    config: ProcessConfig, requests: list[str]
) -> list[ExecutionOutcome]:
    """Runs requests one after another through a single orchestrator."""
    outcomes = []
    async with DownloadOrchestrator(
        config, log_sink=log, console=console
    ) as orchestrator:
        for request in requests:
            try:
                path = await orchestrator.execute(request)
            except TransferError as e:
                if not config.silent:
                    log.error(f"[red]✗ {escape(request)}: {escape(str(e))}[/red]")
                path = ""
            if path:
                typer.echo(path)
            if orchestrator.last_outcome is not None:
                outcomes.append(orchestrator.last_outcome)
    return outcomes


@app.command(name="download")
def download_command(
    requests: list[str] | None = typer.Argument(  # noqa: B008
        None, help="URLs to download, each optionally prefixed by '<hex-digest>@'."
    ),
    # --- Destination ---
    dest_file: str | None = typer.Option(
        None, "-o", "--dest-file", help="Destination file (single request only)."
    ),
    # --- Verification ---
    hash_algo: str | None = typer.Option(
        None, "-a", "--hash-algo", help="Digest algorithm, or 'auto'."
    ),
    hash_value: str | None = typer.Option(
        None, "--hash-value", help="Expected hexadecimal digest."
    ),
    # --- Request ---
    header: list[str] | None = typer.Option(  # noqa: B008
        None, "-H", "--header", help="Custom header 'Name: value' (repeatable)."
    ),
    proxy: str | None = typer.Option(None, "--proxy", help="Proxy URI."),
    redirect_max: int | None = typer.Option(
        None, "--redirect-max", help="Maximum number of redirects to follow."
    ),
    connect_timeout: int | None = typer.Option(
        None, "--connect-timeout", help="Per-connection timeout in seconds."
    ),
    whole_request_timeout: int | None = typer.Option(
        None, "--whole-request-timeout", help="Whole-request timeout in seconds."
    ),
    limit_bandwidth_mb: int | None = typer.Option(
        None, "--limit-bandwidth-mb", help="Bandwidth cap in MB/s."
    ),
    no_resume: bool | None = typer.Option(
        None, "--no-resume/--resume", help="Restart partial downloads from zero."
    ),
    # --- Cache ---
    cache: bool | None = typer.Option(
        None, "--cache/--no-cache", help="Use the local hash cache."
    ),
    cache_folder: str | None = typer.Option(
        None, "--cache-folder", help="Folder of the local hash cache."
    ),
    cache_max_age_days: int | None = typer.Option(
        None, "--cache-max-age-days", help="Days before cached entries expire."
    ),
    # --- Peer cache ---
    peer: bool | None = typer.Option(
        None, "--peer/--no-peer", help="Fetch through the peer cache."
    ),
    peer_secret: str | None = typer.Option(
        None, "--peer-secret", help="Shared secret of the peer-cache network."
    ),
    peer_request: list[str] | None = typer.Option(  # noqa: B008
        None, "--peer-request", help="Peer request option (repeatable)."
    ),
    track_network: bool | None = typer.Option(
        None,
        "--track-network/--no-track-network",
        help="Restart the peer cache when network interfaces change.",
    ),
    # --- TLS ---
    client_insecure: bool | None = typer.Option(
        None,
        "--client-insecure/--client-verify",
        help="Skip certificate verification for HTTPS.",
    ),
    # --- Output ---
    silent: bool | None = typer.Option(
        None, "--silent/--no-silent", help="Print only the resulting paths."
    ),
    log_steps: bool | None = typer.Option(
        None, "--log-steps/--no-log-steps", help="Log each transfer phase."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read requests from standard input, one per line."
    ),
):
    """Download one or more files."""
    if stdin:
        requests = (requests or []) + _read_requests_from_stdin()
    if not requests:
        console.print(
            "[red]✗ No requests provided.[/red] "
            "Use: [cyan]hashget download <URL>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)
    if dest_file and len(requests) > 1:
        console.print("[red]✗ --dest-file can only be used with a single request.[/red]")
        raise typer.Exit(code=1)

    cli_options = {
        "dest_file": dest_file,
        "hash_algo": hash_algo,
        "hash_value": hash_value,
        "header": "\r\n".join(header) if header else None,
        "proxy": proxy,
        "redirect_max": redirect_max,
        "connect_timeout": connect_timeout,
        "whole_request_timeout": whole_request_timeout,
        "limit_bandwidth_mb": limit_bandwidth_mb,
        "no_resume": no_resume,
        "cache": cache,
        "cache_folder": cache_folder,
        "cache_max_age_days": cache_max_age_days,
        "peer": peer,
        "peer_secret": peer_secret,
        "peer_request": peer_request or None,
        "track_network": track_network,
        "client_insecure": client_insecure,
        "silent": silent,
        "log_steps": log_steps,
    }

    try:
        config = ConfigManager(CONFIG_FILE).load_config(cli_options)
    except HashgetError as e:
        raise _fail(e) from e

    if config.silent:
        log.setLevel("ERROR")
    elif config.log_steps and log.getEffectiveLevel() > logging.DEBUG:
        log.setLevel("DEBUG")

    start_time = time.monotonic()
    try:
        outcomes = asyncio.run(run_requests(config, requests))
    except HashgetError as e:
        raise _fail(e) from e
    duration = time.monotonic() - start_time

    if not config.silent and len(outcomes) > 1:
        print_summary_panel(outcomes, duration)

    if len(outcomes) < len(requests) or not all(o.path for o in outcomes):
        raise typer.Exit(code=1)
