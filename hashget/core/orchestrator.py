"""
The main orchestrator: turns one request string into a fully resolved transfer
and hands it to the download engine.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from hashget.cli.progress_manager import ConsoleProgress
from hashget.exceptions import TransferError
from hashget.media.downloader import DownloadEngine, HttpDownloadEngine
from hashget.media.hashing import HashAlgo, resolve_algo
from hashget.models.config import ProcessConfig
from hashget.models.outcome import (
    ExecutionOutcome,
    ProgressCallback,
    TransferConfig,
    TransferStep,
    format_steps,
)
from hashget.peer.service import PeerCacheFactory
from hashget.utils.tls import build_client_context

from .connection import ConnectionManager
from .peer_cache import PeerCacheLifecycle
from .request import parse_uri, resolve_request

log = logging.getLogger(__name__)


class DownloadOrchestrator:
    """
    Runs requests for one configuration, keeping the connection and the
    peer-cache handle alive between calls.

    Not safe for concurrent `execute()` calls: use one instance per caller.
    """

    def __init__(
        self,
        config: ProcessConfig,
        engine: DownloadEngine | None = None,
        peer_cache_factory: PeerCacheFactory | None = None,
        log_sink: logging.Logger | None = None,
        on_progress: ProgressCallback | None = None,
        console: Console | None = None,
    ):
        self.config = config
        self.engine = engine or HttpDownloadEngine()
        self.log_sink = log_sink
        self.logger = log_sink or log
        self.on_progress = on_progress
        self.console = console or Console(stderr=True)

        client_tls = build_client_context(config.client_tls)
        self.peer_cache = PeerCacheLifecycle(
            config, peer_cache_factory, client_tls, log_sink
        )
        self.connections = ConnectionManager(client_tls, log_sink)

        self._steps: set[TransferStep] = set()
        self.last_outcome: ExecutionOutcome | None = None
        self._closed = False

    @property
    def steps(self) -> set[TransferStep]:
        """Steps completed by the last `execute()` call."""
        return self._steps

    def to_console(self, message: str) -> None:
        """Writes a message to the console unless running silent."""
        if not self.config.silent:
            self.console.print(message)

    async def execute(self, request: str) -> str:
        """
        Downloads the resource described by `request`.

        Args:
            request: A URL, optionally prefixed by `<hex-digest>@`.

        Returns:
            The local file path, or an empty string if the URL could not be
            parsed and nothing was attempted.

        Raises:
            TransferError: If the download engine fails.
        """
        self.logger.debug(f"Execute {request}")
        self.peer_cache.ensure()

        url, hash_hex = resolve_request(request, self.config.hash_value)
        algo = resolve_algo(self.config.hash_algo, hash_hex, self.config.peer)

        self._steps = set()
        outcome = ExecutionOutcome(request, url, hash_hex, algo)
        self.last_outcome = outcome

        transfer = self._build_transfer_config(url, hash_hex, algo)
        try:
            uri = parse_uri(url)
            if uri is None:
                self.logger.debug(f"Execute: invalid URL '{url}'")
                self.to_console(f"[red]✗ Invalid URL:[/red] {escape(url)}")
                return ""

            connection = await self.connections.acquire(uri, self.config.options)
            try:
                result = await self.engine.transfer(
                    connection, str(uri), self.config.dest_file, transfer
                )
            except TransferError as e:
                self.logger.debug(f"Execute: {type(e).__name__} for {url}: {e}")
                raise
        finally:
            if isinstance(transfer.on_progress, ConsoleProgress):
                transfer.on_progress.close()

        self._steps = result.steps
        outcome.path = result.path
        outcome.steps = result.steps
        self.logger.debug(
            f"Execute: result={result.path} [{format_steps(result.steps)}]"
        )
        return result.path

    def _build_transfer_config(
        self, url: str, hash_hex: str, algo: HashAlgo
    ) -> TransferConfig:
        config = self.config
        transfer = TransferConfig(
            resume=not config.no_resume,
            header=config.header,
            hash_from_server=not hash_hex and algo is not HashAlgo.AUTO,
            limit_bandwidth=config.options.limit_bandwidth_mb << 20,
            timeout=config.options.whole_request_timeout,
        )

        if self.on_progress is not None:
            transfer.on_progress = self.on_progress
        elif not config.silent and algo is not HashAlgo.AUTO:
            transfer.on_progress = ConsoleProgress(
                Path(url).name or url, console=self.console
            )

        if config.log_steps and self.log_sink is not None:
            transfer.log_steps = self.log_sink.debug

        if algo is not HashAlgo.AUTO:
            transfer.hash_algo = algo
            transfer.hasher = algo.hasher()
            transfer.hash_value = hash_hex

        if config.cache:
            cache_dir = Path(config.cache_folder)
            cache_dir.mkdir(parents=True, exist_ok=True)
            transfer.cache_dir = cache_dir
            transfer.cache_max_age_days = config.cache_max_age_days

        if config.peer:
            transfer.alternate = self.peer_cache.handle
            transfer.alternate_options = set(config.peer_request)

        return transfer

    async def close(self) -> None:
        """Frees the connection and the peer cache, then wipes both secrets."""
        if self._closed:
            return
        self._closed = True
        try:
            await self.connections.close()
            self.peer_cache.close()
        finally:
            self.config.peer_secret.wipe()
            self.config.peer_secret_hex.wipe()

    async def __aenter__(self) -> "DownloadOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
