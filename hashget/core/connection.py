"""
Keeps at most one reusable HTTP connection to the current origin.
"""

import logging
import ssl
from dataclasses import dataclass

import aiohttp
from yarl import URL

from hashget.models.config import RequestOptions
from hashget.models.outcome import KEEP_ALIVE_SECONDS

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionKey:
    """
    Everything that affects the socket or the TLS session of a connection.

    Redirect count, custom header and whole-request timeout are applied per
    request and are not part of the key.
    """

    scheme: str
    host: str
    port: int | None
    proxy: str
    connect_timeout: int
    tls: ssl.SSLContext | None

    @classmethod
    def from_uri(
        cls, uri: URL, options: RequestOptions, tls: ssl.SSLContext | None
    ) -> "ConnectionKey":
        return cls(
            scheme=uri.scheme,
            host=(uri.host or "").lower(),
            port=uri.port,
            proxy=options.proxy,
            connect_timeout=options.connect_timeout,
            tls=tls if uri.scheme == "https" else None,
        )


def _make_trace_config(logger: logging.Logger) -> aiohttp.TraceConfig:
    """Routes request events of a session to the given logger."""
    trace_config = aiohttp.TraceConfig()

    async def on_request_start(session, ctx, params):
        logger.debug(f"HTTP {params.method} {params.url}")

    async def on_request_end(session, ctx, params):
        logger.debug(
            f"HTTP {params.method} {params.url} -> {params.response.status}"
        )

    async def on_connection_create_end(session, ctx, params):
        logger.debug("HTTP connection established")

    trace_config.on_request_start.append(on_request_start)
    trace_config.on_request_end.append(on_request_end)
    trace_config.on_connection_create_end.append(on_connection_create_end)
    return trace_config


class ClientConnection:
    """An aiohttp session bound to one origin and one set of open options."""

    def __init__(
        self,
        key: ConnectionKey,
        options: RequestOptions,
        logger: logging.Logger | None = None,
    ):
        self.key = key
        self.options = options
        connector = aiohttp.TCPConnector(
            limit_per_host=2,
            ttl_dns_cache=600,
            keepalive_timeout=KEEP_ALIVE_SECONDS,
            enable_cleanup_closed=True,
            force_close=False,
            ssl=key.tls if key.tls is not None else True,
        )
        timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=options.connect_timeout or None
        )
        self.session = aiohttp.ClientSession(
            connector=connector,
            timeout=timeout,
            trace_configs=[_make_trace_config(logger)] if logger else None,
        )

    @property
    def closed(self) -> bool:
        return self.session.closed

    def same_open_options(self, key: ConnectionKey) -> bool:
        return not self.closed and self.key == key

    async def close(self) -> None:
        if not self.session.closed:
            await self.session.close()


class ConnectionManager:
    """Owns the current connection; replacing it closes the previous one."""

    def __init__(
        self,
        client_tls: ssl.SSLContext | None = None,
        logger: logging.Logger | None = None,
    ):
        self.client_tls = client_tls
        self.logger = logger
        self._connection: ClientConnection | None = None

    @property
    def connection(self) -> ClientConnection | None:
        return self._connection

    async def acquire(self, uri: URL, options: RequestOptions) -> ClientConnection:
        """
        Returns a connection able to serve `uri` with `options`.

        The current connection is reused when its key matches; otherwise it is
        closed and a new one is opened.
        """
        key = ConnectionKey.from_uri(uri, options, self.client_tls)
        if self._connection is not None:
            if self._connection.same_open_options(key):
                log.debug(f"Reusing connection to {key.host}:{key.port}")
                self._connection.options = options
                return self._connection
            await self.close()

        log.debug(f"Opening connection to {key.scheme}://{key.host}:{key.port}")
        self._connection = ClientConnection(key, options, self.logger)
        return self._connection

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
