"""
Contract of the peer-cache service, a base class for backends, and the loader
resolving the configured backend.
"""

import importlib
import logging
import ssl
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

from hashget.exceptions import PeerCacheError
from hashget.media.hashing import HashAlgo
from hashget.models.config import PeerCacheSettings, PeerRequestOption
from hashget.utils.network import network_fingerprint

log = logging.getLogger(__name__)


@runtime_checkable
class PeerCache(Protocol):
    """A background service that can supply content by digest."""

    def network_interface_changed(self) -> bool:
        """True if the network layout changed since the service was created."""
        ...

    async def fetch(
        self,
        algo: HashAlgo,
        digest: str,
        destination: Path,
        options: set[PeerRequestOption],
    ) -> bool:
        """Writes the content identified by `digest` to `destination` if a peer has it."""
        ...

    def close(self) -> None:
        """Stops the background workers."""
        ...


PeerCacheFactory = Callable[
    [
        PeerCacheSettings,
        bytes,
        ssl.SSLContext | None,
        ssl.SSLContext | None,
        int,
        logging.Logger | None,
    ],
    PeerCache,
]


class BasePeerCache:
    """
    Shared plumbing for peer-cache backends.

    Records the network fingerprint at creation so that
    `network_interface_changed()` can compare it against the current one.
    """

    def __init__(
        self,
        settings: PeerCacheSettings,
        secret: bytes,
        server_tls: ssl.SSLContext | None = None,
        client_tls: ssl.SSLContext | None = None,
        workers: int = 2,
        logger: logging.Logger | None = None,
    ):
        self.settings = settings
        self.server_tls = server_tls
        self.client_tls = client_tls
        self.workers = workers
        self.log = logger or log
        self._secret = bytearray(secret)
        self._fingerprint = network_fingerprint()
        self.closed = False

    def network_interface_changed(self) -> bool:
        return network_fingerprint() != self._fingerprint

    async def fetch(
        self,
        algo: HashAlgo,
        digest: str,
        destination: Path,
        options: set[PeerRequestOption],
    ) -> bool:
        return False

    def close(self) -> None:
        for i in range(len(self._secret)):
            self._secret[i] = 0
        self.closed = True


def load_peer_cache_factory(backend: str) -> PeerCacheFactory:
    """
    Resolves a backend reference of the form 'package.module:factory'.

    Raises:
        PeerCacheError: If the reference is empty, malformed or cannot be imported.
    """
    if not backend:
        raise PeerCacheError("No peer-cache backend is configured.")
    module_name, sep, attr = backend.partition(":")
    if not sep or not module_name or not attr:
        raise PeerCacheError(
            f"Invalid peer-cache backend '{backend}', expected 'module:factory'."
        )
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise PeerCacheError(f"Cannot load peer-cache backend '{backend}': {e}") from e
    if not callable(factory):
        raise PeerCacheError(f"Peer-cache backend '{backend}' is not callable.")
    return factory


def configured_factory(
    settings: PeerCacheSettings,
    secret: bytes,
    server_tls: ssl.SSLContext | None,
    client_tls: ssl.SSLContext | None,
    workers: int,
    logger: logging.Logger | None,
) -> PeerCache:
    """Default factory: builds the backend named in `settings.backend`."""
    factory = load_peer_cache_factory(settings.backend)
    return factory(settings, secret, server_tls, client_tls, workers, logger)
