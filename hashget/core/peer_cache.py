"""
Owns the optional background peer-cache handle and keeps it current.
"""

import logging
import ssl
from dataclasses import dataclass

from hashget.models.config import ProcessConfig
from hashget.peer.service import PeerCache, PeerCacheFactory, configured_factory
from hashget.utils.secrets import SecretBuffer
from hashget.utils.tls import build_server_context

log = logging.getLogger(__name__)

PEER_CACHE_WORKERS = 2


@dataclass
class PeerCacheCreated:
    handle: PeerCache


@dataclass
class PeerCacheRetryable:
    reason: str


CreateResult = PeerCacheCreated | PeerCacheRetryable


class PeerCacheLifecycle:
    """
    State machine around one peer-cache handle.

    States:
    - Absent: no handle; the next `ensure()` tries to create one
    - Active: a handle runs in the background between calls

    A failed creation leaves the state Absent and is retried on the next
    `ensure()`. Peer support is never switched off by a failure.
    """

    def __init__(
        self,
        config: ProcessConfig,
        factory: PeerCacheFactory | None = None,
        client_tls: ssl.SSLContext | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.factory = factory or configured_factory
        self.client_tls = client_tls
        self.logger = logger
        self._handle: PeerCache | None = None

    @property
    def handle(self) -> PeerCache | None:
        return self._handle

    @property
    def active(self) -> bool:
        return self._handle is not None

    def ensure(self) -> PeerCache | None:
        """
        Makes sure a current handle exists when peer support is enabled.

        Returns:
            The active handle, or None if disabled or creation failed.
        """
        if not self.config.peer:
            return None

        if (
            self._handle is not None
            and self.config.track_network
            and self._handle.network_interface_changed()
        ):
            log.debug("Network interfaces changed: restarting the peer cache.")
            self.discard()

        if self._handle is None:
            result = self.create()
            if isinstance(result, PeerCacheCreated):
                self._handle = result.handle
                log.debug("Peer cache started.")
            else:
                log.debug(f"Peer cache not started ({result.reason}): will retry.")

        return self._handle

    def create(self) -> CreateResult:
        """
        Tries to build a new handle from the current settings.

        The server TLS context is built here, so bad certificate material only
        makes this attempt retryable.
        """
        secret = self._raw_secret()
        try:
            server_tls = build_server_context(self.config.server_tls)
            handle = self.factory(
                self.config.peer_settings,
                bytes(secret.raw),
                server_tls,
                self.client_tls,
                PEER_CACHE_WORKERS,
                self.logger,
            )
        except Exception as e:
            return PeerCacheRetryable(f"{type(e).__name__}: {e}")
        return PeerCacheCreated(handle)

    def _raw_secret(self) -> SecretBuffer:
        """The raw secret, decoded from its hex form on first use if needed."""
        config = self.config
        if not config.peer_secret and config.peer_secret_hex:
            decoded = config.peer_secret_hex.from_hex()
            config.peer_secret.set(decoded.raw)
            decoded.wipe()
        return config.peer_secret

    def discard(self) -> None:
        """Stops and forgets the current handle, if any."""
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            log.debug(f"Error while closing the peer cache: {e}")

    def close(self) -> None:
        self.discard()
