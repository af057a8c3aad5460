"""
Network interface fingerprinting, used to notice topology changes that should
restart the peer-cache service.
"""

import hashlib
import logging
import socket

log = logging.getLogger(__name__)


def _interface_names() -> list[str]:
    try:
        return sorted(name for _, name in socket.if_nameindex())
    except OSError as e:
        log.debug(f"Could not list network interfaces: {e}")
        return []


def _local_addresses() -> list[str]:
    try:
        infos = socket.getaddrinfo(socket.gethostname(), None)
    except OSError as e:
        log.debug(f"Could not resolve local addresses: {e}")
        return []
    return sorted({info[4][0] for info in infos})


def network_fingerprint() -> str:
    """
    Returns an opaque snapshot of the current interfaces and local addresses.

    Two calls return the same value as long as the network layout is stable.
    """
    parts = _interface_names() + ["|"] + _local_addresses()
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()
