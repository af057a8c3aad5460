"""
Peer-Cache Layer.

This package defines the contract of the background peer-cache service and
how a backend implementation is located.
"""

from .service import BasePeerCache, PeerCache, PeerCacheFactory, load_peer_cache_factory

__all__ = ["BasePeerCache", "PeerCache", "PeerCacheFactory", "load_peer_cache_factory"]
