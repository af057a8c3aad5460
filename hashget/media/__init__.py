"""
Media Transfer Layer.

This package is responsible for the byte-level transfer of a resource and its
integrity: hash algorithm policy, digest verification and the HTTP download
engine (`hashget.media.downloader`).
"""

from .hashing import HashAlgo, guess_algo, resolve_algo

__all__ = ["HashAlgo", "guess_algo", "resolve_algo"]
