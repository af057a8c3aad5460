"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class HashgetError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(HashgetError):
    """Raised for issues related to configuration loading or validation."""


class PeerCacheError(HashgetError):
    """Raised when the peer-cache background service cannot be created."""


class TransferError(HashgetError):
    """Raised by the download engine when a transfer cannot be completed."""


class HashMismatchError(TransferError):
    """Raised when downloaded content does not match the expected digest."""


class TransferTimeoutError(TransferError):
    """Raised when the whole-request timeout expires before the transfer ends."""


class TransferAbortedError(TransferError):
    """Raised when the progress callback asks to stop the transfer."""
