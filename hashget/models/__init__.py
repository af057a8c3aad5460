"""
Data Models Layer.

This package contains the Pydantic configuration models and the dataclasses
exchanged between the orchestrator and the download engine.
"""

from .config import (
    CONFIG_FIELDS,
    PeerCacheSettings,
    PeerRequestOption,
    ProcessConfig,
    RequestOptions,
    TlsSettings,
    build_config,
)
from .outcome import ExecutionOutcome, TransferConfig, TransferResult, TransferStep

__all__ = [
    "CONFIG_FIELDS",
    "ExecutionOutcome",
    "PeerCacheSettings",
    "PeerRequestOption",
    "ProcessConfig",
    "RequestOptions",
    "TlsSettings",
    "TransferConfig",
    "TransferResult",
    "TransferStep",
    "build_config",
]
