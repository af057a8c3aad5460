"""
Data structures exchanged between the orchestrator and the download engine.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from hashget.media.hashing import HashAlgo

if TYPE_CHECKING:
    from hashget.models.config import PeerRequestOption
    from hashget.peer.service import PeerCache

# (bytes_done, bytes_total) -> continue?
ProgressCallback = Callable[[int, int], bool]
StepLogger = Callable[[str], None]

KEEP_ALIVE_SECONDS = 30.0


class TransferStep(str, Enum):
    """Optional phases that may happen during a transfer."""

    HASH_FROM_SERVER = "hash-from-server"
    CACHE_HIT = "cache-hit"
    PEER_HIT = "peer-hit"
    RESUMED = "resumed"
    DOWNLOADED = "downloaded"
    VERIFIED = "verified"
    CACHED = "cached"


def format_steps(steps: set[TransferStep]) -> str:
    """Human-readable, stable rendering of a set of steps."""
    return ", ".join(sorted(step.value for step in steps))


@dataclass
class TransferConfig:
    """Fully resolved parameters of one transfer, built per request."""

    keep_alive: float = KEEP_ALIVE_SECONDS
    resume: bool = True
    header: str = ""
    hash_from_server: bool = False
    on_progress: ProgressCallback | None = None
    log_steps: StepLogger | None = None
    hash_algo: HashAlgo = HashAlgo.AUTO
    hasher: Callable[[], Any] | None = None
    hash_value: str = ""
    limit_bandwidth: int = 0  # bytes per second
    timeout: int = 0  # seconds
    cache_dir: Path | None = None
    cache_max_age_days: int = 0  # 0 = entries never expire
    alternate: "PeerCache | None" = None
    alternate_options: "set[PeerRequestOption]" = field(default_factory=set)

    def log_step(self, message: str) -> None:
        if self.log_steps:
            self.log_steps(message)


@dataclass
class TransferResult:
    """What the download engine reports back."""

    path: str
    steps: set[TransferStep] = field(default_factory=set)


@dataclass
class ExecutionOutcome:
    """Outcome of one orchestrator call; `path` is empty if nothing started."""

    request: str
    url: str = ""
    hash_value: str = ""
    hash_algo: HashAlgo = HashAlgo.AUTO
    path: str = ""
    steps: set[TransferStep] = field(default_factory=set)

    @property
    def started(self) -> bool:
        return bool(self.path)
