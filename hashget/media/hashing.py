"""
Hash algorithm policy: guesses an algorithm from a hexadecimal digest and maps
algorithms to the hashlib handles used by the download engine.
"""

import hashlib
import logging
from collections.abc import Callable
from enum import Enum
from functools import partial
from pathlib import Path

log = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1048576  # 1 MB


class HashAlgo(str, Enum):
    """
    Supported digest algorithms.

    The declaration order matters: `guess_algo()` scans it and keeps the first
    algorithm whose digest size matches, so SHA3 variants are never selected
    from the digest length alone.
    """

    AUTO = "auto"
    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA384 = "sha384"
    SHA512 = "sha512"
    SHA3_256 = "sha3-256"
    SHA3_512 = "sha3-512"

    @property
    def digest_size(self) -> int:
        return DIGEST_SIZES.get(self, 0)

    @property
    def hashlib_name(self) -> str:
        return self.value.replace("-", "_")

    @property
    def side_file_suffix(self) -> str:
        """Suffix of the file a server publishes next to a resource, e.g. '.sha256'."""
        return "." + self.value.replace("-", "")

    def hasher(self) -> Callable[[], "hashlib._Hash"]:
        """Returns a factory creating a fresh hashlib object for this algorithm."""
        if self is HashAlgo.AUTO:
            raise ValueError("Cannot create a hasher for auto-detected algorithm.")
        return partial(hashlib.new, self.hashlib_name)


DIGEST_SIZES = {
    HashAlgo.MD5: 16,
    HashAlgo.SHA1: 20,
    HashAlgo.SHA256: 32,
    HashAlgo.SHA384: 48,
    HashAlgo.SHA512: 64,
    HashAlgo.SHA3_256: 32,
    HashAlgo.SHA3_512: 64,
}


def is_hex(value: str) -> bool:
    """True if `value` is a non-empty, even-length hexadecimal string."""
    if not value or len(value) % 2:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


def guess_algo(hex_digest: str) -> HashAlgo:
    """
    Guesses the hash algorithm from the size of a hexadecimal digest.

    Args:
        hex_digest: The digest as a hexadecimal string.

    Returns:
        The first algorithm (in declaration order) whose digest size matches,
        or HashAlgo.AUTO for empty, odd-length or unknown-size input.
    """
    if not hex_digest or len(hex_digest) % 2:
        return HashAlgo.AUTO
    size = len(hex_digest) // 2
    for algo in HashAlgo:
        if algo.digest_size == size:
            return algo
    return HashAlgo.AUTO


def resolve_algo(configured: HashAlgo, hash_hex: str, peer_enabled: bool) -> HashAlgo:
    """
    Decides which algorithm applies to a request.

    An explicit setting wins, then the size of the known digest. Peer-cache
    lookups need a content key, so they default to SHA-256. Otherwise no
    verification is done.
    """
    if configured is not HashAlgo.AUTO:
        return configured
    if hash_hex:
        return guess_algo(hash_hex)
    if peer_enabled:
        return HashAlgo.SHA256
    return HashAlgo.AUTO


def file_digest(path: Path, algo: HashAlgo, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Computes the hexadecimal digest of an existing file."""
    hasher = algo.hasher()()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def digest_matches(path: Path, algo: HashAlgo, expected_hex: str) -> bool:
    """True if the file exists and its digest equals `expected_hex`."""
    try:
        return file_digest(path, algo) == expected_hex.lower()
    except OSError as e:
        log.debug(f"Could not hash '{path}': {e}")
        return False
