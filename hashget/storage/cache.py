"""
A content-addressed file cache: verified downloads are stored under their
digest so the same content is never fetched twice.
"""

import logging
import os
import shutil
import time
from pathlib import Path

log = logging.getLogger(__name__)


class HashCache:
    """
    Manages a directory of files named after their lower-case hex digest,
    with optional expiry.
    """

    def __init__(self, cache_dir: Path, max_age_days: int = 0):
        """
        Initializes the cache, creating its directory if missing.

        Args:
            cache_dir: The directory where cached files are stored.
            max_age_days: Entries older than this are dropped; 0 keeps them forever.
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_days * 86400

    def _entry_path(self, digest: str) -> Path:
        return self.cache_dir / digest.lower()

    def _is_expired(self, path: Path, now: float) -> bool:
        return (
            self.max_age_seconds > 0
            and now - path.stat().st_mtime > self.max_age_seconds
        )

    def get(self, digest: str) -> Path | None:
        """
        Returns the path of the cached content, or None if absent or expired.
        """
        path = self._entry_path(digest)
        if not path.is_file():
            return None
        try:
            if self._is_expired(path, time.time()):
                path.unlink()
                return None
        except OSError as e:
            log.debug(f"Cache lookup failed for '{digest}': {e}")
            return None
        return path

    def put(self, digest: str, source: Path) -> bool:
        """
        Copies `source` into the cache under `digest`.
        """
        path = self._entry_path(digest)
        temp_path = path.with_suffix(".tmp")
        try:
            shutil.copyfile(source, temp_path)
            os.replace(temp_path, path)
            return True
        except OSError as e:
            log.warning(f"Cache write failed for '{digest}': {e}")
            if temp_path.exists():
                temp_path.unlink()
            return False

    def discard(self, digest: str) -> None:
        """Removes one entry, e.g. after it failed verification."""
        try:
            self._entry_path(digest).unlink(missing_ok=True)
        except OSError as e:
            log.debug(f"Could not remove cache entry '{digest}': {e}")

    def cleanup_expired(self) -> int:
        """Scans the cache directory and removes expired files."""
        if self.max_age_seconds <= 0:
            return 0
        now = time.time()
        cleaned_count = 0
        for cache_file in self.cache_dir.iterdir():
            try:
                if cache_file.is_file() and self._is_expired(cache_file, now):
                    cache_file.unlink()
                    cleaned_count += 1
            except OSError as e:
                log.warning(
                    f"Failed to remove expired cache file {cache_file.name}: {e}"
                )
        if cleaned_count > 0:
            log.debug(f"Cache cleanup: removed {cleaned_count} expired entries.")
        return cleaned_count

    def entries(self) -> list[Path]:
        return [p for p in self.cache_dir.iterdir() if p.is_file()]

    def clear(self) -> bool:
        """Removes all items from the cache."""
        log.info("Clearing all cache entries...")
        try:
            for cache_file in self.entries():
                cache_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear cache: {e}")
            return False
