"""
The HTTP download engine: streams a resource to disk with resume, digest
verification, bandwidth capping, a local hash cache and an optional peer-cache
alternate source.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any, Protocol

import aiofiles
import aiohttp
from pathvalidate import sanitize_filename
from yarl import URL

from hashget.exceptions import (
    HashMismatchError,
    TransferAbortedError,
    TransferError,
    TransferTimeoutError,
)
from hashget.media.hashing import HASH_CHUNK_SIZE, HashAlgo, digest_matches, is_hex
from hashget.models.outcome import TransferConfig, TransferResult, TransferStep
from hashget.storage.cache import HashCache

if TYPE_CHECKING:
    from hashget.core.connection import ClientConnection

log = logging.getLogger(__name__)

DEFAULT_FILE_NAME = "index.html"


class DownloadEngine(Protocol):
    """Performs the actual transfer described by a TransferConfig."""

    async def transfer(
        self,
        connection: "ClientConnection",
        address: str,
        destination: str,
        config: TransferConfig,
    ) -> TransferResult: ...


def destination_from_url(url: URL) -> str:
    """Derives a safe local file name from the last segment of a URL path."""
    name = sanitize_filename(PurePosixPath(url.path).name)
    return name or DEFAULT_FILE_NAME


def parse_header_lines(header: str) -> dict[str, str]:
    """Turns 'Name: value' lines into a header dictionary."""
    headers = {}
    for line in header.splitlines():
        name, sep, value = line.partition(":")
        if sep and name.strip():
            headers[name.strip()] = value.strip()
    return headers


def _valid_content_range(header: str | None, start_offset: int) -> bool:
    """True if a Content-Range header starts exactly at `start_offset`."""
    if not header or not header.startswith("bytes "):
        return False
    try:
        span = header.split(" ", 1)[1].split("/", 1)[0]
        return int(span.split("-", 1)[0]) == start_offset
    except ValueError:
        return False


def _total_size(headers: Any, status: int, offset: int) -> int:
    """Total size of the resource, or 0 when the server does not say."""
    content_range = headers.get("Content-Range")
    if content_range and "/" in content_range:
        total = content_range.split("/", 1)[1]
        if total.isdigit():
            return int(total)
    content_length = headers.get("Content-Length")
    if content_length and content_length.isdigit():
        length = int(content_length)
        return offset + length if status == 206 else length
    return 0


def _hash_file_into(path: Path, hasher: Any) -> None:
    with open(path, "rb") as f:
        while chunk := f.read(HASH_CHUNK_SIZE):
            hasher.update(chunk)


class HttpDownloadEngine:
    """A file downloader with retry logic, resume and verification."""

    CHUNK_SIZE = 131072  # 128 KB

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.5):
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    async def transfer(
        self,
        connection: "ClientConnection",
        address: str,
        destination: str,
        config: TransferConfig,
    ) -> TransferResult:
        """
        Downloads `address` to `destination` as described by `config`.

        Returns:
            The final path and the set of steps that happened.

        Raises:
            TransferError: On HTTP errors, exhausted retries, digest mismatch,
            timeout or abort by the progress callback.
        """
        url = URL(address)
        dest = Path(destination) if destination else Path(destination_from_url(url))
        steps: set[TransferStep] = set()

        if config.timeout > 0:
            try:
                await asyncio.wait_for(
                    self._transfer(connection, url, dest, config, steps),
                    timeout=config.timeout,
                )
            except asyncio.TimeoutError as e:
                raise TransferTimeoutError(
                    f"Transfer of '{url}' did not finish within {config.timeout}s."
                ) from e
        else:
            await self._transfer(connection, url, dest, config, steps)

        return TransferResult(str(dest), steps)

    async def _transfer(
        self,
        connection: "ClientConnection",
        url: URL,
        dest: Path,
        config: TransferConfig,
        steps: set[TransferStep],
    ) -> None:
        algo = config.hash_algo
        digest = config.hash_value.lower()

        if not digest and config.hash_from_server and algo is not HashAlgo.AUTO:
            digest = await self._hash_from_server(connection, url, algo, config)
            if digest:
                steps.add(TransferStep.HASH_FROM_SERVER)

        cache = None
        if config.cache_dir is not None and digest:
            cache = HashCache(config.cache_dir, config.cache_max_age_days)
            await asyncio.to_thread(cache.cleanup_expired)
            if await self._from_cache(cache, algo, digest, dest, config):
                steps.add(TransferStep.CACHE_HIT)
                steps.add(TransferStep.VERIFIED)
                return

        dest.parent.mkdir(parents=True, exist_ok=True)
        part = dest.with_name(dest.name + ".part")

        if digest and config.alternate is not None and await self._from_peer(
            algo, digest, part, config
        ):
            steps.add(TransferStep.PEER_HIT)
            steps.add(TransferStep.VERIFIED)
        else:
            await self._download(connection, url, part, algo, digest, config, steps)
            steps.add(TransferStep.DOWNLOADED)

        os.replace(part, dest)
        config.log_step(f"Saved '{dest}'")

        if cache is not None and await asyncio.to_thread(cache.put, digest, dest):
            steps.add(TransferStep.CACHED)

    async def _hash_from_server(
        self,
        connection: "ClientConnection",
        url: URL,
        algo: HashAlgo,
        config: TransferConfig,
    ) -> str:
        """Fetches the digest a server publishes next to the resource."""
        hash_url = url.with_path(url.path + algo.side_file_suffix)
        config.log_step(f"Requesting digest from {hash_url}")
        try:
            async with connection.session.get(
                hash_url,
                headers=parse_header_lines(config.header),
                proxy=connection.options.proxy or None,
            ) as response:
                if response.status != 200:
                    return ""
                tokens = (await response.text()).split()
        except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
            log.debug(f"No digest available from server for '{url}': {e}")
            return ""
        if tokens and is_hex(tokens[0]) and len(tokens[0]) // 2 == algo.digest_size:
            return tokens[0].lower()
        return ""

    async def _from_cache(
        self,
        cache: HashCache,
        algo: HashAlgo,
        digest: str,
        dest: Path,
        config: TransferConfig,
    ) -> bool:
        cached = cache.get(digest)
        if cached is None:
            return False
        config.log_step(f"Found {digest} in local cache")
        if not await asyncio.to_thread(digest_matches, cached, algo, digest):
            log.warning(f"Cached entry '{cached.name}' is corrupted, discarding it.")
            cache.discard(digest)
            return False
        dest.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, cached, dest)
        return True

    async def _from_peer(
        self,
        algo: HashAlgo,
        digest: str,
        part: Path,
        config: TransferConfig,
    ) -> bool:
        config.log_step(f"Asking peers for {digest}")
        try:
            found = await config.alternate.fetch(
                algo, digest, part, config.alternate_options
            )
        except Exception as e:
            log.debug(f"Peer-cache lookup failed: {e}")
            found = False
        if not found:
            return False
        if await asyncio.to_thread(digest_matches, part, algo, digest):
            return True
        log.warning("Content received from a peer did not match its digest.")
        part.unlink(missing_ok=True)
        return False

    async def _download(
        self,
        connection: "ClientConnection",
        url: URL,
        part: Path,
        algo: HashAlgo,
        digest: str,
        config: TransferConfig,
        steps: set[TransferStep],
    ) -> None:
        """Streams from the origin server, retrying transient failures."""
        last_exception = None
        computed = ""
        for attempt in range(1, self.max_attempts + 1):
            try:
                computed = await self._stream(connection, url, part, config, steps)
                break
            except aiohttp.ClientResponseError as e:
                raise TransferError(
                    f"HTTP {e.status} {e.message} for '{url}'"
                ) from e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e
                log.debug(
                    f"Download attempt {attempt}/{self.max_attempts} for "
                    f"'{part.name}' failed: {e!r}. Retrying..."
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.base_delay * (2 ** (attempt - 1)))
        else:
            raise TransferError(
                f"Download of '{url}' failed after {self.max_attempts} attempts: "
                f"{last_exception!r}"
            ) from last_exception

        if digest and algo is not HashAlgo.AUTO:
            config.log_step(f"Verifying {algo.value} digest")
            if not computed:
                matches = await asyncio.to_thread(digest_matches, part, algo, digest)
            else:
                matches = computed == digest
            if not matches:
                part.unlink(missing_ok=True)
                raise HashMismatchError(
                    f"Downloaded content of '{url}' does not match "
                    f"{algo.value} digest {digest}."
                )
            steps.add(TransferStep.VERIFIED)

    def _request_headers(self, config: TransferConfig) -> dict[str, str]:
        headers = {
            "Connection": "keep-alive",
            "Keep-Alive": f"timeout={int(config.keep_alive)}",
        }
        headers.update(parse_header_lines(config.header))
        return headers

    async def _stream(
        self,
        connection: "ClientConnection",
        url: URL,
        part: Path,
        config: TransferConfig,
        steps: set[TransferStep],
        allow_range: bool = True,
    ) -> str:
        """
        Runs one GET request into the part file.

        Returns:
            The hex digest of the whole part file when a hasher is configured,
            else an empty string.
        """
        options = connection.options
        headers = self._request_headers(config)
        existing = part.stat().st_size if config.resume and part.is_file() else 0
        if existing and allow_range:
            headers["Range"] = f"bytes={existing}-"
            config.log_step(f"Resuming '{part.name}' at byte {existing}")
        else:
            existing = 0

        config.log_step(f"GET {url}")
        async with connection.session.get(
            url,
            headers=headers,
            proxy=options.proxy or None,
            allow_redirects=options.redirect_max > 0,
            max_redirects=max(options.redirect_max, 1),
        ) as response:
            resumable = (
                existing > 0
                and response.status == 206
                and _valid_content_range(
                    response.headers.get("Content-Range"), existing
                )
            )
            # A partial body that does not start where the part file ends
            # cannot be used; neither can a refused range.
            restart = existing > 0 and not resumable and response.status in (206, 416)
            if not restart:
                response.raise_for_status()

                offset = 0
                if resumable:
                    offset = existing
                    steps.add(TransferStep.RESUMED)

                hasher = config.hasher() if config.hasher else None
                if hasher is not None and offset:
                    await asyncio.to_thread(_hash_file_into, part, hasher)

                total = _total_size(response.headers, response.status, offset)
                await self._write_body(response, part, offset, total, hasher, config)
                return hasher.hexdigest() if hasher is not None else ""

        log.debug(f"Server refused to resume '{part.name}', restarting.")
        part.unlink(missing_ok=True)
        return await self._stream(
            connection, url, part, config, steps, allow_range=False
        )

    async def _write_body(
        self,
        response: aiohttp.ClientResponse,
        part: Path,
        offset: int,
        total: int,
        hasher: Any,
        config: TransferConfig,
    ) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        done = offset
        async with aiofiles.open(part, "ab" if offset else "wb") as f:
            async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                await f.write(chunk)
                if hasher is not None:
                    hasher.update(chunk)
                done += len(chunk)

                if config.on_progress and not config.on_progress(done, total):
                    raise TransferAbortedError(f"Transfer of '{part.name}' aborted.")

                if config.limit_bandwidth > 0:
                    expected = (done - offset) / config.limit_bandwidth
                    elapsed = loop.time() - start
                    if expected > elapsed:
                        await asyncio.sleep(expected - elapsed)
        config.log_step(f"Received {done - offset} bytes ({done} total)")
