import hashlib
import os
import time

import pytest
from yarl import URL

from conftest import CONTENT, CONTENT_SHA1, CONTENT_SHA256
from hashget.core.connection import ConnectionManager
from hashget.exceptions import (
    HashMismatchError,
    TransferAbortedError,
    TransferError,
    TransferTimeoutError,
)
from hashget.media.downloader import (
    HttpDownloadEngine,
    _total_size,
    _valid_content_range,
    destination_from_url,
    parse_header_lines,
)
from hashget.media.hashing import HashAlgo
from hashget.models.config import RequestOptions
from hashget.models.outcome import TransferConfig, TransferStep


def sha256_config(**kwargs) -> TransferConfig:
    kwargs.setdefault("hash_value", CONTENT_SHA256)
    return TransferConfig(
        hash_algo=HashAlgo.SHA256, hasher=HashAlgo.SHA256.hasher(), **kwargs
    )


async def run_transfer(server, path, destination, config, engine=None):
    manager = ConnectionManager()
    url = server.make_url(path)
    try:
        connection = await manager.acquire(url, RequestOptions())
        engine = engine or HttpDownloadEngine(base_delay=0)
        return await engine.transfer(connection, str(url), str(destination), config)
    finally:
        await manager.close()


def test_destination_from_url():
    assert destination_from_url(URL("http://a/dir/file.iso?x=1")) == "file.iso"
    assert destination_from_url(URL("http://a/")) == "index.html"


def test_parse_header_lines():
    assert parse_header_lines("X-A: 1\r\nbad line\r\nX-B:two") == {
        "X-A": "1",
        "X-B": "two",
    }


def test_content_range_checks():
    assert _valid_content_range("bytes 100-199/200", 100)
    assert not _valid_content_range("bytes 0-199/200", 100)
    assert not _valid_content_range("items 100-199/200", 100)
    assert not _valid_content_range(None, 100)


def test_total_size():
    assert _total_size({"Content-Range": "bytes 10-19/20"}, 206, 10) == 20
    assert _total_size({"Content-Length": "10"}, 206, 10) == 20
    assert _total_size({"Content-Length": "10"}, 200, 0) == 10
    assert _total_size({}, 200, 0) == 0


@pytest.mark.asyncio
async def test_plain_download_without_verification(file_server, tmp_path):
    server, _ = file_server
    dest = tmp_path / "out.bin"

    result = await run_transfer(server, "/file.bin", dest, TransferConfig())

    assert result.path == str(dest)
    assert result.steps == {TransferStep.DOWNLOADED}
    assert dest.read_bytes() == CONTENT
    assert not (tmp_path / "out.bin.part").exists()


@pytest.mark.asyncio
async def test_download_is_verified(file_server, tmp_path):
    server, state = file_server
    dest = tmp_path / "out.bin"
    steps_logged = []

    result = await run_transfer(
        server, "/file.bin", dest, sha256_config(log_steps=steps_logged.append)
    )

    assert result.steps == {TransferStep.DOWNLOADED, TransferStep.VERIFIED}
    assert dest.read_bytes() == CONTENT
    assert steps_logged
    assert state["requests"][0]["Connection"] == "keep-alive"


@pytest.mark.asyncio
async def test_custom_headers_are_sent(file_server, tmp_path):
    server, state = file_server
    await run_transfer(
        server,
        "/file.bin",
        tmp_path / "out.bin",
        TransferConfig(header="X-Token: abc\r\nX-Other: 1"),
    )
    assert state["requests"][0]["X-Token"] == "abc"
    assert state["requests"][0]["X-Other"] == "1"


@pytest.mark.asyncio
async def test_digest_mismatch_removes_partial_file(file_server, tmp_path):
    server, _ = file_server
    dest = tmp_path / "out.bin"

    with pytest.raises(HashMismatchError):
        await run_transfer(server, "/file.bin", dest, sha256_config(hash_value="00" * 32))

    assert not dest.exists()
    assert not (tmp_path / "out.bin.part").exists()


@pytest.mark.asyncio
async def test_partial_file_is_resumed(file_server, tmp_path):
    server, state = file_server
    dest = tmp_path / "out.bin"
    (tmp_path / "out.bin.part").write_bytes(CONTENT[:1000])

    result = await run_transfer(server, "/file.bin", dest, sha256_config())

    assert TransferStep.RESUMED in result.steps
    assert TransferStep.VERIFIED in result.steps
    assert state["requests"][0]["Range"] == "bytes=1000-"
    assert dest.read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_resume_disabled_restarts_from_zero(file_server, tmp_path):
    server, state = file_server
    dest = tmp_path / "out.bin"
    (tmp_path / "out.bin.part").write_bytes(b"garbage")

    result = await run_transfer(server, "/file.bin", dest, sha256_config(resume=False))

    assert TransferStep.RESUMED not in result.steps
    assert "Range" not in state["requests"][0]
    assert dest.read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_server_ignoring_range_restarts_download(file_server, tmp_path):
    server, state = file_server
    state["ranges"] = False
    dest = tmp_path / "out.bin"
    (tmp_path / "out.bin.part").write_bytes(CONTENT[:1000])

    result = await run_transfer(server, "/file.bin", dest, sha256_config())

    assert TransferStep.RESUMED not in result.steps
    assert dest.read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_unsatisfiable_range_restarts_download(file_server, tmp_path):
    server, state = file_server
    dest = tmp_path / "out.bin"
    (tmp_path / "out.bin.part").write_bytes(CONTENT + b"extra")

    result = await run_transfer(server, "/file.bin", dest, sha256_config())

    assert len(state["requests"]) == 2
    assert "Range" not in state["requests"][1]
    assert TransferStep.VERIFIED in result.steps
    assert dest.read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_digest_is_fetched_from_server(file_server, tmp_path):
    server, state = file_server
    config = sha256_config(hash_value="", hash_from_server=True)

    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert state["digest_requests"] == 1
    assert TransferStep.HASH_FROM_SERVER in result.steps
    assert TransferStep.VERIFIED in result.steps


@pytest.mark.asyncio
async def test_missing_side_file_downloads_unverified(file_server, tmp_path):
    server, _ = file_server
    config = TransferConfig(
        hash_algo=HashAlgo.SHA1,
        hasher=HashAlgo.SHA1.hasher(),
        hash_from_server=True,
    )

    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert TransferStep.HASH_FROM_SERVER not in result.steps
    assert result.steps == {TransferStep.DOWNLOADED}


@pytest.mark.asyncio
async def test_verified_download_is_cached_then_served_from_cache(file_server, tmp_path):
    server, state = file_server
    cache_dir = tmp_path / "cache"

    first = await run_transfer(
        server, "/file.bin", tmp_path / "a.bin", sha256_config(cache_dir=cache_dir)
    )
    second = await run_transfer(
        server, "/file.bin", tmp_path / "b.bin", sha256_config(cache_dir=cache_dir)
    )

    assert TransferStep.CACHED in first.steps
    assert second.steps == {TransferStep.CACHE_HIT, TransferStep.VERIFIED}
    assert len(state["requests"]) == 1
    assert (tmp_path / "b.bin").read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_corrupted_cache_entry_is_replaced(file_server, tmp_path):
    server, state = file_server
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / CONTENT_SHA256).write_bytes(b"corrupted")

    result = await run_transfer(
        server, "/file.bin", tmp_path / "out.bin", sha256_config(cache_dir=cache_dir)
    )

    assert TransferStep.CACHE_HIT not in result.steps
    assert TransferStep.CACHED in result.steps
    assert (cache_dir / CONTENT_SHA256).read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_expired_cache_entries_are_dropped(file_server, tmp_path):
    server, state = file_server
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    stale = time.time() - 3 * 86400
    for name in (CONTENT_SHA256, "0" * 64):
        (cache_dir / name).write_bytes(CONTENT)
        os.utime(cache_dir / name, (stale, stale))

    config = sha256_config(cache_dir=cache_dir, cache_max_age_days=1)
    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert TransferStep.CACHE_HIT not in result.steps
    assert {TransferStep.DOWNLOADED, TransferStep.CACHED} <= result.steps
    assert len(state["requests"]) == 1
    assert not (cache_dir / ("0" * 64)).exists()
    assert (cache_dir / CONTENT_SHA256).stat().st_mtime > stale


@pytest.mark.asyncio
async def test_fresh_cache_entries_survive_expiry(file_server, tmp_path):
    server, state = file_server
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / CONTENT_SHA256).write_bytes(CONTENT)

    config = sha256_config(cache_dir=cache_dir, cache_max_age_days=1)
    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert result.steps == {TransferStep.CACHE_HIT, TransferStep.VERIFIED}
    assert state["requests"] == []


class StubPeer:
    def __init__(self, payload: bytes | None):
        self.payload = payload
        self.asked = []

    def network_interface_changed(self) -> bool:
        return False

    async def fetch(self, algo, digest, destination, options) -> bool:
        self.asked.append((algo, digest, options))
        if self.payload is None:
            return False
        destination.write_bytes(self.payload)
        return True

    def close(self) -> None:
        pass


@pytest.mark.asyncio
async def test_peer_hit_skips_the_origin(file_server, tmp_path):
    server, state = file_server
    peer = StubPeer(CONTENT)
    config = sha256_config(alternate=peer, alternate_options={"try_last_peer"})

    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert result.steps == {TransferStep.PEER_HIT, TransferStep.VERIFIED}
    assert state["requests"] == []
    assert peer.asked == [(HashAlgo.SHA256, CONTENT_SHA256, {"try_last_peer"})]


@pytest.mark.asyncio
async def test_bad_peer_content_falls_back_to_origin(file_server, tmp_path):
    server, state = file_server
    config = sha256_config(alternate=StubPeer(b"wrong"))

    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)

    assert TransferStep.PEER_HIT not in result.steps
    assert TransferStep.DOWNLOADED in result.steps
    assert len(state["requests"]) == 1
    assert (tmp_path / "out.bin").read_bytes() == CONTENT


@pytest.mark.asyncio
async def test_progress_callback_can_abort(file_server, tmp_path):
    server, _ = file_server
    seen = []

    def on_progress(done: int, total: int) -> bool:
        seen.append((done, total))
        return False

    with pytest.raises(TransferAbortedError):
        await run_transfer(
            server,
            "/file.bin",
            tmp_path / "out.bin",
            TransferConfig(on_progress=on_progress),
        )

    assert seen[0][1] == len(CONTENT)
    assert not (tmp_path / "out.bin").exists()


@pytest.mark.asyncio
async def test_progress_reports_completion(file_server, tmp_path):
    server, _ = file_server
    seen = []

    await run_transfer(
        server,
        "/file.bin",
        tmp_path / "out.bin",
        TransferConfig(on_progress=lambda done, total: seen.append(done) or True),
    )

    assert seen[-1] == len(CONTENT)


@pytest.mark.asyncio
async def test_http_error_is_a_transfer_error(file_server, tmp_path):
    server, _ = file_server
    with pytest.raises(TransferError, match="404"):
        await run_transfer(server, "/missing.bin", tmp_path / "out.bin", TransferConfig())


@pytest.mark.asyncio
async def test_whole_request_timeout(file_server, tmp_path):
    server, _ = file_server
    with pytest.raises(TransferTimeoutError):
        await run_transfer(
            server, "/slow.bin", tmp_path / "out.bin", TransferConfig(timeout=1)
        )


@pytest.mark.asyncio
async def test_explicit_sha1_digest(file_server, tmp_path):
    server, _ = file_server
    config = TransferConfig(
        hash_algo=HashAlgo.SHA1, hasher=HashAlgo.SHA1.hasher(), hash_value=CONTENT_SHA1
    )
    result = await run_transfer(server, "/file.bin", tmp_path / "out.bin", config)
    assert TransferStep.VERIFIED in result.steps
    assert hashlib.sha1((tmp_path / "out.bin").read_bytes()).hexdigest() == CONTENT_SHA1
