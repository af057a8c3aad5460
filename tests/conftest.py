import asyncio
import hashlib
from pathlib import Path

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from hashget.models.config import ProcessConfig

CONTENT = bytes(range(256)) * 1024  # 256 KiB
CONTENT_SHA256 = hashlib.sha256(CONTENT).hexdigest()
CONTENT_SHA1 = hashlib.sha1(CONTENT).hexdigest()


def make_file_app(state: dict) -> web.Application:
    """A tiny origin server: one file with range support and a digest side file."""

    async def handle_file(request: web.Request) -> web.Response:
        state["requests"].append(dict(request.headers))
        range_header = request.headers.get("Range")
        if range_header and state.get("ranges", True):
            start = int(range_header.split("=", 1)[1].rstrip("-"))
            if start >= len(CONTENT):
                return web.Response(status=416)
            return web.Response(
                status=206,
                body=CONTENT[start:],
                headers={
                    "Content-Range": f"bytes {start}-{len(CONTENT) - 1}/{len(CONTENT)}"
                },
            )
        return web.Response(body=CONTENT)

    async def handle_digest(request: web.Request) -> web.Response:
        state["digest_requests"] += 1
        return web.Response(text=f"{CONTENT_SHA256}  file.bin\n")

    async def handle_slow(request: web.Request) -> web.Response:
        await asyncio.sleep(3)
        return web.Response(body=CONTENT)

    async def handle_missing(request: web.Request) -> web.Response:
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/file.bin", handle_file)
    app.router.add_get("/file.bin.sha256", handle_digest)
    app.router.add_get("/slow.bin", handle_slow)
    app.router.add_get("/missing.bin", handle_missing)
    return app


@pytest_asyncio.fixture
async def file_server():
    state = {"requests": [], "digest_requests": 0}
    server = TestServer(make_file_app(state))
    await server.start_server()
    try:
        yield server, state
    finally:
        await server.close()


@pytest.fixture
def make_config(tmp_path: Path):
    def _make(**kwargs) -> ProcessConfig:
        kwargs.setdefault("silent", True)
        return ProcessConfig(**kwargs)

    return _make
