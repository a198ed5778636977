"""Shared fixtures for the check-worker tests."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from monitoring.check_log import CheckLog
from monitoring.log_store import LogStore
from monitoring.storage import FileRecordStore

CHECK_ID = "abcdefghij0123456789"


def make_record(**overrides: Any) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": CHECK_ID,
        "owner": "owner@example.com",
        "protocol": "http",
        "target": "example.com/health",
        "method": "get",
        "successCodes": [200],
        "timeoutSeconds": 2,
    }
    record.update(overrides)
    return {k: v for k, v in record.items() if v is not ...}


class FakeNotifier:
    def __init__(self, result: bool = True, raises: Optional[Exception] = None) -> None:
        self.result = result
        self.raises = raises
        self.sent: List[Tuple[str, str]] = []

    async def send(self, destination: str, message: str) -> bool:
        self.sent.append((destination, message))
        if self.raises is not None:
            raise self.raises
        return self.result


@pytest.fixture
def record_store(tmp_path: Path) -> FileRecordStore:
    return FileRecordStore(tmp_path / "data")


@pytest.fixture
def log_store(tmp_path: Path) -> LogStore:
    return LogStore(tmp_path / "logs")


@pytest.fixture
def check_log(log_store: LogStore) -> CheckLog:
    return CheckLog(log_store)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest_asyncio.fixture
async def probe_server():
    """Local HTTP server the prober can hit; handlers record what they saw."""
    seen: List[Dict[str, str]] = []

    async def ok(request: web.Request) -> web.Response:
        seen.append({"method": request.method, "path_qs": request.path_qs})
        return web.Response(text="ok")

    async def missing(request: web.Request) -> web.Response:
        return web.Response(status=404, text="nope")

    async def redirect(request: web.Request) -> web.Response:
        raise web.HTTPFound("/ok")

    async def slow(request: web.Request) -> web.Response:
        await asyncio.sleep(2)
        return web.Response(text="late")

    app = web.Application()
    app.router.add_route("*", "/ok", ok)
    app.router.add_route("*", "/missing", missing)
    app.router.add_route("*", "/redirect", redirect)
    app.router.add_route("*", "/slow", slow)

    server = TestServer(app, host="127.0.0.1")
    await server.start_server()
    server.seen = seen  # type: ignore[attr-defined]
    try:
        yield server
    finally:
        await server.close()
