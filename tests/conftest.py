from __future__ import annotations

import asyncio
import os
import tempfile
from contextlib import asynccontextmanager
from typing import Any

import pytest

# Loggers resolve their directory on first use; keep them out of the home folder.
os.environ.setdefault("CORTEX_DATA_DIR", tempfile.mkdtemp(prefix="cortex-tests-"))

from cortex_mentor.core.config import get_settings  # noqa: E402


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CORTEX_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("CORTEX_BACKEND_URL", raising=False)
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield tmp_path
    get_settings.cache_clear()  # type: ignore[attr-defined]


class FakeSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, frames: list[Any] | None = None, *, error: BaseException | None = None, stay_open: bool = True) -> None:
        self.frames = list(frames or [])
        self.error = error
        self.stay_open = stay_open
        self.closed = asyncio.Event()
        self.close_calls = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame
        if self.error is not None:
            raise self.error
        if self.stay_open:
            await self.closed.wait()

    async def close(self) -> None:
        self.close_calls += 1
        self.closed.set()


class FakeConnector:
    """Callable mimicking ``websockets.asyncio.client.connect``."""

    def __init__(self, *sockets: FakeSocket, refuse: BaseException | None = None) -> None:
        self.sockets = list(sockets)
        self.refuse = refuse
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.opened: list[FakeSocket] = []

    def __call__(self, url: str, **kwargs: Any):
        self.calls.append((url, kwargs))
        return self._open()

    @asynccontextmanager
    async def _open(self):
        await asyncio.sleep(0)
        if self.refuse is not None:
            raise self.refuse
        socket = self.sockets.pop(0) if self.sockets else FakeSocket()
        self.opened.append(socket)
        try:
            yield socket
        finally:
            await socket.close()


class RecordingSurface:
    """Surface channel recording every posted message."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []
        self.reveals = 0

    def post_message(self, payload: dict[str, Any]) -> None:
        self.messages.append(payload)

    def reveal(self) -> None:
        self.reveals += 1


@pytest.fixture
def recording_surface() -> RecordingSurface:
    return RecordingSurface()
