"""Insight sink: buffers insights until a chat surface is attached."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Optional, Protocol, Sequence

from ..core.errors import MentorError
from ..core.history import HistoryStore
from ..core.logger import get_logger
from ..services.schemas import (
    HistoryEntry,
    Insight,
    SurfaceOutbound,
    add_insight_message,
    entries_from_payload,
    load_history_message,
    status_update_message,
)

log = get_logger("sink")

Notifier = Callable[[str, str], None]


class SurfaceChannel(Protocol):
    def post_message(self, payload: dict[str, Any]) -> None: ...

    def reveal(self) -> None: ...


class InsightSink:
    """Forward insights and connection status to the chat surface.

    Must be driven from the event loop thread: history operations run as
    background tasks on that loop.
    """

    def __init__(self, history: HistoryStore, *, notify: Optional[Notifier] = None) -> None:
        self.history = history
        self.notify = notify
        self._surface: Optional[SurfaceChannel] = None
        self._queue: deque[Insight] = deque()
        self._is_connected = False
        self._tasks: set[asyncio.Task[Any]] = set()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def attached(self) -> bool:
        return self._surface is not None

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def pending(self) -> tuple[Insight, ...]:
        return tuple(self._queue)

    def add_insight(self, text: str, audio: str = "") -> None:
        """Show an insight now, or queue it until a surface attaches."""
        surface = self._surface
        if surface is None:
            self._queue.append(Insight(text=text, audio=audio or ""))
            log.info("surface not attached, queued insight (%d pending)", len(self._queue))
            return
        surface.reveal()
        surface.post_message(add_insight_message(text, audio or ""))

    def set_connection_status(self, is_connected: bool) -> None:
        self._is_connected = bool(is_connected)
        if self._surface is not None:
            self._surface.post_message(status_update_message(self._is_connected))

    def load_history(self, entries: Sequence[HistoryEntry]) -> None:
        if self._surface is not None:
            self._surface.post_message(load_history_message(entries))

    def attach(self, surface: SurfaceChannel) -> None:
        """Attach ``surface``, flush queued insights in order, then resend status."""
        self._surface = surface
        if self._queue:
            log.info("flushing %d queued insights", len(self._queue))
        while self._queue:
            insight = self._queue.popleft()
            self.add_insight(insight.text, insight.audio)
        self.set_connection_status(self._is_connected)

    def detach(self) -> None:
        self._surface = None

    def handle_surface_message(self, payload: dict[str, Any]) -> None:
        """Handle a message emitted by the surface."""
        kind = payload.get("type") if isinstance(payload, dict) else None
        if kind == SurfaceOutbound.ON_INFO.value:
            self._notify("info", str(payload.get("value", "")))
        elif kind == SurfaceOutbound.ON_ERROR.value:
            self._notify("error", str(payload.get("value", "")))
        elif kind == SurfaceOutbound.SAVE_HISTORY.value:
            entries = entries_from_payload(payload.get("history"))
            self._spawn(self.history.save(entries), "save history")
        elif kind == SurfaceOutbound.WEBVIEW_LOADED.value:
            self._spawn(self.restore_history(), "load history")
            self.set_connection_status(self._is_connected)
        else:
            log.info("ignoring surface message %r", kind)

    async def restore_history(self) -> list[HistoryEntry]:
        """Load the stored transcript and forward it to the surface."""
        try:
            entries = await self.history.load()
        except MentorError as exc:
            log.error("history load failed: %s", exc.message)
            self._notify("error", f"Cortex Mentor: {exc.message}")
            return []
        self.load_history(entries)
        return entries

    async def wait_idle(self) -> None:
        """Wait for background history operations spawned so far."""
        while self._tasks:
            await asyncio.wait(set(self._tasks))

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _notify(self, level: str, message: str) -> None:
        if self.notify is not None and message:
            self.notify(level, message)

    def _spawn(self, coroutine: Awaitable[Any], label: str) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coroutine)
        self._tasks.add(task)

        def _done(fut: asyncio.Task[Any]) -> None:
            self._tasks.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                log.error("%s failed: %s", label, exc)

        task.add_done_callback(_done)
        return task
