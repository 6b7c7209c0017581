"""Wires transport, router, sink and history store together."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Sequence

from ..audio.playback import LegacyAudioPlayer
from ..core.config import Settings
from ..core.history import HistoryStore
from ..core.logger import get_logger
from ..services.router import MessageRouter
from ..services.schemas import HistoryEntry
from ..services.transport import TransportClient
from ..state.connection import ConnectionState, status_label
from ..ui.sink import InsightSink, SurfaceChannel

log = get_logger("ui")

Notifier = Callable[[str, str], None]
StateCallback = Callable[[ConnectionState], None]

ACTIVATION_NOTICE = "Cortex Mentor: Extension Activated!"


class MentorController:
    """High-level coordinator for the Cortex Mentor client.

    Every component runs on a single asyncio loop. The loop is either
    supplied by the caller (console mode) or owned by the controller and
    run in a daemon thread (Qt mode). Public commands are safe to call
    from any thread and return immediately.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        notify: Optional[Notifier] = None,
        on_state: Optional[StateCallback] = None,
        history: Optional[HistoryStore] = None,
        legacy_player: Optional[LegacyAudioPlayer] = None,
        connector: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.settings = settings
        if loop is not None:
            self.loop = loop
            self._owns_loop = False
            self._loop_thread: Optional[threading.Thread] = None
        else:
            self.loop = asyncio.new_event_loop()
            self._owns_loop = True
            self._loop_thread = threading.Thread(target=self._run_loop, name="cortex-loop", daemon=True)
            self._loop_thread.start()

        self._notify_cb = notify
        self.history = history or HistoryStore.at(settings.history_path, key=settings.history_key)
        self.sink = InsightSink(self.history, notify=self._notify)
        if legacy_player is None and settings.legacy_audio_enabled:
            legacy_player = LegacyAudioPlayer()
        self.router = MessageRouter(
            self.sink,
            legacy_player=legacy_player if settings.legacy_audio_enabled else None,
            notify=self._notify if settings.notify_on_insight else None,
        )
        transport_kwargs: dict[str, Any] = {"max_size": settings.max_frame_bytes}
        if connector is not None:
            transport_kwargs["connector"] = connector
        self.transport = TransportClient(on_message=self.router.route, **transport_kwargs)
        self.transport.add_state_listener(self._handle_state)
        if on_state is not None:
            self.transport.add_state_listener(on_state)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    def activate(self) -> None:
        """Announce activation and connect when ``auto_connect`` is set."""
        log.info("Cortex Mentor client is now active")
        self._notify("info", ACTIVATION_NOTICE)
        if self.settings.auto_connect:
            self.connect()

    def shutdown(self, timeout: float = 2.0) -> None:
        """Close the connection and stop the owned loop."""
        if self._owns_loop and self._loop_thread is not None:
            future = asyncio.run_coroutine_threadsafe(self._drain(), self.loop)
            try:
                future.result(timeout=timeout)
            except Exception as exc:
                log.warning("shutdown did not complete cleanly: %s", exc)
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._loop_thread.join(timeout=1)
            if self._loop_thread.is_alive():
                log.warning("event loop thread did not stop, leaving the loop open")
            else:
                self._close_loop()
            self._loop_thread = None
        else:
            self._call(self.transport.disconnect)

    def _close_loop(self) -> None:
        """Cancel leftover tasks and close the stopped owned loop."""
        pending = asyncio.all_tasks(self.loop)
        for task in pending:
            task.cancel()
        if pending:
            self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self.loop.run_until_complete(self.loop.shutdown_asyncgens())
        self.loop.close()

    async def _drain(self) -> None:
        self.transport.disconnect()
        await self.transport.wait_closed()
        await self.sink.wait_idle()

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #
    def connect(self, url: Optional[str] = None) -> None:
        self._call(self.transport.connect, url or self.settings.backend_url)

    def disconnect(self) -> None:
        self._call(self.transport.disconnect)

    def toggle(self) -> None:
        """Connect when idle, disconnect otherwise (status bar click)."""
        self._call(self._toggle)

    def save_history(self, entries: Sequence[HistoryEntry]) -> Future:
        return asyncio.run_coroutine_threadsafe(self.history.save(list(entries)), self.loop)

    def load_history(self) -> Future:
        """Load the stored transcript and push it to the attached surface."""
        return asyncio.run_coroutine_threadsafe(self.sink.restore_history(), self.loop)

    def attach_surface(self, surface: SurfaceChannel) -> None:
        self._call(self.sink.attach, surface)

    def detach_surface(self) -> None:
        self._call(self.sink.detach)

    def surface_message(self, payload: dict[str, Any]) -> None:
        """Entry point for messages emitted by the chat surface."""
        self._call(self.sink.handle_surface_message, payload)

    @property
    def state(self) -> ConnectionState:
        return self.transport.state

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _toggle(self) -> None:
        if status_label(self.transport.state).action == "disconnect":
            self.transport.disconnect()
        else:
            self.transport.connect(self.settings.backend_url)

    def _handle_state(self, state: ConnectionState) -> None:
        self.sink.set_connection_status(state.is_connected)

    def _notify(self, level: str, message: str) -> None:
        if self._notify_cb is None:
            return
        try:
            self._notify_cb(level, message)
        except Exception:
            log.exception("notifier failed")

    def _call(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback`` on the loop thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self.loop:
            callback(*args)
        else:
            self.loop.call_soon_threadsafe(callback, *args)

    def _run_loop(self) -> None:
        """Run the owned asyncio loop in a dedicated thread."""
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()
