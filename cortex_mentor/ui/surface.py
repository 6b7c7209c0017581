"""Chat surface: transcript state behind the sidebar view.

The surface only talks to the host through JSON-like messages. It
receives ``addInsight``, ``statusUpdate`` and ``loadHistory`` from the
sink, and emits ``webviewLoaded``, ``saveHistory``, ``onInfo`` and
``onError`` back. Drawing is delegated to a ``SurfaceRenderer`` (the Qt
chat panel or the console printer).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional, Protocol, Sequence

from ..core.errors import PlaybackError
from ..core.logger import get_logger
from ..services.schemas import (
    HistoryEntry,
    SurfaceInbound,
    entries_from_payload,
    error_message,
    loaded_message,
    save_history_message,
)

log = get_logger("surface")

Emitter = Callable[[dict[str, Any]], None]
AudioPlayer = Callable[[str], None]
Clock = Callable[[], str]


def display_time() -> str:
    """Local time as shown next to each entry (``HH:MM``)."""
    return datetime.now().strftime("%H:%M")


class SurfaceRenderer(Protocol):
    def append_entry(self, index: int, entry: HistoryEntry) -> None: ...

    def replace_entries(self, entries: Sequence[HistoryEntry]) -> None: ...

    def clear_entries(self) -> None: ...

    def show_status(self, is_connected: bool) -> None: ...

    def mark_playback_blocked(self, index: int, blocked: bool) -> None: ...

    def reveal(self) -> None: ...


class ChatSurface:
    """Transient chat transcript driven by surface messages."""

    def __init__(
        self,
        emit: Emitter,
        *,
        renderer: Optional[SurfaceRenderer] = None,
        player: Optional[AudioPlayer] = None,
        clock: Clock = display_time,
        autoplay: bool = True,
    ) -> None:
        self._emit = emit
        self.renderer = renderer
        self.player = player
        self._clock = clock
        self.autoplay = autoplay
        self.entries: list[HistoryEntry] = []
        self.is_connected = False
        self.blocked: set[int] = set()
        self._hydrated = False
        self._early: list[HistoryEntry] = []
        self._cleared_before_load = False

    # ------------------------------------------------------------------ #
    # Host-facing API
    # ------------------------------------------------------------------ #
    def ready(self) -> None:
        """Tell the host the surface can receive messages."""
        self._emit(loaded_message())

    def post_message(self, payload: dict[str, Any]) -> None:
        """Handle one inbound message from the sink."""
        kind = payload.get("type") if isinstance(payload, dict) else None
        if kind == SurfaceInbound.ADD_INSIGHT.value:
            text = payload.get("text")
            audio = payload.get("audio")
            self.add_insight(
                text if isinstance(text, str) else "",
                audio if isinstance(audio, str) else "",
            )
        elif kind == SurfaceInbound.STATUS_UPDATE.value:
            self.update_status(bool(payload.get("isConnected")))
        elif kind == SurfaceInbound.LOAD_HISTORY.value:
            history = payload.get("history")
            if history is None:
                return
            self.load_history(entries_from_payload(history))
        else:
            log.info("ignoring surface message %r", kind)

    def reveal(self) -> None:
        if self.renderer is not None:
            self.renderer.reveal()

    # ------------------------------------------------------------------ #
    # Message handlers
    # ------------------------------------------------------------------ #
    def add_insight(self, text: str, audio: str = "") -> None:
        entry = HistoryEntry(text=text, audio=audio, timestamp=self._clock())
        self.entries.append(entry)
        index = len(self.entries) - 1
        if self._hydrated:
            self._persist()
        else:
            self._early.append(entry)
        if self.renderer is not None:
            self.renderer.append_entry(index, entry)
        if audio and self.autoplay:
            self._autoplay(index)

    def update_status(self, is_connected: bool) -> None:
        self.is_connected = is_connected
        if self.renderer is not None:
            self.renderer.show_status(is_connected)

    def load_history(self, entries: Sequence[HistoryEntry]) -> None:
        """Replace the transcript; insights received before hydration are kept."""
        if self._cleared_before_load:
            # this load was requested before the clear
            self._cleared_before_load = False
            log.info("history load discarded after clear")
            return
        restored = list(entries)
        first_load = not self._hydrated
        if first_load:
            # early entries are the only ones shown so far, they move after the restored ones
            self.blocked = {len(restored) + index for index in self.blocked}
            restored.extend(self._early)
            self._early = []
            self._hydrated = True
        else:
            self.blocked = set()
        self.entries = restored
        if self.renderer is not None:
            self.renderer.replace_entries(list(self.entries))
            for index in sorted(self.blocked):
                self.renderer.mark_playback_blocked(index, True)
        if first_load and len(restored) != len(entries):
            self._persist()

    def clear(self) -> None:
        if not self._hydrated:
            self._hydrated = True
            self._cleared_before_load = True
        self.entries = []
        self._early = []
        self.blocked.clear()
        if self.renderer is not None:
            self.renderer.clear_entries()
        self._persist()

    def play(self, index: int) -> bool:
        """Play the audio of entry ``index`` on user request."""
        try:
            entry = self.entries[index]
        except IndexError:
            return False
        if not entry.audio or self.player is None:
            return False
        try:
            self.player(entry.audio)
        except PlaybackError as exc:
            log.warning("manual playback of entry %d failed: %s", index, exc.message)
            self._emit(error_message(f"Cortex Mentor: {exc.message}"))
            return False
        self._set_blocked(index, False)
        return True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _autoplay(self, index: int) -> None:
        if self.player is None:
            self._set_blocked(index, True)
            return
        try:
            self.player(self.entries[index].audio)
        except PlaybackError as exc:
            log.info("auto-play prevented for entry %d: %s", index, exc.message)
            self._set_blocked(index, True)

    def _set_blocked(self, index: int, blocked: bool) -> None:
        if blocked:
            self.blocked.add(index)
        else:
            self.blocked.discard(index)
        if self.renderer is not None:
            self.renderer.mark_playback_blocked(index, blocked)

    def _persist(self) -> None:
        self._emit(save_history_message(self.entries))
