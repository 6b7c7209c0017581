"""Qt rendering of the chat surface."""

from __future__ import annotations

from typing import Any, Callable, Sequence

from PySide6.QtCore import QBuffer, QByteArray, QIODevice, QObject, Qt, QTimer, QUrl, Signal, Slot
from PySide6.QtMultimedia import QAudioOutput, QMediaDevices, QMediaPlayer
from PySide6.QtWidgets import (
    QFrame,
    QHBoxLayout,
    QLabel,
    QListWidget,
    QListWidgetItem,
    QPushButton,
    QVBoxLayout,
    QWidget,
)

from ..audio.playback import decode_audio
from ..core.errors import PLAYBACK_BLOCKED, PlaybackError
from ..core.logger import get_logger
from ..services.schemas import HistoryEntry
from .surface import ChatSurface

log = get_logger("ui")

_DOT_STYLE = "border-radius: 4px; min-width: 8px; max-width: 8px; min-height: 8px; max-height: 8px;"
_DOT_OFF = _DOT_STYLE + "background-color: #e5534b;"
_DOT_ON = _DOT_STYLE + "background-color: #3fb950;"
_PLAY_IDLE = "border-radius: 16px; min-width: 32px; min-height: 32px; background: #3a63d8; color: white;"
_PLAY_PULSE = "border-radius: 16px; min-width: 32px; min-height: 32px; background: #f0a33b; color: black;"


class QtInsightPlayer(QObject):
    """Play base64 insight audio from memory with QtMultimedia."""

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._output = QAudioOutput(self)
        self._player = QMediaPlayer(self)
        self._player.setAudioOutput(self._output)
        self._player.errorOccurred.connect(self._on_error)
        self._buffer: QBuffer | None = None

    def play(self, audio_b64: str) -> None:
        data = decode_audio(audio_b64)
        if QMediaDevices.defaultAudioOutput().isNull():
            raise PlaybackError(PLAYBACK_BLOCKED, "no audio output device available")
        self._player.stop()
        previous = self._buffer
        buffer = QBuffer(self)
        buffer.setData(QByteArray(data))
        buffer.open(QIODevice.OpenModeFlag.ReadOnly)
        self._buffer = buffer
        self._player.setSourceDevice(buffer, QUrl("insight.mp3"))
        self._player.play()
        if previous is not None:
            previous.close()
            previous.deleteLater()

    def _on_error(self, error: QMediaPlayer.Error, message: str) -> None:
        log.error("insight audio playback error %s: %s", error, message)


class _InsightBubble(QWidget):
    """One transcript entry: author, timestamp, text and optional play button."""

    def __init__(self, entry: HistoryEntry, on_play: Callable[[], None]) -> None:
        super().__init__()
        outer = QHBoxLayout(self)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.setSpacing(8)

        avatar = QLabel("🤖")
        avatar.setAlignment(Qt.AlignmentFlag.AlignTop)
        outer.addWidget(avatar)

        frame = QFrame()
        frame.setObjectName("insightBubble")
        layout = QVBoxLayout(frame)
        layout.setContentsMargins(12, 8, 12, 8)
        layout.setSpacing(6)

        header = QHBoxLayout()
        author = QLabel("Cortex Mentor")
        author.setStyleSheet("font-weight: 600;")
        header.addWidget(author)
        header.addStretch(1)
        header.addWidget(QLabel(entry.timestamp))
        layout.addLayout(header)

        text = QLabel(entry.text)
        text.setWordWrap(True)
        text.setTextFormat(Qt.TextFormat.PlainText)
        text.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        layout.addWidget(text)

        self._play_button: QPushButton | None = None
        self._pulse_timer: QTimer | None = None
        self._pulse_on = False
        if entry.audio:
            player_row = QHBoxLayout()
            self._play_button = QPushButton("▶")
            self._play_button.setStyleSheet(_PLAY_IDLE)
            self._play_button.clicked.connect(on_play)
            player_row.addWidget(self._play_button)
            player_row.addWidget(QLabel("Play Insight"))
            player_row.addStretch(1)
            layout.addLayout(player_row)

        outer.addWidget(frame, 1)

    def set_attention(self, enabled: bool) -> None:
        """Pulse the play button when autoplay was blocked."""
        if self._play_button is None:
            return
        if enabled:
            if self._pulse_timer is None:
                self._pulse_timer = QTimer(self)
                self._pulse_timer.setInterval(600)
                self._pulse_timer.timeout.connect(self._pulse)
            self._pulse_timer.start()
            return
        if self._pulse_timer is not None:
            self._pulse_timer.stop()
        self._pulse_on = False
        self._play_button.setStyleSheet(_PLAY_IDLE)

    def _pulse(self) -> None:
        if self._play_button is None:
            return
        self._pulse_on = not self._pulse_on
        self._play_button.setStyleSheet(_PLAY_PULSE if self._pulse_on else _PLAY_IDLE)


class ChatPanel(QWidget):
    """Sidebar-style chat view hosting a ``ChatSurface``.

    ``post_message`` and ``reveal`` may be called from the controller's
    loop thread; they are re-dispatched to the Qt thread via signals.
    """

    _inbound = Signal(dict)
    _reveal_requested = Signal()

    def __init__(self, emit: Callable[[dict[str, Any]], None], *, autoplay: bool = True, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        self._player = QtInsightPlayer(self)
        self.surface = ChatSurface(emit, renderer=self, player=self._player.play, autoplay=autoplay)
        self._bubbles: list[_InsightBubble] = []

        self._status_dot = QLabel()
        self._status_dot.setStyleSheet(_DOT_OFF)
        self._status_text = QLabel("Disconnected")
        self._status_text.setToolTip("WebSocket Connection Status")

        header = QHBoxLayout()
        title = QLabel("Chat")
        title.setStyleSheet("font-weight: 600; font-size: 15px;")
        header.addWidget(title)
        header.addStretch(1)
        header.addWidget(self._status_dot)
        header.addWidget(self._status_text)

        self._list = QListWidget()
        self._list.setObjectName("chatList")
        self._list.setSpacing(6)
        self._list.setSelectionMode(QListWidget.SelectionMode.NoSelection)

        clear_button = QPushButton("Clear Chat")
        clear_button.clicked.connect(self.surface.clear)

        footer = QHBoxLayout()
        footer.addStretch(1)
        footer.addWidget(clear_button)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.addLayout(header)
        layout.addWidget(self._list, 1)
        layout.addLayout(footer)

        self._inbound.connect(self._on_inbound)
        self._reveal_requested.connect(self._on_reveal)

    # ------------------------------------------------------------------ #
    # Surface channel (thread-safe)
    # ------------------------------------------------------------------ #
    def post_message(self, payload: dict[str, Any]) -> None:
        self._inbound.emit(payload)

    def reveal(self) -> None:
        self._reveal_requested.emit()

    @Slot(dict)
    def _on_inbound(self, payload: dict[str, Any]) -> None:
        self.surface.post_message(payload)

    @Slot()
    def _on_reveal(self) -> None:
        window = self.window()
        if window.isMinimized():
            window.showNormal()
        window.show()
        window.raise_()

    # ------------------------------------------------------------------ #
    # SurfaceRenderer
    # ------------------------------------------------------------------ #
    def append_entry(self, index: int, entry: HistoryEntry) -> None:
        bubble = _InsightBubble(entry, lambda: self.surface.play(index))
        item = QListWidgetItem()
        item.setSizeHint(bubble.sizeHint())
        self._list.addItem(item)
        self._list.setItemWidget(item, bubble)
        self._bubbles.append(bubble)
        self._list.scrollToBottom()

    def replace_entries(self, entries: Sequence[HistoryEntry]) -> None:
        self.clear_entries()
        for index, entry in enumerate(entries):
            self.append_entry(index, entry)

    def clear_entries(self) -> None:
        self._list.clear()
        self._bubbles = []

    def show_status(self, is_connected: bool) -> None:
        self._status_dot.setStyleSheet(_DOT_ON if is_connected else _DOT_OFF)
        self._status_text.setText("Connected" if is_connected else "Disconnected")

    def mark_playback_blocked(self, index: int, blocked: bool) -> None:
        if 0 <= index < len(self._bubbles):
            self._bubbles[index].set_attention(blocked)
