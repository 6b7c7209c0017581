"""Main window for the Cortex Mentor desktop client."""

from __future__ import annotations

from PySide6.QtCore import QObject, Signal, Slot
from PySide6.QtGui import QAction
from PySide6.QtWidgets import QInputDialog, QLabel, QMainWindow, QPushButton

from ..core.config import get_settings, write_user_config
from ..core.errors import ConfigError
from ..core.logger import get_logger
from ..runtime.controller import MentorController
from ..state.connection import ConnectionState, status_label
from .chat_panel import ChatPanel

log = get_logger("ui")

_ICONS = {"plug": "🔌", "sync": "⟳", "zap": "⚡", "error": "⚠"}


class _UIBridge(QObject):
    """Carry controller callbacks from the loop thread to the Qt thread."""

    state_signal = Signal(object)
    notify_signal = Signal(str, str)


class MentorWindow(QMainWindow):
    """Window hosting the chat panel and the connection status bar item."""

    def __init__(self) -> None:
        super().__init__()
        self.setWindowTitle("Cortex Mentor")
        self.setMinimumSize(420, 560)

        self.settings = get_settings()
        self._bridge = _UIBridge()
        self._bridge.state_signal.connect(self._apply_state)
        self._bridge.notify_signal.connect(self._show_notification)

        self.controller = MentorController(
            self.settings,
            notify=self._bridge.notify_signal.emit,
            on_state=self._bridge.state_signal.emit,
        )
        self.panel = ChatPanel(self.controller.surface_message, autoplay=self.settings.autoplay_audio)
        self.setCentralWidget(self.panel)

        self._status_button = QPushButton()
        self._status_button.setFlat(True)
        self._status_button.clicked.connect(self.controller.toggle)
        self._notice_label = QLabel("")
        self.statusBar().addWidget(self._notice_label, 1)
        self.statusBar().addPermanentWidget(self._status_button)
        self._apply_state(self.controller.state)

        self._build_menu()

        self.controller.attach_surface(self.panel)
        self.panel.surface.ready()
        self.controller.activate()

    # ------------------------------------------------------------------ #
    # UI construction
    # ------------------------------------------------------------------ #
    def _build_menu(self) -> None:
        connection = self.menuBar().addMenu("Connection")
        connect_action = QAction("Connect", self)
        connect_action.triggered.connect(lambda: self.controller.connect())
        connection.addAction(connect_action)
        disconnect_action = QAction("Disconnect", self)
        disconnect_action.triggered.connect(self.controller.disconnect)
        connection.addAction(disconnect_action)
        connection.addSeparator()
        url_action = QAction("Backend URL...", self)
        url_action.triggered.connect(self._edit_backend_url)
        connection.addAction(url_action)

        chat = self.menuBar().addMenu("Chat")
        reload_action = QAction("Reload history", self)
        reload_action.triggered.connect(lambda: self.controller.load_history())
        chat.addAction(reload_action)
        clear_action = QAction("Clear chat", self)
        clear_action.triggered.connect(self.panel.surface.clear)
        chat.addAction(clear_action)

    # ------------------------------------------------------------------ #
    # Qt thread handlers
    # ------------------------------------------------------------------ #
    @Slot(object)
    def _apply_state(self, state: ConnectionState) -> None:
        label = status_label(state)
        self._status_button.setText(f"{_ICONS.get(label.icon, '')} {label.text}")
        self._status_button.setToolTip(label.tooltip)

    @Slot(str, str)
    def _show_notification(self, level: str, message: str) -> None:
        color = "#e5534b" if level == "error" else ""
        self._notice_label.setStyleSheet(f"color: {color};" if color else "")
        self._notice_label.setText(message)

    def _edit_backend_url(self) -> None:
        value, ok = QInputDialog.getText(self, "Backend URL", "WebSocket URL", text=self.settings.backend_url)
        if not ok or not value.strip():
            return
        try:
            write_user_config({"backend_url": value.strip()})
        except ConfigError as exc:
            self._show_notification("error", f"Cortex Mentor: {exc.message}")
            return
        get_settings.cache_clear()
        self.settings = get_settings()
        self.controller.settings = self.settings
        log.info("backend URL changed to %s", self.settings.backend_url)
        self._show_notification("info", "Backend URL saved, reconnect to apply.")

    def closeEvent(self, event) -> None:  # type: ignore[override]
        self.controller.detach_surface()
        self.controller.shutdown()
        super().closeEvent(event)
