"""Entry point for the PySide6 client."""

from __future__ import annotations

from PySide6.QtWidgets import QApplication

from .ui.main_window import MentorWindow


def run() -> int:
    """Start the Cortex Mentor window."""
    app = QApplication.instance() or QApplication([])
    window = MentorWindow()
    window.show()
    return app.exec()
