"""Connection state shared between the transport and the status bar."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


StatusAction = Literal["connect", "disconnect"]


@dataclass(slots=True, frozen=True)
class ConnectionState:
    """Current connection status; ``error`` keeps the raw error text."""

    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    error: str | None = None

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED


@dataclass(slots=True, frozen=True)
class StatusLabel:
    """Status bar text, tooltip and the command a click should trigger."""

    text: str
    tooltip: str
    action: StatusAction
    icon: str


def status_label(state: ConnectionState) -> StatusLabel:
    """Map a connection state to its status bar presentation."""
    if state.status is ConnectionStatus.CONNECTING:
        return StatusLabel("Cortex…", "Cortex Mentor: Connecting...", "disconnect", "sync")
    if state.status is ConnectionStatus.CONNECTED:
        return StatusLabel("Cortex", "Cortex Mentor: Connected", "disconnect", "zap")
    if state.status is ConnectionStatus.ERROR:
        return StatusLabel("Cortex", f"Cortex Mentor: Error - {state.error or 'unknown'}", "connect", "error")
    tooltip = "Cortex Mentor: Disconnected"
    if state.error:
        tooltip += f" (last error: {state.error})"
    return StatusLabel("Cortex", tooltip, "connect", "plug")
