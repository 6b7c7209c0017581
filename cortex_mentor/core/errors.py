"""Error codes, exceptions and notification payloads."""

from __future__ import annotations

from typing import Any, Dict

TRANSPORT_ERROR = "CORTEX_1001"
FRAME_INVALID = "CORTEX_2001"
FRAME_UNSUPPORTED = "CORTEX_2002"
PLAYBACK_BLOCKED = "CORTEX_3001"
PLAYBACK_FAILED = "CORTEX_3002"
HISTORY_UNAVAILABLE = "CORTEX_4001"
CONFIG_INVALID = "CORTEX_5001"

ERROR_MESSAGES = {
    TRANSPORT_ERROR: "Connection to the Cortex backend failed.",
    FRAME_INVALID: "Received a malformed message from the backend.",
    FRAME_UNSUPPORTED: "Received an unsupported message type.",
    PLAYBACK_BLOCKED: "Audio playback was blocked, use the play button.",
    PLAYBACK_FAILED: "Audio playback failed.",
    HISTORY_UNAVAILABLE: "Chat history could not be read or written.",
    CONFIG_INVALID: "Configuration is invalid.",
}


class MentorError(Exception):
    """Base error carrying a stable code."""

    code = TRANSPORT_ERROR

    def __init__(self, code: str | None = None, message: str | None = None, *, details: Any | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        return error_payload(self.code, self.message, details=self.details)


class TransportError(MentorError):
    code = TRANSPORT_ERROR


class FrameDecodeError(MentorError):
    code = FRAME_INVALID


class PlaybackError(MentorError):
    code = PLAYBACK_FAILED


class HistoryError(MentorError):
    code = HISTORY_UNAVAILABLE


class ConfigError(MentorError):
    code = CONFIG_INVALID


def error_payload(code: str, message: str, *, details: Any | None = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details is not None:
        payload["error"]["details"] = details
    return payload
