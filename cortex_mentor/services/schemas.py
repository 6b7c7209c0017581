"""Data schemas exchanged with the Cortex backend and the chat surface."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Union


@dataclass(slots=True, frozen=True)
class Insight:
    """Text and optional base64 audio pushed by the backend."""

    text: str
    audio: str = ""


@dataclass(slots=True)
class HistoryEntry:
    """Rendered transcript entry, persisted as-is."""

    text: str
    audio: str = ""
    timestamp: str = ""

    def to_payload(self) -> dict[str, str]:
        return {"text": self.text, "audio": self.audio, "timestamp": self.timestamp}

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["HistoryEntry"]:
        """Build an entry from a stored mapping; ``None`` when unusable."""
        if not isinstance(payload, dict):
            return None
        text = payload.get("text")
        if not isinstance(text, str):
            return None
        audio = payload.get("audio")
        timestamp = payload.get("timestamp")
        return cls(
            text=text,
            audio=audio if isinstance(audio, str) else "",
            timestamp=timestamp if isinstance(timestamp, str) else "",
        )


def entries_to_payload(entries: Iterable[HistoryEntry]) -> list[dict[str, str]]:
    return [entry.to_payload() for entry in entries]


def entries_from_payload(payload: Any) -> list[HistoryEntry]:
    """Decode a list of stored entries, skipping malformed items."""
    if not isinstance(payload, list):
        return []
    entries: list[HistoryEntry] = []
    for item in payload:
        entry = HistoryEntry.from_payload(item)
        if entry is not None:
            entries.append(entry)
    return entries


# --------------------------------------------------------------------- #
# Inbound backend frames
# --------------------------------------------------------------------- #
@dataclass(slots=True, frozen=True)
class InsightFrame:
    """``{"type": "insight", "text": ..., "audio": ...}``"""

    insight: Insight


@dataclass(slots=True, frozen=True)
class UnknownFrame:
    """Well-formed JSON object with an unrecognized ``type``."""

    type: Optional[str]
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class LegacyAudioFrame:
    """Raw binary frame carrying WAV bytes (deprecated backend path)."""

    data: bytes


InboundFrame = Union[InsightFrame, UnknownFrame, LegacyAudioFrame]


# --------------------------------------------------------------------- #
# Chat surface protocol
# --------------------------------------------------------------------- #
class SurfaceInbound(str, Enum):
    """Messages posted by the sink to the chat surface."""

    ADD_INSIGHT = "addInsight"
    STATUS_UPDATE = "statusUpdate"
    LOAD_HISTORY = "loadHistory"


class SurfaceOutbound(str, Enum):
    """Messages emitted by the chat surface to the host."""

    ON_INFO = "onInfo"
    ON_ERROR = "onError"
    SAVE_HISTORY = "saveHistory"
    WEBVIEW_LOADED = "webviewLoaded"


def add_insight_message(text: str, audio: str) -> dict[str, Any]:
    return {"type": SurfaceInbound.ADD_INSIGHT.value, "text": text, "audio": audio}


def status_update_message(is_connected: bool) -> dict[str, Any]:
    return {"type": SurfaceInbound.STATUS_UPDATE.value, "isConnected": bool(is_connected)}


def load_history_message(entries: Iterable[HistoryEntry]) -> dict[str, Any]:
    return {"type": SurfaceInbound.LOAD_HISTORY.value, "history": entries_to_payload(entries)}


def save_history_message(entries: Iterable[HistoryEntry]) -> dict[str, Any]:
    return {"type": SurfaceOutbound.SAVE_HISTORY.value, "history": entries_to_payload(entries)}


def info_message(value: str) -> dict[str, Any]:
    return {"type": SurfaceOutbound.ON_INFO.value, "value": value}


def error_message(value: str) -> dict[str, Any]:
    return {"type": SurfaceOutbound.ON_ERROR.value, "value": value}


def loaded_message() -> dict[str, Any]:
    return {"type": SurfaceOutbound.WEBVIEW_LOADED.value}
