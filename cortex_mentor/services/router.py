"""Classify backend frames and dispatch them."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional, Protocol

from ..core.errors import FRAME_INVALID, FRAME_UNSUPPORTED, FrameDecodeError
from ..core.logger import get_logger
from .schemas import Insight, InboundFrame, InsightFrame, LegacyAudioFrame, UnknownFrame

log = get_logger("router")

INSIGHT_NOTICE = "Cortex Mentor: Insight received and displayed."

Notifier = Callable[[str, str], None]


class InsightTarget(Protocol):
    def add_insight(self, text: str, audio: str = "") -> None: ...


class AudioBlobPlayer(Protocol):
    def play(self, data: bytes) -> Any: ...


def _parse_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise FrameDecodeError(FRAME_INVALID, f"invalid JSON frame: {exc}") from exc


def decode_frame(raw: str | bytes | bytearray | memoryview) -> Optional[InboundFrame]:
    """Decode one frame; ``None`` means the frame was dropped."""
    if isinstance(raw, (bytes, bytearray, memoryview)):
        data = bytes(raw)
        try:
            payload = _parse_json(data.decode("utf-8"))
        except (UnicodeDecodeError, FrameDecodeError):
            return LegacyAudioFrame(data)
    else:
        try:
            payload = _parse_json(raw)
        except FrameDecodeError as exc:
            log.warning("%s, dropped", exc.message)
            return None

    if not isinstance(payload, dict):
        log.warning("frame is not a JSON object (%s), dropped", type(payload).__name__)
        return None

    frame_type = payload.get("type")
    if frame_type != "insight":
        return UnknownFrame(frame_type if isinstance(frame_type, str) else None, payload)

    text = payload.get("text")
    if not isinstance(text, str):
        log.warning("insight without text, dropped")
        return None
    audio = payload.get("audio")
    if audio is not None and not isinstance(audio, str):
        log.warning("insight audio is not a string, ignoring audio")
    return InsightFrame(Insight(text=text, audio=audio if isinstance(audio, str) else ""))


class MessageRouter:
    """Route decoded frames to the insight sink or the legacy audio player."""

    def __init__(
        self,
        sink: InsightTarget,
        *,
        legacy_player: Optional[AudioBlobPlayer] = None,
        notify: Optional[Notifier] = None,
    ) -> None:
        self.sink = sink
        self.legacy_player = legacy_player
        self.notify = notify

    def route(self, raw: Any) -> Optional[InboundFrame]:
        """Decode and dispatch ``raw``; never raises."""
        frame = decode_frame(raw)
        if frame is None:
            return None
        try:
            self._dispatch(frame)
        except Exception:
            log.exception("dispatching %s failed", type(frame).__name__)
        return frame

    def _dispatch(self, frame: InboundFrame) -> None:
        if isinstance(frame, InsightFrame):
            log.info("received insight (%d chars, audio=%s)", len(frame.insight.text), bool(frame.insight.audio))
            self.sink.add_insight(frame.insight.text, frame.insight.audio)
            if self.notify is not None:
                self.notify("info", INSIGHT_NOTICE)
        elif isinstance(frame, LegacyAudioFrame):
            if self.legacy_player is None:
                log.info("legacy audio frame (%d bytes) ignored", len(frame.data))
            else:
                log.info("legacy audio frame (%d bytes)", len(frame.data))
                self.legacy_player.play(frame.data)
        else:
            log.info("%s: unknown message type %r, dropped", FRAME_UNSUPPORTED, frame.type)
