from __future__ import annotations

import json

from cortex_mentor.services.router import INSIGHT_NOTICE, MessageRouter, decode_frame
from cortex_mentor.services.schemas import Insight, InsightFrame, LegacyAudioFrame, UnknownFrame


class _Sink:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    def add_insight(self, text: str, audio: str = "") -> None:
        self.calls.append((text, audio))


class _Player:
    def __init__(self) -> None:
        self.blobs: list[bytes] = []

    def play(self, data: bytes) -> None:
        self.blobs.append(data)


def test_decode_insight_with_audio() -> None:
    frame = decode_frame(json.dumps({"type": "insight", "text": "Hi", "audio": "QUJD"}))
    assert frame == InsightFrame(Insight(text="Hi", audio="QUJD"))


def test_decode_insight_without_audio_defaults_to_empty() -> None:
    frame = decode_frame('{"type": "insight", "text": "Insight without audio"}')
    assert isinstance(frame, InsightFrame)
    assert frame.insight.audio == ""
    assert decode_frame('{"type": "insight", "text": "x", "audio": null}') == InsightFrame(Insight("x", ""))


def test_decode_insight_requires_text() -> None:
    assert decode_frame('{"type": "insight", "audio": "QUJD"}') is None
    assert decode_frame('{"type": "insight", "text": 42}') is None


def test_decode_unknown_type_is_kept_for_logging() -> None:
    frame = decode_frame('{"type": "unknown_type", "data": "some data"}')
    assert isinstance(frame, UnknownFrame)
    assert frame.type == "unknown_type"
    assert frame.payload["data"] == "some data"


def test_decode_invalid_text_is_dropped() -> None:
    assert decode_frame("not json{{") is None
    assert decode_frame("") is None
    assert decode_frame("[1, 2, 3]") is None


def test_decode_binary_json_and_legacy_audio() -> None:
    as_bytes = decode_frame(b'{"type": "insight", "text": "bytes"}')
    assert as_bytes == InsightFrame(Insight("bytes", ""))
    wav = b"RIFF\x24\x00\x00\x00WAVEfmt \xff\xfe"
    assert decode_frame(wav) == LegacyAudioFrame(wav)


def test_decode_preserves_special_characters_and_large_payloads() -> None:
    text = 'Special chars: <>&"\' and unicode: éèê {"nested": "value"}'
    frame = decode_frame(json.dumps({"type": "insight", "text": text}))
    assert isinstance(frame, InsightFrame)
    assert frame.insight.text == text
    big = decode_frame(json.dumps({"type": "insight", "text": "A" * 100_000, "audio": "base64data"}))
    assert isinstance(big, InsightFrame)
    assert len(big.insight.text) == 100_000


def test_route_insight_reaches_sink_and_notifies() -> None:
    sink = _Sink()
    notices: list[tuple[str, str]] = []
    router = MessageRouter(sink, notify=lambda level, msg: notices.append((level, msg)))
    router.route('{"type":"insight","text":"Hello","audio":""}')
    assert sink.calls == [("Hello", "")]
    assert notices == [("info", INSIGHT_NOTICE)]


def test_route_drops_malformed_and_unknown_frames() -> None:
    sink = _Sink()
    router = MessageRouter(sink)
    assert router.route("not json{{") is None
    assert isinstance(router.route('{"type": "heartbeat"}'), UnknownFrame)
    assert sink.calls == []


def test_route_legacy_audio_bypasses_sink() -> None:
    sink = _Sink()
    player = _Player()
    router = MessageRouter(sink, legacy_player=player)
    router.route(b"\x00\x01\x02not-json")
    assert player.blobs == [b"\x00\x01\x02not-json"]
    assert sink.calls == []


def test_route_legacy_audio_without_player_is_ignored() -> None:
    sink = _Sink()
    frame = MessageRouter(sink).route(b"\xff\xfe")
    assert isinstance(frame, LegacyAudioFrame)
    assert sink.calls == []


def test_route_never_raises_when_sink_fails() -> None:
    class _BrokenSink:
        def add_insight(self, text: str, audio: str = "") -> None:
            raise RuntimeError("boom")

    frame = MessageRouter(_BrokenSink()).route('{"type":"insight","text":"x"}')
    assert isinstance(frame, InsightFrame)
