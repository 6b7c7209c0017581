from __future__ import annotations

from typing import Any, Sequence

import pytest

from cortex_mentor.core.errors import PLAYBACK_BLOCKED, PlaybackError
from cortex_mentor.services.schemas import HistoryEntry, load_history_message
from cortex_mentor.ui.surface import ChatSurface, display_time


class FakeRenderer:
    def __init__(self) -> None:
        self.rows: list[HistoryEntry] = []
        self.status: bool | None = None
        self.blocked: dict[int, bool] = {}
        self.reveals = 0

    def append_entry(self, index: int, entry: HistoryEntry) -> None:
        assert index == len(self.rows)
        self.rows.append(entry)

    def replace_entries(self, entries: Sequence[HistoryEntry]) -> None:
        self.rows = list(entries)
        self.blocked = {}

    def clear_entries(self) -> None:
        self.rows = []
        self.blocked = {}

    def show_status(self, is_connected: bool) -> None:
        self.status = is_connected

    def mark_playback_blocked(self, index: int, blocked: bool) -> None:
        self.blocked[index] = blocked

    def reveal(self) -> None:
        self.reveals += 1


def _blocked_player(audio: str) -> None:
    raise PlaybackError(PLAYBACK_BLOCKED, "no audio output device available")


@pytest.fixture
def emitted() -> list[dict[str, Any]]:
    return []


def _surface(emitted, **kwargs) -> tuple[ChatSurface, FakeRenderer]:
    renderer = FakeRenderer()
    surface = ChatSurface(emitted.append, renderer=renderer, clock=lambda: "12:34", **kwargs)
    return surface, renderer


def test_display_time_format() -> None:
    value = display_time()
    assert len(value) == 5 and value[2] == ":"


def test_ready_emits_loaded(emitted) -> None:
    surface, _ = _surface(emitted)
    surface.ready()
    assert emitted == [{"type": "webviewLoaded"}]


def test_insight_after_hydration_renders_and_persists(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.post_message(load_history_message([]))
    surface.post_message({"type": "addInsight", "text": "Hello", "audio": ""})

    assert renderer.rows == [HistoryEntry("Hello", "", "12:34")]
    assert emitted == [{"type": "saveHistory", "history": [{"text": "Hello", "audio": "", "timestamp": "12:34"}]}]
    assert renderer.blocked == {}


def test_insight_with_audio_plays_automatically(emitted) -> None:
    played: list[str] = []
    surface, renderer = _surface(emitted, player=played.append)
    surface.load_history([])
    surface.post_message({"type": "addInsight", "text": "Hi", "audio": "QUJD"})
    assert played == ["QUJD"]
    assert renderer.blocked == {}
    assert emitted[-1]["history"] == [{"text": "Hi", "audio": "QUJD", "timestamp": "12:34"}]


def test_blocked_autoplay_marks_entry(emitted) -> None:
    surface, renderer = _surface(emitted, player=_blocked_player)
    surface.load_history([])
    surface.add_insight("Hi", "QUJD")
    assert surface.blocked == {0}
    assert renderer.blocked == {0: True}


def test_no_player_marks_entry_blocked(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.load_history([])
    surface.add_insight("Hi", "QUJD")
    assert renderer.blocked == {0: True}


def test_autoplay_disabled_leaves_entry_alone(emitted) -> None:
    played: list[str] = []
    surface, renderer = _surface(emitted, player=played.append, autoplay=False)
    surface.add_insight("Hi", "QUJD")
    assert played == []
    assert renderer.blocked == {}


def test_early_insights_survive_history_load(emitted) -> None:
    surface, renderer = _surface(emitted, player=_blocked_player)
    surface.add_insight("early", "QUJD")
    assert emitted == []

    stored = [HistoryEntry("old", "", "09:00")]
    surface.post_message(load_history_message(stored))

    assert [e.text for e in surface.entries] == ["old", "early"]
    assert [e.text for e in renderer.rows] == ["old", "early"]
    assert surface.blocked == {1}
    assert renderer.blocked == {1: True}
    assert emitted == [
        {
            "type": "saveHistory",
            "history": [
                {"text": "old", "audio": "", "timestamp": "09:00"},
                {"text": "early", "audio": "QUJD", "timestamp": "12:34"},
            ],
        }
    ]


def test_history_load_without_early_entries_does_not_persist(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.load_history([HistoryEntry("old", "", "09:00")])
    assert emitted == []
    assert renderer.rows == [HistoryEntry("old", "", "09:00")]


def test_later_history_load_replaces_transcript(emitted) -> None:
    surface, renderer = _surface(emitted, player=_blocked_player)
    surface.load_history([])
    surface.add_insight("Hi", "QUJD")
    emitted.clear()

    surface.load_history([HistoryEntry("reloaded")])
    assert surface.entries == [HistoryEntry("reloaded")]
    assert surface.blocked == set()
    assert emitted == []


def test_missing_history_is_ignored(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.add_insight("keep")
    surface.post_message({"type": "loadHistory"})
    assert [e.text for e in surface.entries] == ["keep"]


def test_status_update_is_rendered(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.post_message({"type": "statusUpdate", "isConnected": True})
    assert surface.is_connected is True
    assert renderer.status is True
    surface.post_message({"type": "statusUpdate", "isConnected": False})
    assert renderer.status is False


def test_clear_empties_transcript_and_persists(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.load_history([HistoryEntry("a"), HistoryEntry("b")])
    surface.clear()
    assert surface.entries == []
    assert renderer.rows == []
    assert emitted == [{"type": "saveHistory", "history": []}]


def test_manual_play_clears_blocked_flag(emitted) -> None:
    calls: list[str] = []
    allow = {"value": False}

    def player(audio: str) -> None:
        if not allow["value"]:
            raise PlaybackError(PLAYBACK_BLOCKED, "no audio output device available")
        calls.append(audio)

    surface, renderer = _surface(emitted, player=player)
    surface.load_history([])
    surface.add_insight("Hi", "QUJD")
    assert renderer.blocked == {0: True}

    allow["value"] = True
    assert surface.play(0) is True
    assert calls == ["QUJD"]
    assert renderer.blocked == {0: False}
    assert surface.blocked == set()


def test_manual_play_failure_emits_error(emitted) -> None:
    surface, _ = _surface(emitted, player=_blocked_player, autoplay=False)
    surface.load_history([])
    surface.add_insight("Hi", "QUJD")
    emitted.clear()
    assert surface.play(0) is False
    assert emitted == [{"type": "onError", "value": "Cortex Mentor: no audio output device available"}]


def test_manual_play_without_audio_or_index(emitted) -> None:
    surface, _ = _surface(emitted, player=lambda audio: None)
    surface.add_insight("silent")
    assert surface.play(0) is False
    assert surface.play(5) is False


def test_malformed_insight_fields_are_coerced(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.post_message({"type": "addInsight", "text": "Hi", "audio": None})
    assert renderer.rows == [HistoryEntry("Hi", "", "12:34")]


def test_unknown_message_is_ignored(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.post_message({"type": "bogus"})
    assert renderer.rows == []
    assert emitted == []


def test_reveal_delegates_to_renderer(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.reveal()
    assert renderer.reveals == 1


def test_clear_before_first_load_is_not_undone(emitted) -> None:
    surface, renderer = _surface(emitted)
    surface.ready()
    surface.add_insight("early")
    surface.clear()
    assert emitted[-1] == {"type": "saveHistory", "history": []}

    # the load requested by ready() answers with the old transcript
    surface.post_message(load_history_message([HistoryEntry("old", "", "09:00")]))
    assert surface.entries == []
    assert renderer.rows == []

    surface.add_insight("fresh")
    assert emitted[-1] == {"type": "saveHistory", "history": [{"text": "fresh", "audio": "", "timestamp": "12:34"}]}

    surface.load_history([HistoryEntry("reloaded")])
    assert surface.entries == [HistoryEntry("reloaded")]
