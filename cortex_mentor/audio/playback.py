"""Audio helpers: base64 insight audio and legacy WAV playback."""

from __future__ import annotations

import base64
import binascii
import contextlib
import os
import subprocess
import sys
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional

from ..core.errors import PLAYBACK_FAILED, PlaybackError
from ..core.logger import get_logger

log = get_logger("playback")

CommandBuilder = Callable[[Path], list[str]]


def decode_audio(audio_b64: str) -> bytes:
    """Decode base64 insight audio, raising ``PlaybackError`` when invalid."""
    if not audio_b64:
        raise PlaybackError(PLAYBACK_FAILED, "no audio attached")
    try:
        return base64.b64decode(audio_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PlaybackError(PLAYBACK_FAILED, f"invalid base64 audio: {exc}") from exc


def default_player_command(path: Path) -> list[str]:
    """Command line of the host's default audio player for ``path``."""
    if sys.platform == "darwin":
        return ["afplay", str(path)]
    if sys.platform.startswith("win"):
        script = f"(New-Object Media.SoundPlayer '{path}').PlaySync()"
        return ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]
    return ["aplay", "-q", str(path)]


class LegacyAudioPlayer:
    """Play raw WAV frames through the operating system player.

    Each blob is written to a temporary file which is removed once the
    player exits, whether playback succeeded or not.
    """

    def __init__(self, command: Optional[CommandBuilder] = None, *, timeout: float | None = 120.0) -> None:
        self._command = command or default_player_command
        self._timeout = timeout

    def play(self, data: bytes) -> Optional[threading.Thread]:
        """Start playback in the background and return the worker thread."""
        if not data:
            log.info("legacy audio frame is empty, ignoring")
            return None
        thread = threading.Thread(target=self._play_blob, args=(bytes(data),), daemon=True)
        thread.start()
        return thread

    def _play_blob(self, data: bytes) -> None:
        fd, name = tempfile.mkstemp(prefix="cortex-audio-", suffix=".wav")
        path = Path(name)
        try:
            with os.fdopen(fd, "wb") as stream:
                stream.write(data)
            command = self._command(path)
            log.info("playing legacy audio (%d bytes) with %s", len(data), command[0])
            subprocess.run(command, check=True, capture_output=True, timeout=self._timeout)
        except (OSError, subprocess.SubprocessError) as exc:
            log.error("legacy audio playback failed: %s", exc)
        finally:
            with contextlib.suppress(OSError):
                path.unlink()
