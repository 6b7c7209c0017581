"""Unified configuration for the Cortex Mentor client."""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from websockets.exceptions import InvalidURI
from websockets.uri import parse_uri

from .errors import CONFIG_INVALID, ConfigError

DEFAULT_BACKEND_URL = "ws://localhost:8000/ws"
DEFAULT_DATA_DIR = "~/.cortex_mentor"

log = logging.getLogger("cortex.config")


def data_dir() -> Path:
    """Directory holding config.json, the history database and logs."""
    return Path(os.environ.get("CORTEX_DATA_DIR") or DEFAULT_DATA_DIR).expanduser()


def config_path() -> Path:
    """User configuration file layered under environment variables."""
    return data_dir() / "config.json"


def check_backend_url(value: str) -> str:
    """Return ``value`` stripped, raising ``ValueError`` unless it is a usable WebSocket URL."""
    value = value.strip()
    if not value.startswith(("ws://", "wss://")):
        raise ValueError("backend_url must use the ws:// or wss:// scheme")
    try:
        parse_uri(value)
    except (InvalidURI, ValueError) as exc:
        raise ValueError(f"backend_url is not a valid WebSocket URL: {exc}") from exc
    return value


class Settings(BaseSettings):
    """Client settings."""

    model_config = SettingsConfigDict(
        env_prefix="CORTEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Backend
    backend_url: str = DEFAULT_BACKEND_URL
    auto_connect: bool = True
    max_frame_mb: int = 100

    # Storage
    data_dir: str = DEFAULT_DATA_DIR
    history_db: str | None = None
    history_key: str = "cortex.chatHistory"

    # Audio and notifications
    autoplay_audio: bool = True
    legacy_audio_enabled: bool = True
    notify_on_insight: bool = True

    # Logs
    log_rotate_mb: int = 5
    log_retention_days: int = 7
    log_level: str = "INFO"

    @field_validator("backend_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        return check_backend_url(value)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls.json_config_settings_source,
            file_secret_settings,
        )

    @staticmethod
    def json_config_settings_source() -> dict[str, object]:
        """Load config.json from the data directory when present."""
        return valid_overrides(read_user_config())

    @property
    def root_dir(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def history_path(self) -> Path:
        if self.history_db:
            return Path(self.history_db).expanduser()
        return self.root_dir / "history.db"

    @property
    def log_dir(self) -> Path:
        return self.root_dir / "logs"

    @property
    def max_frame_bytes(self) -> int | None:
        if self.max_frame_mb <= 0:
            return None
        return self.max_frame_mb * 1024 * 1024


def read_user_config(path: Path | None = None) -> dict[str, Any]:
    """Return the JSON user overrides, or an empty mapping."""
    path = path or config_path()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def valid_overrides(overrides: dict[str, Any]) -> dict[str, Any]:
    """Keep the overrides that validate on their own; drop the others with a warning."""
    valid: dict[str, Any] = {}
    for key, value in overrides.items():
        try:
            Settings.model_validate({key: value})
        except ValidationError as exc:
            log.warning("ignoring invalid config override %s: %s", key, exc.errors()[0].get("msg", exc))
            continue
        valid[key] = value
    return valid


def write_user_config(updates: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    """Merge ``updates`` into config.json after validation and return the result."""
    path = path or config_path()
    payload = {**valid_overrides(read_user_config(path)), **updates}
    try:
        Settings.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(CONFIG_INVALID, "invalid configuration", details=exc.errors()) from exc
    path.parent.mkdir(parents=True, exist_ok=True)
    content = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    path.write_text(content, encoding="utf-8")
    return payload


@lru_cache()
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()
