from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import typer

from cortex_mentor.core.config import Settings, check_backend_url, config_path, get_settings, read_user_config, write_user_config
from cortex_mentor.core.errors import ConfigError, MentorError
from cortex_mentor.core.history import HistoryStore
from cortex_mentor.core.logger import get_logger
from cortex_mentor.runtime.controller import MentorController
from cortex_mentor.services.schemas import HistoryEntry, entries_to_payload
from cortex_mentor.state.connection import ConnectionState, ConnectionStatus, status_label
from cortex_mentor.ui.surface import ChatSurface

log = get_logger("cli")

cli = typer.Typer(name="cortex-mentor", help="Cortex Mentor client", no_args_is_help=True)
history_cli = typer.Typer(help="Chat history")
config_cli = typer.Typer(help="Configuration")

cli.add_typer(history_cli, name="history")
cli.add_typer(config_cli, name="config")


def _format_entry(entry: HistoryEntry) -> str:
    line = f"[{entry.timestamp or '--:--'}] Cortex Mentor: {entry.text}"
    if entry.audio:
        line += "  (audio)"
    return line


class ConsoleRenderer:
    """Print the chat surface to the terminal."""

    def append_entry(self, index: int, entry: HistoryEntry) -> None:
        typer.echo(_format_entry(entry))

    def replace_entries(self, entries: Sequence[HistoryEntry]) -> None:
        if entries:
            typer.echo(f"-- {len(entries)} message(s) restored --")
        for entry in entries:
            typer.echo(_format_entry(entry))

    def clear_entries(self) -> None:
        typer.echo("-- chat cleared --")

    def show_status(self, is_connected: bool) -> None:
        return None

    def mark_playback_blocked(self, index: int, blocked: bool) -> None:
        return None

    def reveal(self) -> None:
        return None


def _echo_notice(level: str, message: str) -> None:
    typer.echo(message, err=level == "error")


def _echo_state(state: ConnectionState) -> None:
    label = status_label(state)
    typer.echo(label.tooltip, err=state.status is ConnectionStatus.ERROR)


async def _listen(settings: Settings, url: str, *, connector: Optional[Callable[..., Any]] = None) -> int:
    """Run a console session until the connection closes."""
    controller = MentorController(
        settings,
        loop=asyncio.get_running_loop(),
        notify=_echo_notice,
        on_state=_echo_state,
        connector=connector,
    )
    surface = ChatSurface(controller.surface_message, renderer=ConsoleRenderer(), autoplay=False)
    controller.attach_surface(surface)
    surface.ready()
    controller.connect(url)
    try:
        await controller.transport.wait_closed()
    finally:
        await controller.sink.wait_idle()
    return 1 if controller.transport.last_error is not None else 0


@cli.command()
def run() -> None:
    """Open the desktop chat window."""
    from cortex_mentor.app import run as run_app

    raise typer.Exit(code=run_app())


@cli.command()
def listen(
    url: Optional[str] = typer.Option(None, "--url", help="Backend WebSocket URL"),
) -> None:
    """Print insights in the terminal until the backend disconnects."""
    settings = get_settings()
    try:
        target = check_backend_url(url or settings.backend_url)
    except ValueError as exc:
        typer.echo(f"Invalid URL {url or settings.backend_url!r}: {exc}", err=True)
        raise typer.Exit(code=2)
    try:
        code = asyncio.run(_listen(settings, target))
    except KeyboardInterrupt:
        code = 130
    raise typer.Exit(code=code)


def _history_store() -> HistoryStore:
    settings = get_settings()
    return HistoryStore.at(settings.history_path, key=settings.history_key)


def _load_entries() -> list[HistoryEntry]:
    try:
        return asyncio.run(_history_store().load())
    except MentorError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=1)


@history_cli.command("show")
def history_show(as_json: bool = typer.Option(False, "--json", help="Raw JSON output")) -> None:
    entries = _load_entries()
    if as_json:
        typer.echo(json.dumps(entries_to_payload(entries), ensure_ascii=False))
        return
    if not entries:
        typer.echo("No chat history.")
        return
    for entry in entries:
        typer.echo(_format_entry(entry))


@history_cli.command("export")
def history_export(path: Path = typer.Argument(..., help="Destination JSON file")) -> None:
    entries = _load_entries()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(entries_to_payload(entries), ensure_ascii=False, indent=2), encoding="utf-8")
    typer.echo(f"Exported {len(entries)} message(s) to {path}")


@history_cli.command("clear")
def history_clear(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation")) -> None:
    if not yes and not typer.confirm("Delete the stored chat history?"):
        raise typer.Exit(code=1)
    try:
        asyncio.run(_history_store().clear())
    except MentorError as exc:
        typer.echo(exc.message, err=True)
        raise typer.Exit(code=1)
    typer.echo("Chat history cleared.")


@config_cli.command("show")
def config_show() -> None:
    settings = get_settings()
    payload = settings.model_dump(mode="json")
    payload["config_file"] = str(config_path())
    payload["overrides"] = sorted(read_user_config())
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@config_cli.command("set-url")
def config_set_url(url: str = typer.Argument(..., help="Backend WebSocket URL")) -> None:
    try:
        write_user_config({"backend_url": url})
    except ConfigError as exc:
        typer.echo(f"{exc.message}: {url}", err=True)
        typer.echo(json.dumps(exc.to_payload(), ensure_ascii=False, default=str), err=True)
        raise typer.Exit(code=1)
    get_settings.cache_clear()
    log.info("backend URL set to %s", url)
    typer.echo(f"Backend URL set to {url}")


if __name__ == "__main__":
    cli()
