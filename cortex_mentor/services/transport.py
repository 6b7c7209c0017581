"""WebSocket transport to the Cortex backend."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import WebSocketException

from ..core.errors import TransportError
from ..core.logger import get_logger
from ..core.trace import new_connection_id, set_connection_id
from ..state.connection import ConnectionState, ConnectionStatus

log = get_logger("transport")

MessageCallback = Callable[[Any], None]
StateCallback = Callable[[ConnectionState], None]

# ValueError: URLs the connector cannot parse (bad port, bad host).
_TRANSPORT_ERRORS = (OSError, asyncio.TimeoutError, WebSocketException, ValueError)


class TransportClient:
    """Single WebSocket connection with an explicit lifecycle.

    ``connect`` and ``disconnect`` must run on the event loop thread and
    return immediately; lifecycle changes are reported via ``on_state``.
    There is no automatic reconnection: a closed connection stays closed
    until ``connect`` is called again.
    """

    def __init__(
        self,
        *,
        on_message: MessageCallback,
        on_state: Optional[StateCallback] = None,
        connector: Callable[..., Any] = ws_connect,
        max_size: int | None = 2**20,
    ) -> None:
        self._on_message_cb = on_message
        self._state_listeners: list[StateCallback] = []
        if on_state is not None:
            self._state_listeners.append(on_state)
        self._connector = connector
        self._max_size = max_size
        self._state = ConnectionState()
        self._task: Optional[asyncio.Task[None]] = None
        self._websocket: Any = None
        self._close_task: Optional[asyncio.Task[None]] = None
        self.last_error: TransportError | None = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_active(self) -> bool:
        """True while a connection is being opened or is open."""
        return self._task is not None

    def add_state_listener(self, callback: StateCallback) -> None:
        self._state_listeners.append(callback)

    def connect(self, url: str) -> bool:
        """Open a connection to ``url`` unless one is already active."""
        if self._task is not None:
            log.info("connect ignored: connection already %s", self._state.status.value)
            return False
        self.last_error = None
        self._set_state(ConnectionState(ConnectionStatus.CONNECTING))
        self._task = asyncio.get_running_loop().create_task(self._run(url))
        return True

    def disconnect(self) -> None:
        """Close the active connection; no-op when there is none."""
        task = self._task
        if task is None:
            return
        websocket = self._websocket
        if websocket is None:
            task.cancel()
            return
        if self._close_task is None:
            self._close_task = asyncio.get_running_loop().create_task(websocket.close())

    async def wait_closed(self) -> None:
        """Wait until the current connection (if any) has fully closed."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    # ------------------------------------------------------------------ #
    # Connection task
    # ------------------------------------------------------------------ #
    async def _run(self, url: str) -> None:
        cid = new_connection_id()
        log.info("connecting to %s", url)
        try:
            async with self._connector(url, max_size=self._max_size) as websocket:
                self._websocket = websocket
                self._opened()
                async for raw in websocket:
                    self._message(raw)
        except asyncio.CancelledError:
            log.info("connection cancelled")
            raise
        except _TRANSPORT_ERRORS as exc:
            self._errored(exc)
        finally:
            self._closed()
            set_connection_id(None)
            log.debug("connection %s finished", cid)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def _opened(self) -> None:
        log.info("connected to backend")
        self._set_state(ConnectionState(ConnectionStatus.CONNECTED))

    def _message(self, raw: Any) -> None:
        try:
            self._on_message_cb(raw)
        except Exception:
            log.exception("message handler failed")

    def _errored(self, exc: BaseException) -> None:
        reason = str(exc) or exc.__class__.__name__
        log.error("websocket error: %s", reason)
        self.last_error = TransportError(message=reason)
        self._set_state(ConnectionState(ConnectionStatus.ERROR, error=reason))

    def _closed(self) -> None:
        log.info("disconnected from backend")
        self._websocket = None
        self._close_task = None
        self._task = None
        error = self._state.error if self._state.status is ConnectionStatus.ERROR else None
        self._set_state(ConnectionState(ConnectionStatus.DISCONNECTED, error=error))

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        for listener in list(self._state_listeners):
            try:
                listener(state)
            except Exception:
                log.exception("state listener failed")
