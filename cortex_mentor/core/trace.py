from __future__ import annotations

import uuid
from contextvars import ContextVar


_connection_id: ContextVar[str | None] = ContextVar("connection_id", default=None)


def new_connection_id() -> str:
    cid = uuid.uuid4().hex[:12]
    _connection_id.set(cid)
    return cid


def set_connection_id(cid: str | None) -> None:
    _connection_id.set(cid)


def get_connection_id() -> str | None:
    return _connection_id.get()
