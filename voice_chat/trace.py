"""Correlation id of the conversation turn being processed."""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_turn_id: ContextVar[str | None] = ContextVar("voice_chat_turn_id", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex[:12]


@contextmanager
def turn_trace(trace_id: str) -> Iterator[str]:
    """Tag log records emitted inside the block with ``trace_id``."""
    token = _turn_id.set(trace_id)
    try:
        yield trace_id
    finally:
        _turn_id.reset(token)


def get_trace_id() -> str | None:
    return _turn_id.get()
