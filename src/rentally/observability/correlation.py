"""Correlation ids tying together the log lines of one request or one worker tick.

HTTP requests get theirs from the X-Correlation-ID header (or a fresh one)
in the app middleware; the periodic worker binds one per tick with
``correlation_scope``. Loggers read it through ``get_correlation_id``.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_current: ContextVar[str] = ContextVar("rentally_correlation_id", default="")


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """The bound id, or "" outside any request or tick."""
    return _current.get()


def set_correlation_id(cid: str) -> Token[str]:
    return _current.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    _current.reset(token)


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind ``cid`` (or a new id) until the block exits."""
    token = set_correlation_id(cid or generate_correlation_id())
    try:
        yield get_correlation_id()
    finally:
        reset_correlation_id(token)
