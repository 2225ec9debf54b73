"""Log context held in contextvars: the request correlation ID and the fulfillment being worked on."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_fulfillment_id: ContextVar[str | None] = ContextVar("fulfillment_id", default=None)


def set_correlation_id(value: str) -> None:
    _correlation_id.set(value)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def get_fulfillment_id() -> str | None:
    return _fulfillment_id.get()


@contextmanager
def fulfillment_context(fulfillment_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with *fulfillment_id*."""
    token = _fulfillment_id.set(fulfillment_id)
    try:
        yield
    finally:
        _fulfillment_id.reset(token)
