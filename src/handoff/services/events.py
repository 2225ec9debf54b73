"""Change notifications for the fulfillment collection."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from handoff.domain.models import Fulfillment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FulfillmentChanged:
    """Published after a mutation has been persisted."""

    action: str
    fulfillment_id: str
    fulfillments: list[Fulfillment]


Listener = Callable[[FulfillmentChanged], None]


class FulfillmentEvents:
    """Explicit publish/subscribe channel owned by one repository."""

    def __init__(self) -> None:
        self._listeners: dict[int, Listener] = {}
        self._next_handle = 0

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        handle = self._next_handle
        self._next_handle += 1
        self._listeners[handle] = listener

        def unsubscribe() -> None:
            self._listeners.pop(handle, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, event: FulfillmentChanged) -> None:
        """Deliver *event* to every listener; a failing listener is logged and skipped."""
        for listener in list(self._listeners.values()):
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Listener %r failed on %s event for %s",
                    listener,
                    event.action,
                    event.fulfillment_id,
                )
