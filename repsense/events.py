"""Minimal synchronous publish/subscribe channel.

Producers own a :class:`Publisher` and call :meth:`Publisher.publish`;
consumers subscribe with a callable and receive every value published after
subscribing, in publish order. Subscribers run on the publisher's thread (the
asyncio loop for BLE callbacks), so they must not block.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class Publisher(Generic[T]):
    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` and return a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, value: T) -> None:
        # Copy so subscribers may unsubscribe while being notified.
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception:  # noqa: BLE001 - isolate subscribers from each other
                logger.exception("Subscriber %r on %s channel failed", callback, self.name)

    def __len__(self) -> int:
        return len(self._subscribers)
