"""In-process change signal for the stores.

Stores expose their state as plain attributes and call `notify()` after every
mutation. Surfaces subscribe a callback and re-read the attributes they care
about; the callback receives the store itself.
"""

import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Observable:
    def __init__(self):
        self._subscribers: list[Callable] = []

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Register *callback*; returns a function that removes it again."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self) -> None:
        # Copy so a callback may unsubscribe itself
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Subscriber raised while handling a change", extra={"source": type(self).__name__})
