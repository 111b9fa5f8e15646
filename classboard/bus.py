"""In-process change notification bus.

``notify()`` carries no payload: subscribers re-query the store. Callbacks
run synchronously in the emitter's turn, so anything slow should hand off to
its own task.
"""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

Subscriber = Callable[[], None]


class ChangeBus:
    """Minimal publish/subscribe registry for "posts changed" signals."""

    def __init__(self) -> None:
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it.

        The returned function is idempotent.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass

        return unsubscribe

    def notify(self) -> None:
        """Invoke every subscriber; one failing callback never stops the rest."""
        # Copy so callbacks may unsubscribe while we iterate
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                logger.exception("[BUS] Subscriber %r raised", callback)

    def clear(self) -> None:
        self._subscribers.clear()

    def __len__(self) -> int:
        return len(self._subscribers)


__all__ = ["ChangeBus", "Subscriber"]
