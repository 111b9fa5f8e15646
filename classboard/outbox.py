"""
Side-effect outbox for post mutations.

Audit recording and notification generation are enqueued here after the
primary write and run as tracked background tasks with exponential-backoff
retry. The caller of the mutation never awaits them: once the retries are
exhausted the failure is logged and dropped.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Deque, Set

from classboard.exceptions import RetryExhaustedError
from classboard.utils import utc_now, with_retry

logger = logging.getLogger(__name__)


@dataclass
class Intent:
    """One pending side effect.

    Attributes:
        kind: ``"audit"`` or ``"notification"``.
        post_id: Post the side effect belongs to.
        run: Zero-argument coroutine factory performing the effect.
        enqueued_at: When the intent was enqueued.
    """

    kind: str
    post_id: str
    run: Callable[[], Awaitable[None]]
    enqueued_at: datetime = field(default_factory=utc_now)

    @property
    def label(self) -> str:
        return f"{self.kind}:{self.post_id}"


class Outbox:
    """Runs intents in the background with retry.

    Args:
        max_attempts: Attempts per intent before giving up.
        base_delay: Initial retry delay in seconds (doubles each retry).
        max_failed: How many dropped intents to keep in ``failed``; the
            oldest are discarded first.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_failed: int = 100,
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._pending_tasks: Set["asyncio.Task[None]"] = set()
        self.failed: Deque[Intent] = deque(maxlen=max_failed)

    def enqueue(self, intent: Intent) -> "asyncio.Task[None]":
        """Start *intent* in the background and return its task.

        Must be called from within a running event loop.
        """
        task = asyncio.create_task(self._process(intent), name=f"outbox-{intent.label}")
        self._pending_tasks.add(task)
        task.add_done_callback(self._pending_tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending_tasks)

    async def drain(self) -> None:
        """Wait until every enqueued intent (including ones enqueued meanwhile) is done."""
        while self._pending_tasks:
            await asyncio.gather(*list(self._pending_tasks), return_exceptions=True)

    async def _process(self, intent: Intent) -> None:
        @with_retry(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            operation_name=f"outbox {intent.label}",
        )
        async def attempt() -> None:
            await intent.run()

        try:
            await attempt()
        except RetryExhaustedError as exc:
            self.failed.append(intent)
            logger.error(
                "[OUTBOX] Dropping %s after %d attempts (enqueued %s): %r",
                intent.label,
                exc.attempts,
                intent.enqueued_at.isoformat(),
                exc.last_error,
            )


__all__ = ["Intent", "Outbox"]
