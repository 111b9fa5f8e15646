"""
Background scheduler that promotes SCHEDULED posts once they are due.

``PublishingScheduler`` runs as an asyncio background task: one tick at
start (configurable), then one every ``interval_seconds`` plus an optional
random jitter. A tick asks the repository to flip every post with
``status = SCHEDULED`` and ``publish_at <= now`` to ``PUBLISHED``; the
update is conditioned on the status still being ``SCHEDULED``, so
overlapping ticks in one process never double-promote. Multiple scheduler
processes are not coordinated.
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Callable, List, Optional

from classboard.config import Settings, get_settings
from classboard.models import Post
from classboard.store import PostStore
from classboard.utils import utc_now

logger = logging.getLogger(__name__)


class PublishingScheduler:
    """Periodically promotes due scheduled posts for one ``PostStore``.

    Args:
        store: Store whose repository is polled and whose bus and outbox
            receive the publish signals.
        interval_seconds: Delay between ticks. Defaults to
            ``Settings.scheduler_interval_seconds``.
        jitter_seconds: Upper bound of a uniform random delay added to
            each interval. Defaults to ``Settings.scheduler_jitter_seconds``.
        run_on_start: Tick immediately when started. Defaults to
            ``Settings.scheduler_run_on_start``.
        clock: Source of "now" for the due check.
    """

    def __init__(
        self,
        store: PostStore,
        interval_seconds: Optional[float] = None,
        jitter_seconds: Optional[float] = None,
        run_on_start: Optional[bool] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.store = store
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None
            else settings.scheduler_interval_seconds
        )
        self.jitter_seconds = (
            jitter_seconds if jitter_seconds is not None
            else settings.scheduler_jitter_seconds
        )
        self.run_on_start = (
            run_on_start if run_on_start is not None
            else settings.scheduler_run_on_start
        )
        self.clock = clock
        self._running: bool = False
        self._task: Optional["asyncio.Task[None]"] = None
        self._tick_count: int = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # ================================================================
    # LIFECYCLE
    # ================================================================

    def start(self) -> "asyncio.Task[None]":
        """Start the background loop and attach to the store's ``dispose``.

        Starting an already running scheduler returns the existing task.
        """
        if self._task is not None and not self._task.done():
            return self._task
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="publishing-scheduler")
        self.store.attach_scheduler(self)
        logger.info(
            "[SCHEDULER] Publishing scheduler started (interval=%.1fs, jitter=%.1fs)",
            self.interval_seconds,
            self.jitter_seconds,
        )
        return self._task

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("[SCHEDULER] Publishing scheduler stopped")

    async def dispose(self) -> None:
        await self.stop()

    # ================================================================
    # TICK
    # ================================================================

    async def run_once(self) -> List[Post]:
        """Run a single promotion tick.

        Returns:
            The posts this tick transitioned to ``PUBLISHED``.

        Raises:
            StorageError: If the conditional update fails.
        """
        promoted = await self.store.repository.promote_due(self.clock())
        self._tick_count += 1
        if not promoted:
            logger.debug("[SCHEDULER] No scheduled posts due")
            return promoted

        logger.info(
            "[SCHEDULER] Published %d scheduled posts: %s",
            len(promoted),
            [p.id for p in promoted],
        )
        self.store.notify_published(promoted)
        return promoted

    async def _loop(self) -> None:
        if not self.run_on_start:
            await asyncio.sleep(self._next_delay())

        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                # Retried on the next tick
                logger.exception("[SCHEDULER] Promotion tick failed")

            await asyncio.sleep(self._next_delay())

    def _next_delay(self) -> float:
        if self.jitter_seconds <= 0:
            return self.interval_seconds
        return self.interval_seconds + random.uniform(0, self.jitter_seconds)


__all__ = ["PublishingScheduler"]
