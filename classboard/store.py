"""
Post Store: CRUD and lifecycle transitions for posts.

``PostStore`` is the single owner of post lifecycle transitions. Every
mutation follows the same sequence:

1. Validate (``ValidationError`` aborts with no writes).
2. Persist through the repository (storage errors propagate, no retry).
3. Signal the change bus.
4. Enqueue audit / notification intents on the outbox. The caller never
   waits on them and never sees their failures.

State machine::

    DRAFT -> SCHEDULED -> PUBLISHED (scheduler tick)
    DRAFT -> PUBLISHED
    DRAFT | SCHEDULED | PUBLISHED -> ARCHIVED (archive)
"""

import copy
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from classboard.audit import AuditRecorder, Diff, compute_diff
from classboard.bus import ChangeBus, Subscriber
from classboard.config import Settings, get_settings
from classboard.exceptions import NotFoundError
from classboard.models import (
    INPUT_FIELDS,
    SYSTEM_ACTOR,
    Actor,
    AuditAction,
    AuthorRole,
    NotificationAction,
    Page,
    Post,
    PostFilter,
    PostInput,
    PostStatus,
    merge_patch,
)
from classboard.notifications import NotificationGenerator
from classboard.outbox import Intent, Outbox
from classboard.persistence import PostRepository
from classboard.utils import generate_id, utc_now
from classboard.validation import validate_post

logger = logging.getLogger(__name__)

# Fields audited on creation
CREATE_DIFF_FIELDS = ("title", "type", "status", "audience")

# Changes to these fields re-trigger notification generation
SIGNIFICANT_FIELDS = ("status", "due_at", "title")

# Posts created in these states are not notified (SCHEDULED ones are on publish)
SILENT_STATUSES = frozenset({PostStatus.DRAFT, PostStatus.SCHEDULED, PostStatus.ARCHIVED})


class PostStore:
    """Service object owning post persistence and lifecycle.

    Args:
        repository: Persistence collaborator.
        audit: Recorder for audit events.
        notifications: Notification generator collaborator.
        bus: Change bus. A fresh one is created when omitted.
        outbox: Side-effect outbox. Built from settings when omitted.
        settings: Defaults to :func:`~classboard.config.get_settings`.
        clock: Source of "now" for timestamps and validation.
    """

    def __init__(
        self,
        repository: PostRepository,
        audit: AuditRecorder,
        notifications: NotificationGenerator,
        bus: Optional[ChangeBus] = None,
        outbox: Optional[Outbox] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or get_settings()
        self.repository = repository
        self.audit = audit
        self.notifications = notifications
        self.bus = bus or ChangeBus()
        self.outbox = outbox or Outbox(
            max_attempts=self.settings.outbox_max_attempts,
            base_delay=self.settings.outbox_base_delay,
        )
        self.clock = clock
        self._scheduler: Optional[Any] = None

    # ================================================================
    # READS
    # ================================================================

    async def list(self, post_filter: Optional[PostFilter] = None) -> List[Post]:
        """All posts matching *post_filter*, newest first."""
        posts, _ = await self.repository.list(post_filter or PostFilter())
        return posts

    async def list_paginated(
        self,
        post_filter: Optional[PostFilter] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Page:
        """One page of matching posts plus the total match count.

        Args:
            post_filter: Query filter.
            page: 1-based page number.
            page_size: Defaults to ``Settings.default_page_size``.
        """
        if page < 1:
            raise ValueError(f"page must be >= 1, got {page}")
        if page_size is None:
            page_size = self.settings.default_page_size
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        items, total = await self.repository.list(
            post_filter or PostFilter(),
            offset=(page - 1) * page_size,
            limit=page_size,
        )
        return Page(items=items, total=total, page=page, page_size=page_size)

    async def get_by_id(self, post_id: str) -> Optional[Post]:
        return await self.repository.get(post_id)

    # ================================================================
    # CREATE
    # ================================================================

    async def create(
        self,
        data: PostInput,
        author_name: str,
        author_id: str,
        author_role: AuthorRole,
        allow_past_override: bool = False,
    ) -> Post:
        """Validate and persist a new post.

        Raises:
            ValidationError: If *data* violates any post invariant.
            StorageError: If the repository rejects the insert.
        """
        now = self.clock()
        candidate = Post(
            id=generate_id(),
            author_id=author_id,
            author_name=author_name,
            author_role=author_role,
            created_at=now,
            updated_at=now,
            **data.as_patch(),
        )
        if candidate.status is None:
            candidate.status = PostStatus.PUBLISHED

        post = validate_post(candidate, allow_past_override=allow_past_override, now=now)
        post = await self.repository.insert(post)
        logger.info(
            "[POST_STORE] Created post %s (type=%s, status=%s, audience=%s)",
            post.id,
            post.type.value,
            post.status.value,
            post.audience.value,
        )

        self.bus.notify()

        actor = Actor(id=author_id, name=author_name, role=author_role.value)
        diff = compute_diff(None, post.snapshot(), CREATE_DIFF_FIELDS)
        self._enqueue_audit(AuditAction.CREATE, post, actor, diff)
        if post.status not in SILENT_STATUSES:
            self._enqueue_notification(post, NotificationAction.CREATED)
        return post

    # ================================================================
    # UPDATE
    # ================================================================

    async def update(
        self,
        post_id: str,
        patch: Union[Dict[str, Any], PostInput],
        allow_past_override: bool = False,
        actor: Optional[Actor] = None,
    ) -> Post:
        """Merge *patch* over the stored post, re-validate and persist.

        Raises:
            NotFoundError: If no post has *post_id*.
            ValidationError: If *patch* names a field that cannot be patched,
                moves an ARCHIVED post to another status, or the merged post
                violates an invariant.
        """
        if isinstance(patch, PostInput):
            # An unset status on a full payload keeps the current one
            patch = {
                name: value
                for name, value in patch.as_patch().items()
                if not (name == "status" and value is None)
            }

        current = await self.repository.get(post_id)
        if current is None:
            raise NotFoundError("Post", post_id)

        now = self.clock()
        merged = merge_patch(current, patch)
        merged = validate_post(merged, allow_past_override=allow_past_override, now=now)
        merged.updated_at = now
        updated = await self.repository.update(merged)
        logger.info(
            "[POST_STORE] Updated post %s (fields=%s)",
            post_id,
            sorted(patch.keys()),
        )

        self.bus.notify()

        before = current.snapshot()
        after = updated.snapshot()
        diff = compute_diff(before, after, patch.keys())
        significant = [f for f in SIGNIFICANT_FIELDS if before.get(f) != after.get(f)]
        if significant:
            action = (
                NotificationAction.DEADLINE_CHANGED
                if "due_at" in significant
                else NotificationAction.UPDATED
            )
            self._enqueue_notification(updated, action, previous=current)

        self._enqueue_audit(
            AuditAction.UPDATE,
            updated,
            actor or self._author_actor(current),
            diff,
            meta={
                "status_before": current.status.value,
                "status_after": updated.status.value,
            },
        )
        return updated

    # ================================================================
    # ARCHIVE / DELETE
    # ================================================================

    async def archive(self, post_id: str, actor: Optional[Actor] = None) -> bool:
        """Move a post to ``ARCHIVED``. Archiving twice is a no-op.

        Raises:
            NotFoundError: If no post has *post_id*.
        """
        current = await self.repository.get(post_id)
        if current is None:
            raise NotFoundError("Post", post_id)
        if current.status is PostStatus.ARCHIVED:
            logger.debug("[POST_STORE] Post %s already archived", post_id)
            return True

        archived = replace(current, status=PostStatus.ARCHIVED, updated_at=self.clock())
        archived = await self.repository.update(archived)
        logger.info(
            "[POST_STORE] Archived post %s (was %s)",
            post_id,
            current.status.value,
        )

        self.bus.notify()

        self._enqueue_audit(
            AuditAction.ARCHIVE,
            archived,
            actor or self._author_actor(current),
            compute_diff(current.snapshot(), archived.snapshot(), ["status"]),
            meta={
                "status_before": current.status.value,
                "status_after": archived.status.value,
            },
        )
        return True

    async def delete(self, post_id: str, actor: Optional[Actor] = None) -> bool:
        """Hard-delete a post. The audit entry is built from the live row.

        Raises:
            NotFoundError: If no post has *post_id*.
        """
        current = await self.repository.get(post_id)
        if current is None:
            raise NotFoundError("Post", post_id)

        deleted = await self.repository.delete(post_id)
        if not deleted:
            raise NotFoundError("Post", post_id)
        logger.info("[POST_STORE] Deleted post %s", post_id)

        self.bus.notify()

        # The audit snapshot is the row as it was before removal
        self._enqueue_audit(
            AuditAction.DELETE,
            current,
            actor or self._author_actor(current),
            {"deleted": {"before": False, "after": True}},
            meta={"deleted": True, "status_before": current.status.value},
        )
        return True

    # ================================================================
    # DUPLICATE
    # ================================================================

    async def duplicate(self, post_id: str) -> Optional[PostInput]:
        """Creation-ready copy of a post with a prefixed title.

        Identity, author, status and timestamps are not carried over, so
        the caller must explicitly ``create`` the result.
        """
        post = await self.repository.get(post_id)
        if post is None:
            return None

        values = {name: copy.deepcopy(getattr(post, name)) for name in INPUT_FIELDS}
        values["title"] = f"{self.settings.copy_prefix}{post.title}"
        values["status"] = None
        values["publish_at"] = None
        return PostInput(**values)

    # ================================================================
    # SUBSCRIPTIONS / LIFECYCLE
    # ================================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback; returns its unsubscribe function."""
        return self.bus.subscribe(callback)

    def attach_scheduler(self, scheduler: Any) -> None:
        """Tie a scheduler's lifetime to this store's :meth:`dispose`."""
        self._scheduler = scheduler

    async def dispose(self) -> None:
        """Stop the attached scheduler and drop every subscriber."""
        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None
        self.bus.clear()
        logger.info("[POST_STORE] Disposed")

    # ================================================================
    # SIDE EFFECTS
    # ================================================================

    def notify_published(self, posts: List[Post]) -> None:
        """Signal a batch of scheduler-promoted posts.

        One bus notification for the whole batch, one "created"
        notification per post.
        """
        if not posts:
            return
        self.bus.notify()
        for post in posts:
            self._enqueue_notification(post, NotificationAction.CREATED)
            self._enqueue_audit(
                AuditAction.PUBLISH,
                post,
                SYSTEM_ACTOR,
                {"status": {"before": PostStatus.SCHEDULED.value, "after": post.status.value}},
                meta={
                    "status_before": PostStatus.SCHEDULED.value,
                    "status_after": post.status.value,
                },
            )

    def _enqueue_audit(
        self,
        action: AuditAction,
        post: Post,
        actor: Actor,
        diff: Diff,
        meta: Optional[Dict[str, Any]] = None,
    ) -> None:
        snapshot = copy.deepcopy(post)

        async def record() -> None:
            event = await self.audit.build_event(action, snapshot, actor, diff, meta)
            await self.audit.write(event)

        self.outbox.enqueue(Intent(kind="audit", post_id=post.id, run=record))

    def _enqueue_notification(
        self,
        post: Post,
        action: NotificationAction,
        previous: Optional[Post] = None,
    ) -> None:
        snapshot = copy.deepcopy(post)

        async def generate() -> None:
            await self.notifications.generate(snapshot, action, previous)

        self.outbox.enqueue(Intent(kind="notification", post_id=post.id, run=generate))

    @staticmethod
    def _author_actor(post: Post) -> Actor:
        return Actor(id=post.author_id, name=post.author_name, role=post.author_role.value)


__all__ = ["PostStore", "CREATE_DIFF_FIELDS", "SIGNIFICANT_FIELDS"]
