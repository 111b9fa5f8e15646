"""
Persistence collaborator for posts.

``PostRepository`` is the contract the Post Store and the scheduling engine
depend on. ``InMemoryPostRepository`` implements it over a dict and backs
the test suite and local runs; the Supabase adapter lives in
:mod:`classboard.database`.
"""

import copy
import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Tuple

from classboard.exceptions import ConflictError, NotFoundError
from classboard.models import Audience, Post, PostFilter, PostStatus

logger = logging.getLogger(__name__)


class PostRepository(Protocol):
    """Filtered/paginated read, insert, update, conditional promotion, delete."""

    async def list(
        self, post_filter: PostFilter, offset: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Post], int]:
        """Matching posts newest first, plus the total match count."""
        ...

    async def get(self, post_id: str) -> Optional[Post]: ...

    async def insert(self, post: Post) -> Post: ...

    async def update(self, post: Post) -> Post:
        """Overwrite the stored row for ``post.id``; raise ``NotFoundError`` if gone."""
        ...

    async def promote_due(self, now: datetime) -> List[Post]:
        """Set ``PUBLISHED`` on every post still ``SCHEDULED`` with ``publish_at <= now``.

        Returns only the rows this call transitioned.
        """
        ...

    async def delete(self, post_id: str) -> bool: ...


# =============================================================================
# FILTER MATCHING
# =============================================================================


def matches_filter(post: Post, post_filter: PostFilter) -> bool:
    """Apply ``PostFilter`` semantics to a single post.

    SCHEDULED posts only match when the filter explicitly asks for them.
    """
    if post_filter.status is not PostStatus.SCHEDULED and post.status is PostStatus.SCHEDULED:
        return False
    if post_filter.status is not None and post.status is not post_filter.status:
        return False
    if post_filter.type is not None and post.type is not post_filter.type:
        return False
    if post_filter.class_id is not None:
        if post.audience is not Audience.CLASS or post_filter.class_id not in post.class_ids:
            return False
    if post_filter.author_role is not None and post.author_role is not post_filter.author_role:
        return False
    if post_filter.query:
        needle = post_filter.query.lower()
        if needle not in post.title.lower() and needle not in (post.body or "").lower():
            return False
    return True


# =============================================================================
# IN-MEMORY REPOSITORY
# =============================================================================


class InMemoryPostRepository:
    """Dict-backed ``PostRepository``. Stores and returns copies."""

    def __init__(self) -> None:
        self._rows: Dict[str, Post] = {}

    async def list(
        self, post_filter: PostFilter, offset: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Post], int]:
        matches = [p for p in self._rows.values() if matches_filter(p, post_filter)]
        matches.sort(key=lambda p: p.created_at, reverse=True)
        total = len(matches)
        end = None if limit is None else offset + limit
        return [copy.deepcopy(p) for p in matches[offset:end]], total

    async def get(self, post_id: str) -> Optional[Post]:
        post = self._rows.get(post_id)
        return copy.deepcopy(post) if post is not None else None

    async def insert(self, post: Post) -> Post:
        if post.id in self._rows:
            raise ConflictError(f"Post {post.id} already exists", code="23505")
        self._rows[post.id] = copy.deepcopy(post)
        return copy.deepcopy(post)

    async def update(self, post: Post) -> Post:
        if post.id not in self._rows:
            raise NotFoundError("Post", post.id)
        self._rows[post.id] = copy.deepcopy(post)
        return copy.deepcopy(post)

    async def promote_due(self, now: datetime) -> List[Post]:
        promoted: List[Post] = []
        for post_id, post in list(self._rows.items()):
            if (
                post.status is PostStatus.SCHEDULED
                and post.publish_at is not None
                and post.publish_at <= now
            ):
                updated = replace(post, status=PostStatus.PUBLISHED, updated_at=now)
                self._rows[post_id] = updated
                promoted.append(copy.deepcopy(updated))
        return promoted

    async def delete(self, post_id: str) -> bool:
        return self._rows.pop(post_id, None) is not None

    def __len__(self) -> int:
        return len(self._rows)


__all__ = ["PostRepository", "matches_filter", "InMemoryPostRepository"]
