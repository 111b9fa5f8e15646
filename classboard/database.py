"""
Supabase adapters for the post core.

ALL Supabase calls made by classboard go through the classes defined here:

- ``SupabasePostRepository``: ``PostRepository`` over the ``posts`` table
- ``SupabaseAuditSink``: ``AuditSink`` over the ``audit_events`` table
- ``SupabaseClassNameResolver``: class id -> name over the ``classes`` table

Backend failures are classified into the storage error taxonomy: PostgREST
code ``23505`` -> ``ConflictError``, ``42501`` -> ``PermissionDeniedError``,
anything else -> ``StorageError``.

Usage::

    from classboard.database import SupabaseConfig, create_supabase_client

    client = await create_supabase_client(SupabaseConfig.from_env())
    repo = SupabasePostRepository(client)
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from supabase import AsyncClient, create_async_client

from classboard.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    FieldError,
)
from classboard.models import (
    AuditEvent,
    Audience,
    AuthorRole,
    Post,
    PostFilter,
    PostStatus,
    PostType,
)
from classboard.utils import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

POSTS_TABLE = "posts"
AUDIT_TABLE = "audit_events"
CLASSES_TABLE = "classes"

UNIQUE_VIOLATION = "23505"
INSUFFICIENT_PRIVILEGE = "42501"


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The service-role key (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config from ``SUPABASE_URL`` and ``SUPABASE_SERVICE_KEY``.

        Raises:
            ValueError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


async def create_supabase_client(config: Optional[SupabaseConfig] = None) -> AsyncClient:
    """Create the async Supabase client (``SupabaseConfig.from_env`` by default)."""
    config = config or SupabaseConfig.from_env()
    return await create_async_client(config.url, config.key)


# =============================================================================
# ERROR CLASSIFICATION
# =============================================================================


def classify_error(exc: Exception, operation: str) -> StorageError:
    """Map a backend exception onto the storage error taxonomy."""
    if isinstance(exc, APIError):
        code = str(exc.code) if exc.code is not None else None
        message = f"{operation} failed: {exc.message or exc}"
        if code == UNIQUE_VIOLATION:
            return ConflictError(message, code=code)
        if code == INSUFFICIENT_PRIVILEGE:
            return PermissionDeniedError(message, code=code)
        return StorageError(message, code=code)
    return StorageError(f"{operation} failed: {exc}")


async def _execute(query: Any, operation: str) -> Any:
    try:
        return await query.execute()
    except Exception as exc:
        error = classify_error(exc, operation)
        logger.error("[DATABASE] %s (code=%s)", error, error.code)
        raise error from exc


# =============================================================================
# ROW CONVERSION
# =============================================================================


def post_to_row(post: Post) -> Dict[str, Any]:
    """Convert a ``Post`` into a ``posts`` row dict."""
    return {
        "id": post.id,
        "type": post.type.value,
        "title": post.title,
        "body": post.body,
        "attachments": list(post.attachments),
        "audience": post.audience.value,
        "class_ids": list(post.class_ids),
        "due_at": format_timestamp(post.due_at),
        "event_start_at": format_timestamp(post.event_start_at),
        "event_end_at": format_timestamp(post.event_end_at),
        "event_location": post.event_location,
        "status": post.status.value,
        "publish_at": format_timestamp(post.publish_at),
        "author_id": post.author_id,
        "author_name": post.author_name,
        "author_role": post.author_role.value,
        "activity_meta": post.activity_meta,
        "meta": post.meta,
        "allow_invitations": post.allow_invitations,
        "allow_attachments": post.allow_attachments,
        "created_at": format_timestamp(post.created_at),
        "updated_at": format_timestamp(post.updated_at),
    }


def row_to_post(row: Dict[str, Any]) -> Post:
    """Convert a ``posts`` row dict into a ``Post``.

    Raises:
        ValidationError: If a required column is missing or holds an
            unknown enum value.
    """
    errors: List[FieldError] = []
    for column in ("id", "type", "title", "audience", "status"):
        if not row.get(column):
            errors.append(FieldError(column, "Row missing required column", row.get(column)))
    if errors:
        raise ValidationError(errors)

    try:
        post_type = PostType(row["type"])
        audience = Audience(row["audience"])
        status = PostStatus(row["status"])
        author_role = AuthorRole(row.get("author_role") or AuthorRole.TEACHER.value)
    except ValueError as exc:
        raise ValidationError([FieldError("row", str(exc), row.get("id"))]) from exc

    created_at = parse_timestamp(row.get("created_at")) or utc_now()
    return Post(
        id=row["id"],
        type=post_type,
        title=row["title"],
        audience=audience,
        author_id=row.get("author_id") or "",
        author_name=row.get("author_name") or "",
        author_role=author_role,
        status=status,
        body=row.get("body"),
        attachments=list(row.get("attachments") or []),
        class_ids=list(row.get("class_ids") or []),
        due_at=parse_timestamp(row.get("due_at")),
        activity_meta=row.get("activity_meta"),
        event_start_at=parse_timestamp(row.get("event_start_at")),
        event_end_at=parse_timestamp(row.get("event_end_at")),
        event_location=row.get("event_location"),
        publish_at=parse_timestamp(row.get("publish_at")),
        meta=row.get("meta"),
        allow_invitations=bool(row.get("allow_invitations", False)),
        allow_attachments=bool(row.get("allow_attachments", False)),
        created_at=created_at,
        updated_at=parse_timestamp(row.get("updated_at")) or created_at,
    )


# =============================================================================
# POST REPOSITORY
# =============================================================================


class SupabasePostRepository:
    """``PostRepository`` backed by the Supabase ``posts`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def list(
        self, post_filter: PostFilter, offset: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Post], int]:
        query = self.client.table(POSTS_TABLE).select("*", count="exact")

        # Scheduled posts stay hidden unless explicitly requested
        if post_filter.status is not PostStatus.SCHEDULED:
            query = query.neq("status", PostStatus.SCHEDULED.value)
        if post_filter.status is not None:
            query = query.eq("status", post_filter.status.value)
        if post_filter.type is not None:
            query = query.eq("type", post_filter.type.value)
        if post_filter.class_id is not None:
            query = query.eq("audience", Audience.CLASS.value).contains(
                "class_ids", [post_filter.class_id]
            )
        if post_filter.author_role is not None:
            query = query.eq("author_role", post_filter.author_role.value)
        if post_filter.query:
            term = post_filter.query.replace(",", " ")
            query = query.or_(f"title.ilike.%{term}%,body.ilike.%{term}%")

        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        result = await _execute(query, "list posts")
        posts = [row_to_post(row) for row in result.data or []]
        return posts, result.count if result.count is not None else len(posts)

    async def get(self, post_id: str) -> Optional[Post]:
        result = await _execute(
            self.client.table(POSTS_TABLE).select("*").eq("id", post_id).limit(1),
            f"get post {post_id}",
        )
        return row_to_post(result.data[0]) if result.data else None

    async def insert(self, post: Post) -> Post:
        result = await _execute(
            self.client.table(POSTS_TABLE).insert(post_to_row(post)),
            "insert post",
        )
        if not result.data:
            raise StorageError("Insert succeeded but returned no data")
        return row_to_post(result.data[0])

    async def update(self, post: Post) -> Post:
        row = post_to_row(post)
        row.pop("id")
        row.pop("created_at")
        result = await _execute(
            self.client.table(POSTS_TABLE).update(row).eq("id", post.id),
            f"update post {post.id}",
        )
        if not result.data:
            raise NotFoundError("Post", post.id)
        return row_to_post(result.data[0])

    async def promote_due(self, now: datetime) -> List[Post]:
        # The status condition makes a second concurrent tick a no-op
        result = await _execute(
            self.client.table(POSTS_TABLE)
            .update({
                "status": PostStatus.PUBLISHED.value,
                "updated_at": now.isoformat(),
            })
            .eq("status", PostStatus.SCHEDULED.value)
            .lte("publish_at", now.isoformat()),
            "promote scheduled posts",
        )
        return [row_to_post(row) for row in result.data or []]

    async def delete(self, post_id: str) -> bool:
        result = await _execute(
            self.client.table(POSTS_TABLE).delete().eq("id", post_id),
            f"delete post {post_id}",
        )
        return bool(result.data)


# =============================================================================
# AUDIT SINK
# =============================================================================


class SupabaseAuditSink:
    """``AuditSink`` that inserts into the ``audit_events`` table."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def write(self, event: AuditEvent) -> None:
        await _execute(
            self.client.table(AUDIT_TABLE).insert(event.to_row()),
            f"insert audit event {event.id}",
        )


# =============================================================================
# CLASS NAME RESOLVER
# =============================================================================


class SupabaseClassNameResolver:
    """Resolves a class id to its display name, ``None`` when unknown."""

    def __init__(self, client: AsyncClient) -> None:
        self.client = client

    async def __call__(self, class_id: str) -> Optional[str]:
        result = await _execute(
            self.client.table(CLASSES_TABLE).select("name").eq("id", class_id).limit(1),
            f"get class {class_id}",
        )
        if not result.data:
            return None
        return result.data[0].get("name")


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "SupabaseConfig",
    "create_supabase_client",
    "classify_error",
    "post_to_row",
    "row_to_post",
    "SupabasePostRepository",
    "SupabaseAuditSink",
    "SupabaseClassNameResolver",
]
