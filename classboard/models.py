"""
Post data models: enums, Post, PostInput, PostFilter, Page, CalendarEvent, AuditEvent.

Defines the core data structures shared by every classboard component:
- ``PostType`` / ``PostStatus`` / ``Audience`` / ``AuthorRole``: closed value sets.
- ``Post``: the persisted communicable unit.
- ``PostInput``: creation payload and partial-update patch.
- ``PostFilter`` / ``Page``: list query and paginated result.
- ``CalendarEvent``: derived, never persisted.
- ``AuditEvent``: append-only mutation record.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from classboard.exceptions import FieldError, ValidationError
from classboard.utils import utc_now


# =============================================================================
# ENUMS
# =============================================================================


class PostType(Enum):
    """Category of a post.

    ``ASSIGNMENT``, ``PROJECT`` and ``EXAM`` are activity types: they carry a
    due date and optional weighting.
    """

    NOTICE = "NOTICE"
    ANNOUNCEMENT = "ANNOUNCEMENT"
    EVENT = "EVENT"
    ASSIGNMENT = "ASSIGNMENT"
    PROJECT = "PROJECT"
    EXAM = "EXAM"

    @property
    def is_activity(self) -> bool:
        return self in ACTIVITY_TYPES


ACTIVITY_TYPES = frozenset({PostType.ASSIGNMENT, PostType.PROJECT, PostType.EXAM})


class PostStatus(Enum):
    """Lifecycle status of a post.

    Transitions:
        DRAFT -> SCHEDULED -> PUBLISHED
        DRAFT -> PUBLISHED
        DRAFT | SCHEDULED | PUBLISHED -> ARCHIVED
    """

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"

    @property
    def is_terminal(self) -> bool:
        """ARCHIVED has no outgoing transition."""
        return self is PostStatus.ARCHIVED


class Audience(Enum):
    GLOBAL = "GLOBAL"
    CLASS = "CLASS"


class AuthorRole(Enum):
    """Role of the post author, captured at creation time."""

    ADMIN = "ADMIN"
    SECRETARY = "SECRETARY"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class AuditAction(Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    ARCHIVE = "ARCHIVE"
    DELETE = "DELETE"
    PUBLISH = "PUBLISH"
    SCHEDULE = "SCHEDULE"
    ASSIGN = "ASSIGN"


class NotificationAction(Enum):
    """Action passed to the notification generator."""

    CREATED = "created"
    UPDATED = "updated"
    DEADLINE_CHANGED = "deadline_changed"


class EventKind(Enum):
    EVENT = "event"
    DEADLINE = "deadline"


# =============================================================================
# POST
# =============================================================================


@dataclass
class Post:
    """A post published (or about to be published) to an audience.

    Attributes:
        id: Unique identifier (UUID).
        type: Post category.
        title: Title shown in feed and calendar.
        audience: ``GLOBAL`` or ``CLASS``.
        author_id: Identifier of the creator.
        author_name: Display name of the creator at creation time.
        author_role: Role of the creator at creation time.
        status: Current lifecycle status.
        body: Optional body text.
        attachments: File references (opaque to this core).
        class_ids: Target classes when ``audience`` is ``CLASS``.
        due_at: Deadline (activity types only).
        event_start_at: Event start (``EVENT`` only).
        event_end_at: Event end; ``None`` means a point-in-time event.
        event_location: Free-text location (``EVENT`` only).
        publish_at: When a ``SCHEDULED`` post becomes ``PUBLISHED``.
        activity_meta: Activity metadata (e.g. ``{"weight": 3}``).
        meta: Free-form metadata (e.g. ``{"important": True}``).
        allow_invitations: Whether students may invite guests to the event.
        allow_attachments: Whether deliveries may carry attachments.
        created_at: Set by the store on insert.
        updated_at: Set by the store on every write.
    """

    id: str
    type: PostType
    title: str
    audience: Audience
    author_id: str
    author_name: str
    author_role: AuthorRole
    status: PostStatus = PostStatus.PUBLISHED

    body: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    class_ids: List[str] = field(default_factory=list)

    # Activity
    due_at: Optional[datetime] = None
    activity_meta: Optional[Dict[str, Any]] = None

    # Event
    event_start_at: Optional[datetime] = None
    event_end_at: Optional[datetime] = None
    event_location: Optional[str] = None

    # Scheduling
    publish_at: Optional[datetime] = None

    meta: Optional[Dict[str, Any]] = None
    allow_invitations: bool = False
    allow_attachments: bool = False

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_activity(self) -> bool:
        return self.type.is_activity

    @property
    def weight(self) -> Optional[float]:
        """Activity weight from ``activity_meta``, if numeric."""
        if not self.activity_meta:
            return None
        value = self.activity_meta.get("weight")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    @property
    def relevant_date(self) -> datetime:
        """Earliest meaningful date: due date, then event start, then creation."""
        return self.due_at or self.event_start_at or self.created_at

    def snapshot(self) -> Dict[str, Any]:
        """Field-by-field view used for audit diffs (enums as values)."""
        data: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            data[f.name] = value
        return data


# =============================================================================
# POST INPUT
# =============================================================================


# Fields a caller may supply on create or patch on update.
INPUT_FIELDS = (
    "type",
    "title",
    "body",
    "attachments",
    "audience",
    "class_ids",
    "due_at",
    "event_start_at",
    "event_end_at",
    "event_location",
    "status",
    "publish_at",
    "activity_meta",
    "meta",
    "allow_invitations",
    "allow_attachments",
)


@dataclass
class PostInput:
    """Creation payload for a post.

    Identity, author and timestamp fields are deliberately absent: the store
    assigns them. ``status`` defaults to ``PUBLISHED`` when left ``None``.
    """

    type: PostType
    title: str
    audience: Audience = Audience.GLOBAL
    body: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    class_ids: List[str] = field(default_factory=list)
    due_at: Optional[datetime] = None
    event_start_at: Optional[datetime] = None
    event_end_at: Optional[datetime] = None
    event_location: Optional[str] = None
    status: Optional[PostStatus] = None
    publish_at: Optional[datetime] = None
    activity_meta: Optional[Dict[str, Any]] = None
    meta: Optional[Dict[str, Any]] = None
    allow_invitations: bool = False
    allow_attachments: bool = False

    def as_patch(self) -> Dict[str, Any]:
        """All input fields as a patch dict."""
        return {name: getattr(self, name) for name in INPUT_FIELDS}


def merge_patch(post: Post, patch: Dict[str, Any]) -> Post:
    """Return a copy of *post* with *patch* applied over it.

    Raises:
        ValidationError: If *patch* names a field callers may not set, or
            moves the post out of a terminal status.
    """
    errors = [
        FieldError(name, "Field cannot be patched", patch[name])
        for name in sorted(set(patch) - set(INPUT_FIELDS))
    ]
    new_status = patch.get("status", post.status)
    if post.status.is_terminal and new_status is not post.status:
        errors.append(
            FieldError("status", f"{post.status.value} posts cannot change status", new_status)
        )
    if errors:
        raise ValidationError(errors)
    return replace(post, **patch)


# =============================================================================
# LIST QUERIES
# =============================================================================


@dataclass
class PostFilter:
    """Filter for ``PostStore.list`` / ``list_paginated``.

    SCHEDULED posts are excluded unless ``status`` is ``SCHEDULED``.
    """

    type: Optional[PostType] = None
    status: Optional[PostStatus] = None
    class_id: Optional[str] = None
    author_role: Optional[AuthorRole] = None
    query: Optional[str] = None


@dataclass
class Page:
    """One page of posts plus the total number of matches."""

    items: List[Post]
    total: int
    page: int = 1
    page_size: int = 20

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


# =============================================================================
# CALENDAR EVENT
# =============================================================================


@dataclass(frozen=True)
class CalendarEvent:
    """Calendar-shaped projection of a post. Derived, never persisted."""

    id: str
    post: Post
    start: datetime
    end: datetime
    kind: EventKind
    title: str


# =============================================================================
# AUDIT EVENT
# =============================================================================


@dataclass
class Actor:
    """Identity recorded on audit events."""

    id: str
    name: str
    email: Optional[str] = None
    role: Optional[str] = None


# Actor used for mutations the system performs on its own (scheduler).
SYSTEM_ACTOR = Actor(id="system", name="SYSTEM", role="SYSTEM")


@dataclass
class AuditEvent:
    """Append-only record of a single mutation."""

    id: str
    at: datetime
    actor_id: str
    actor_name: str
    action: AuditAction
    entity: str
    entity_id: str
    entity_label: str
    scope: str = "GLOBAL"
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    class_name: Optional[str] = None
    diff: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)

    def to_row(self) -> Dict[str, Any]:
        """Serialise for an audit sink (JSON-safe)."""
        return {
            "id": self.id,
            "at": self.at.isoformat(),
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_email": self.actor_email,
            "actor_role": self.actor_role,
            "action": self.action.value,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "entity_label": self.entity_label,
            "scope": self.scope,
            "class_name": self.class_name,
            "diff_json": self.diff,
            "meta": self.meta,
        }


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PostType",
    "PostStatus",
    "Audience",
    "AuthorRole",
    "AuditAction",
    "NotificationAction",
    "EventKind",
    "ACTIVITY_TYPES",
    "Post",
    "PostInput",
    "INPUT_FIELDS",
    "merge_patch",
    "PostFilter",
    "Page",
    "CalendarEvent",
    "Actor",
    "SYSTEM_ACTOR",
    "AuditEvent",
]
