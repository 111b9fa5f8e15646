"""classboard: post lifecycle, scheduled publishing, audit trail and calendar derivation."""

from classboard.calendar import CalendarFilters, CalendarWindow, count_by_kind, derive
from classboard.models import (
    Audience,
    AuthorRole,
    CalendarEvent,
    Page,
    Post,
    PostFilter,
    PostInput,
    PostStatus,
    PostType,
)
from classboard.scheduler import PublishingScheduler
from classboard.store import PostStore

__version__ = "0.1.0"

__all__ = [
    "Audience",
    "AuthorRole",
    "CalendarEvent",
    "CalendarFilters",
    "CalendarWindow",
    "Page",
    "Post",
    "PostFilter",
    "PostInput",
    "PostStatus",
    "PostType",
    "PostStore",
    "PublishingScheduler",
    "count_by_kind",
    "derive",
]
