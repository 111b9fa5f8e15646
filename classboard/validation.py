"""
Post validation and sanitising.

``validate_post`` checks a candidate ``Post`` against the data model
invariants, collecting every violated field before raising, and returns a
sanitised copy (trimmed title, normalised body, clipped location).
"""

import re
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from classboard.exceptions import FieldError, ValidationError
from classboard.models import Audience, Post, PostStatus, PostType
from classboard.utils import ensure_utc, utc_now

TITLE_MAX_LENGTH = 120
BODY_MAX_LENGTH = 1000
LOCATION_MAX_LENGTH = 200

_WHITESPACE_RE = re.compile(r"\s+")


# =============================================================================
# TEXT HELPERS
# =============================================================================


def clamp_text(value: str, max_length: int) -> str:
    """Clip *value* to *max_length* characters, then strip."""
    return value[:max_length].strip()


def normalize_spaces(value: str) -> str:
    """Strip and collapse every whitespace run to a single space."""
    return _WHITESPACE_RE.sub(" ", value.strip())


# =============================================================================
# POST VALIDATION
# =============================================================================


def validate_post(
    post: Post,
    allow_past_override: bool = False,
    now: Optional[datetime] = None,
) -> Post:
    """Validate *post* and return a sanitised copy.

    Args:
        post: Candidate post (freshly built on create, merged on update).
        allow_past_override: Accept ``due_at`` / ``publish_at`` in the past.
        now: Reference instant for "past" checks. Defaults to UTC now.

    Returns:
        A new ``Post`` with sanitised text fields and UTC timestamps.

    Raises:
        ValidationError: Listing every violated field.
    """
    now = now or utc_now()
    errors: List[FieldError] = []

    if not isinstance(post.type, PostType):
        errors.append(FieldError("type", "Unknown post type", post.type))
    if not isinstance(post.audience, Audience):
        errors.append(FieldError("audience", "Unknown audience", post.audience))
    if not isinstance(post.status, PostStatus):
        errors.append(FieldError("status", "Unknown status", post.status))

    # Title
    title = (post.title or "").strip()
    if not title:
        errors.append(FieldError("title", "Title is required", post.title))
    else:
        title = clamp_text(title, TITLE_MAX_LENGTH)

    # Body
    body = post.body
    if body:
        body = clamp_text(normalize_spaces(body), BODY_MAX_LENGTH)

    # Audience
    class_ids = [c for c in (post.class_ids or []) if c]
    if post.audience is Audience.CLASS and not class_ids:
        errors.append(
            FieldError("class_ids", "At least one class is required for CLASS audience", post.class_ids)
        )
    if post.audience is Audience.GLOBAL:
        class_ids = []

    # Dates
    due_at = _as_utc(post.due_at)
    if due_at is not None and due_at < now and not allow_past_override:
        errors.append(FieldError("due_at", "Due date cannot be in the past", post.due_at))

    event_start_at = _as_utc(post.event_start_at)
    event_end_at = _as_utc(post.event_end_at)
    if event_end_at is not None and event_start_at is None:
        errors.append(
            FieldError("event_start_at", "Event start is required when an end is set", None)
        )
    if (
        event_start_at is not None
        and event_end_at is not None
        and event_end_at < event_start_at
    ):
        errors.append(
            FieldError("event_end_at", "Event end must not be before its start", post.event_end_at)
        )

    publish_at = _as_utc(post.publish_at)
    if post.status is PostStatus.SCHEDULED:
        if publish_at is None:
            errors.append(
                FieldError("publish_at", "Publish date is required for scheduled posts", None)
            )
        elif publish_at <= now and not allow_past_override:
            errors.append(
                FieldError("publish_at", "Publish date must be in the future", post.publish_at)
            )

    # Activity weight
    if post.activity_meta and "weight" in post.activity_meta:
        weight = post.activity_meta["weight"]
        if weight is not None and (
            isinstance(weight, bool) or not isinstance(weight, (int, float))
        ):
            errors.append(FieldError("activity_meta.weight", "Weight must be a number", weight))

    location = post.event_location
    if location:
        location = clamp_text(location, LOCATION_MAX_LENGTH)

    if errors:
        raise ValidationError(errors)

    return replace(
        post,
        title=title,
        body=body,
        class_ids=class_ids,
        attachments=list(post.attachments or []),
        due_at=due_at,
        event_start_at=event_start_at,
        event_end_at=event_end_at,
        event_location=location,
        publish_at=publish_at,
    )


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


__all__ = [
    "TITLE_MAX_LENGTH",
    "BODY_MAX_LENGTH",
    "LOCATION_MAX_LENGTH",
    "clamp_text",
    "normalize_spaces",
    "validate_post",
]
