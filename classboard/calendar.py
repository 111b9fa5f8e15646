"""
Calendar event derivation.

``derive`` projects a post set onto a date window as ``CalendarEvent``
values. It is a pure function of its arguments (``now`` included), so
callers recompute on every window or filter change instead of patching a
cached result.

- EVENT posts with a start become ``event`` entries spanning
  ``[start, end or start]``. They are included when the start or the end
  falls inside the window, or when the event spans the whole window.
- Activity posts (ASSIGNMENT, PROJECT, EXAM) with a due date become
  ``deadline`` entries when the due date falls inside ``[start, end)``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from classboard.models import (
    Audience,
    CalendarEvent,
    EventKind,
    Post,
    PostType,
)
from classboard.utils import utc_now


@dataclass(frozen=True)
class CalendarWindow:
    """Half-open date interval ``[start, end)``."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(
                f"Calendar window end {self.end.isoformat()} is before start {self.start.isoformat()}"
            )

    def __contains__(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    @classmethod
    def month(cls, year: int, month: int) -> "CalendarWindow":
        """Window covering one UTC calendar month."""
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        if month == 12:
            end = start.replace(year=year + 1, month=1)
        else:
            end = start.replace(month=month + 1)
        return cls(start, end)

    @classmethod
    def week_of(cls, instant: datetime) -> "CalendarWindow":
        """Sunday-start week containing *instant*."""
        return cls(*week_bounds(instant))


@dataclass
class CalendarFilters:
    """Refinements applied after the structural window match.

    Empty allow-lists mean "no restriction".

    Attributes:
        include_events: Emit ``event`` entries.
        include_deadlines: Emit ``deadline`` entries.
        search: Case-insensitive text over title, body and author name.
        post_types: Allowed post types.
        author_names: Allowed author display names.
        class_ids: Allowed classes. GLOBAL posts always pass.
        has_weight: Only posts with a numeric ``activity_meta`` weight,
            bounded by ``min_weight`` / ``max_weight`` when given.
        has_attachments: Only posts with at least one attachment.
        this_week: Entry date inside the Sunday-start week of ``now``.
        upcoming: Entry date strictly after ``now``.
        overdue: Deadlines strictly before ``now``. Events are never
            overdue, so this excludes every event.
    """

    include_events: bool = True
    include_deadlines: bool = True
    search: Optional[str] = None
    post_types: Sequence[PostType] = field(default_factory=tuple)
    author_names: Sequence[str] = field(default_factory=tuple)
    class_ids: Sequence[str] = field(default_factory=tuple)
    has_weight: bool = False
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    has_attachments: bool = False
    this_week: bool = False
    upcoming: bool = False
    overdue: bool = False


# =============================================================================
# WEEK HELPERS
# =============================================================================


def week_bounds(instant: datetime) -> Tuple[datetime, datetime]:
    """``[Sunday 00:00, next Sunday 00:00)`` around *instant*, in its timezone."""
    # weekday(): Monday=0 ... Sunday=6
    days_since_sunday = (instant.weekday() + 1) % 7
    start = (instant - timedelta(days=days_since_sunday)).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    return start, start + timedelta(days=7)


# =============================================================================
# REFINEMENT FILTERS
# =============================================================================


def _matches_post(post: Post, filters: CalendarFilters) -> bool:
    if filters.search:
        needle = filters.search.lower()
        haystacks = (post.title, post.body or "", post.author_name)
        if not any(needle in text.lower() for text in haystacks):
            return False

    if filters.post_types and post.type not in filters.post_types:
        return False

    if filters.author_names and post.author_name not in filters.author_names:
        return False

    if filters.class_ids and post.audience is not Audience.GLOBAL:
        if not set(post.class_ids) & set(filters.class_ids):
            return False

    if filters.has_weight:
        weight = post.weight
        if weight is None:
            return False
        if filters.min_weight is not None and weight < filters.min_weight:
            return False
        if filters.max_weight is not None and weight > filters.max_weight:
            return False

    if filters.has_attachments and not post.attachments:
        return False

    return True


def _matches_period(
    instant: datetime,
    kind: EventKind,
    filters: CalendarFilters,
    now: datetime,
    week: Tuple[datetime, datetime],
) -> bool:
    if filters.this_week and not (week[0] <= instant < week[1]):
        return False
    if filters.upcoming and not instant > now:
        return False
    if filters.overdue and (kind is EventKind.EVENT or not instant < now):
        return False
    return True


# =============================================================================
# DERIVATION
# =============================================================================


def _event_entry(post: Post, window: CalendarWindow) -> Optional[CalendarEvent]:
    if post.event_start_at is None:
        return None
    start = post.event_start_at
    end = post.event_end_at or start
    spans = start < window.start and end >= window.end
    if start in window or end in window or spans:
        return CalendarEvent(
            id=post.id, post=post, start=start, end=end, kind=EventKind.EVENT, title=post.title
        )
    return None


def _deadline_entry(post: Post, window: CalendarWindow) -> Optional[CalendarEvent]:
    if post.due_at is None or post.due_at not in window:
        return None
    return CalendarEvent(
        id=post.id,
        post=post,
        start=post.due_at,
        end=post.due_at,
        kind=EventKind.DEADLINE,
        title=post.title,
    )


def derive(
    posts: Sequence[Post],
    window: CalendarWindow,
    filters: Optional[CalendarFilters] = None,
    now: Optional[datetime] = None,
) -> List[CalendarEvent]:
    """Project *posts* onto *window* as calendar entries.

    Args:
        posts: Post set to project (typically the PUBLISHED posts).
        window: Half-open date window.
        filters: Refinements. Defaults to no refinement.
        now: Reference instant for ``this_week`` / ``upcoming`` /
            ``overdue``. Pass it explicitly for reproducible output.

    Returns:
        Fresh ``CalendarEvent`` values in input order. Non-EVENT posts
        never yield ``event`` entries and non-activity posts never yield
        ``deadline`` entries.
    """
    filters = filters or CalendarFilters()
    now = now or utc_now()
    week = week_bounds(now)

    entries: List[CalendarEvent] = []
    for post in posts:
        if not _matches_post(post, filters):
            continue

        candidates = []
        if filters.include_events and post.type is PostType.EVENT:
            candidates.append(_event_entry(post, window))
        if filters.include_deadlines and post.is_activity:
            candidates.append(_deadline_entry(post, window))

        for entry in candidates:
            if entry is not None and _matches_period(entry.start, entry.kind, filters, now, week):
                entries.append(entry)
    return entries


def count_by_kind(events: Sequence[CalendarEvent]) -> Dict[str, int]:
    """Totals for UI badges: ``{"total", "event", "deadline"}``."""
    counts = {"total": len(events), EventKind.EVENT.value: 0, EventKind.DEADLINE.value: 0}
    for event in events:
        counts[event.kind.value] += 1
    return counts


__all__ = [
    "CalendarWindow",
    "CalendarFilters",
    "week_bounds",
    "derive",
    "count_by_kind",
]
