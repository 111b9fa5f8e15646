"""
Feed ranking and relevance helpers.

Unlike the calendar, feed views order posts: EXAM first, then PROJECT and
ASSIGNMENT, then EVENT, then ANNOUNCEMENT and NOTICE, earliest relevant
date first within a priority. Expired posts drop out of the relevant feed.

Expiry rules:
    - EVENT: once its end (or start) has passed; undated events expire
      7 days after creation.
    - Activities: once the due date has passed; undated ones expire
      14 days after creation.
    - NOTICE / ANNOUNCEMENT: 30 days after creation.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from classboard.models import Post, PostStatus, PostType
from classboard.utils import utc_now

TYPE_PRIORITY: Dict[PostType, int] = {
    PostType.EXAM: 100,
    PostType.PROJECT: 80,
    PostType.ASSIGNMENT: 80,
    PostType.EVENT: 60,
    PostType.ANNOUNCEMENT: 40,
    PostType.NOTICE: 40,
}

UNDATED_EVENT_TTL = timedelta(days=7)
UNDATED_ACTIVITY_TTL = timedelta(days=14)
NOTICE_TTL = timedelta(days=30)

# Activities and events dated before now + this horizon count as priority
PRIORITY_HORIZON = timedelta(days=2)


def sort_by_relevance(posts: Iterable[Post]) -> List[Post]:
    """Type priority descending, then relevant date ascending."""
    return sorted(posts, key=lambda p: (-TYPE_PRIORITY[p.type], p.relevant_date))


def is_expired(post: Post, now: Optional[datetime] = None) -> bool:
    now = now or utc_now()
    if post.type is PostType.EVENT:
        ends_at = post.event_end_at or post.event_start_at
        if ends_at is not None:
            return ends_at < now
        return post.created_at + UNDATED_EVENT_TTL < now
    if post.is_activity:
        if post.due_at is not None:
            return post.due_at < now
        return post.created_at + UNDATED_ACTIVITY_TTL < now
    return post.created_at + NOTICE_TTL < now


def filter_relevant(posts: Iterable[Post], now: Optional[datetime] = None) -> List[Post]:
    """Posts worth showing in a feed.

    SCHEDULED posts are always kept (their authors need to see them),
    ARCHIVED posts never are, everything else only while not expired.
    """
    now = now or utc_now()
    relevant = []
    for post in posts:
        if post.status is PostStatus.SCHEDULED:
            relevant.append(post)
        elif post.status is PostStatus.ARCHIVED:
            continue
        elif not is_expired(post, now):
            relevant.append(post)
    return relevant


def _target_date(post: Post) -> Optional[datetime]:
    if post.type is PostType.EVENT:
        return post.event_start_at
    if post.is_activity:
        return post.due_at
    return None


def upcoming_posts(
    posts: Iterable[Post], days: int = 7, now: Optional[datetime] = None
) -> List[Post]:
    """Events starting / activities due strictly within ``(now, now + days)``."""
    now = now or utc_now()
    limit = now + timedelta(days=days)
    result = []
    for post in posts:
        when = _target_date(post)
        if when is not None and now < when < limit:
            result.append(post)
    return result


def todays_posts(posts: Iterable[Post], now: Optional[datetime] = None) -> List[Post]:
    """Events starting / activities due on the calendar day of *now* (in its timezone)."""
    now = now or utc_now()
    today = now.date()
    result = []
    for post in posts:
        when = _target_date(post)
        if when is not None and when.astimezone(now.tzinfo).date() == today:
            result.append(post)
    return result


def priority_posts(posts: Iterable[Post], now: Optional[datetime] = None) -> List[Post]:
    """Every exam, plus activities and events dated before ``now + 2 days``.

    Overdue activities stay in the list until archived.
    """
    now = now or utc_now()
    urgent = now + PRIORITY_HORIZON
    result = []
    for post in posts:
        if post.type is PostType.EXAM:
            result.append(post)
            continue
        when = _target_date(post)
        if when is not None and when < urgent:
            result.append(post)
    return result


__all__ = [
    "TYPE_PRIORITY",
    "sort_by_relevance",
    "is_expired",
    "filter_relevant",
    "upcoming_posts",
    "todays_posts",
    "priority_posts",
]
