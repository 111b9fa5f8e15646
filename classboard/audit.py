"""
Audit diff recording: field-level diffs, sensitive-field masking, and sinks.

``AuditRecorder`` turns a mutation (action, post snapshot, diff) into an
``AuditEvent`` and hands it to an ``AuditSink``. Recording is best effort:
sink and class-name lookup failures are logged, never raised.

Sinks:
    - ``InMemoryAuditSink``: list-backed, queryable (tests, local runs)
    - ``JsonlAuditSink``: appends JSON lines to a file via ``aiofiles``
    - ``SupabaseAuditSink``: lives in :mod:`classboard.database`
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
)

import aiofiles

from classboard.models import (
    Actor,
    AuditAction,
    AuditEvent,
    Audience,
    Post,
)
from classboard.utils import generate_id, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVE_TERMS = ("password", "token", "secret", "key")
MASKED = "[MASKED]"

Diff = Dict[str, Dict[str, Any]]
ClassNameResolver = Callable[[str], Awaitable[Optional[str]]]


# =============================================================================
# DIFFING
# =============================================================================


def compute_diff(
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    keys: Optional[Iterable[str]] = None,
) -> Diff:
    """Field-level ``{field: {"before": ..., "after": ...}}`` for changed values.

    ``None`` *before* describes a creation, ``None`` *after* a deletion.
    Lists are compared by value with missing lists treated as empty.

    Args:
        before: Snapshot before the mutation.
        after: Snapshot after the mutation.
        keys: Restrict the diff to these fields (the patch keys). When
            ``None`` every key present on either side is compared.
    """
    before = before or {}
    after = after or {}
    if keys is None:
        candidates = list(dict.fromkeys([*before.keys(), *after.keys()]))
    else:
        candidates = list(dict.fromkeys(keys))

    diff: Diff = {}
    for key in candidates:
        old = before.get(key)
        new = after.get(key)
        if isinstance(old, list) or isinstance(new, list):
            old = old or []
            new = new or []
        if old != new:
            diff[key] = {"before": old, "after": new}
    return diff


def is_sensitive(field_name: str, terms: Sequence[str] = DEFAULT_SENSITIVE_TERMS) -> bool:
    lowered = field_name.lower()
    return any(term in lowered for term in terms)


def mask_diff(
    diff: Diff,
    terms: Sequence[str] = DEFAULT_SENSITIVE_TERMS,
    marker: str = MASKED,
) -> Diff:
    """Return a copy of *diff* with sensitive fields redacted on both sides."""
    masked: Diff = {}
    for key, change in diff.items():
        if is_sensitive(key, terms):
            masked[key] = {"before": marker, "after": marker}
        else:
            masked[key] = dict(change)
    return masked


def post_scope(post: Post) -> str:
    """``CLASS:<first class id>`` for class posts, ``GLOBAL`` otherwise."""
    if post.audience is Audience.CLASS and post.class_ids:
        return f"CLASS:{post.class_ids[0]}"
    return "GLOBAL"


# =============================================================================
# SINKS
# =============================================================================


class AuditSink(Protocol):
    """Persists audit events. Success is not required by the caller."""

    async def write(self, event: AuditEvent) -> None: ...


class InMemoryAuditSink:
    """Keeps audit events in memory, newest first."""

    def __init__(self) -> None:
        self.events: List[AuditEvent] = []

    async def write(self, event: AuditEvent) -> None:
        self.events.insert(0, event)

    def get(self, event_id: str) -> Optional[AuditEvent]:
        return next((e for e in self.events if e.id == event_id), None)

    def for_entity(self, entity: str, entity_id: str) -> List[AuditEvent]:
        return [e for e in self.events if e.entity == entity and e.entity_id == entity_id]

    def query(
        self,
        actor_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        entity: Optional[str] = None,
        class_id: Optional[str] = None,
        post_type: Optional[str] = None,
        search: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[AuditEvent]:
        """Filter recorded events. All criteria are ANDed."""
        results = []
        for event in self.events:
            if actor_id and event.actor_id != actor_id:
                continue
            if action and event.action is not action:
                continue
            if entity and event.entity != entity:
                continue
            if class_id and class_id not in event.scope:
                continue
            if post_type and (event.entity != "POST" or event.meta.get("post_type") != post_type):
                continue
            if since and event.at < since:
                continue
            if until and event.at > until:
                continue
            if search:
                haystack = " ".join(
                    str(part or "")
                    for part in (event.entity_label, event.actor_name, event.actor_email, event.entity_id)
                ).lower()
                if search.lower() not in haystack:
                    continue
            results.append(event)
        return results


class JsonlAuditSink:
    """Appends each audit event as one JSON line."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    async def write(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_row(), ensure_ascii=False, default=str)
        async with aiofiles.open(self.path, "a", encoding="utf-8") as fh:
            await fh.write(line + "\n")


# =============================================================================
# RECORDER
# =============================================================================


class AuditRecorder:
    """Builds masked audit events for post mutations and writes them to a sink.

    Args:
        sink: Destination for audit events.
        class_name_resolver: Optional async lookup from class id to display
            name, used to enrich ``class_name``.
        sensitive_terms: Substrings that mark a field as sensitive.
        masked_marker: Replacement for sensitive values.
        clock: Source of ``at`` timestamps.
    """

    ENTITY = "POST"

    def __init__(
        self,
        sink: AuditSink,
        class_name_resolver: Optional[ClassNameResolver] = None,
        sensitive_terms: Sequence[str] = DEFAULT_SENSITIVE_TERMS,
        masked_marker: str = MASKED,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.sink = sink
        self.class_name_resolver = class_name_resolver
        self.sensitive_terms = tuple(sensitive_terms)
        self.masked_marker = masked_marker
        self.clock = clock

    async def build_event(
        self,
        action: AuditAction,
        post: Post,
        actor: Actor,
        diff: Diff,
        meta: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        """Assemble the event: scope, class name, masked diff, post metadata."""
        scope = post_scope(post)
        class_name = None
        if scope != "GLOBAL":
            class_name = await self._resolve_class_name(post.class_ids[0])

        event_meta: Dict[str, Any] = {
            "fields": list(diff.keys()),
            "post_type": post.type.value,
            "subtype": post.type.value,
        }
        event_meta.update(meta or {})

        return AuditEvent(
            id=generate_id(),
            at=self.clock(),
            actor_id=actor.id,
            actor_name=actor.name,
            actor_email=actor.email,
            actor_role=actor.role,
            action=action,
            entity=self.ENTITY,
            entity_id=post.id,
            entity_label=post.title,
            scope=scope,
            class_name=class_name,
            diff=mask_diff(diff, self.sensitive_terms, self.masked_marker),
            meta=event_meta,
        )

    async def write(self, event: AuditEvent) -> None:
        """Write *event* to the sink. Raises on sink failure (outbox retries)."""
        await self.sink.write(event)
        logger.debug(
            "[AUDIT] %s %s %s recorded (fields=%s)",
            event.action.value,
            event.entity,
            event.entity_id,
            event.meta.get("fields"),
        )

    async def record(
        self,
        action: AuditAction,
        post: Post,
        actor: Actor,
        diff: Diff,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEvent]:
        """Build and write an event, logging (not raising) any failure.

        Returns:
            The written event, or ``None`` if writing failed.
        """
        event = await self.build_event(action, post, actor, diff, meta)
        try:
            await self.write(event)
        except Exception:
            logger.exception(
                "[AUDIT] Failed to record %s for post %s (actor=%s)",
                action.value,
                post.id,
                actor.id,
            )
            return None
        return event

    async def _resolve_class_name(self, class_id: str) -> Optional[str]:
        if self.class_name_resolver is None:
            return None
        try:
            return await self.class_name_resolver(class_id)
        except Exception:
            logger.warning(
                "[AUDIT] Class name lookup failed for class %s",
                class_id,
                exc_info=True,
            )
            return None


__all__ = [
    "DEFAULT_SENSITIVE_TERMS",
    "MASKED",
    "Diff",
    "ClassNameResolver",
    "compute_diff",
    "is_sensitive",
    "mask_diff",
    "post_scope",
    "AuditSink",
    "InMemoryAuditSink",
    "JsonlAuditSink",
    "AuditRecorder",
]
