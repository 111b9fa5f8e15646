"""
Tests for classboard.validation.

Covers:
    - Error collection (every violated field is reported at once)
    - Audience / class list rules
    - Date rules and the past-date override
    - Text sanitising (trim, collapse, clip)
"""

from datetime import datetime, timedelta, timezone

import pytest

from classboard.exceptions import ValidationError
from classboard.models import Audience, PostStatus, PostType
from classboard.validation import (
    BODY_MAX_LENGTH,
    LOCATION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    clamp_text,
    normalize_spaces,
    validate_post,
)


def _fields(exc_info):
    return set(exc_info.value.fields)


# ===========================================================================
# Text helpers
# ===========================================================================


def test_clamp_text_clips_then_strips():
    assert clamp_text("abc   def", 5) == "abc"


def test_normalize_spaces_collapses_runs():
    assert normalize_spaces("  bring\n\n a   pencil\t ") == "bring a pencil"


# ===========================================================================
# validate_post
# ===========================================================================


class TestValidatePost:
    """Tests for validate_post."""

    def test_valid_post_is_sanitised(self, make_post, sample_utc_now):
        post = make_post(
            title="  Field trip  ",
            body="Bring   lunch\nand water",
            event_location="x" * (LOCATION_MAX_LENGTH + 10),
        )

        clean = validate_post(post, now=sample_utc_now)

        assert clean.title == "Field trip"
        assert clean.body == "Bring lunch and water"
        assert len(clean.event_location) == LOCATION_MAX_LENGTH
        assert clean is not post

    def test_long_title_and_body_are_clipped(self, make_post, sample_utc_now):
        post = make_post(title="t" * 500, body="b" * 5000)

        clean = validate_post(post, now=sample_utc_now)

        assert len(clean.title) == TITLE_MAX_LENGTH
        assert len(clean.body) == BODY_MAX_LENGTH

    def test_collects_every_violation(self, make_post, sample_utc_now):
        post = make_post(
            title="   ",
            audience=Audience.CLASS,
            class_ids=[],
            due_at=sample_utc_now - timedelta(hours=1),
        )

        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)

        assert _fields(exc_info) == {"title", "class_ids", "due_at"}

    def test_blank_class_ids_do_not_count(self, make_post, sample_utc_now):
        post = make_post(audience=Audience.CLASS, class_ids=["", ""])
        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)
        assert _fields(exc_info) == {"class_ids"}

    def test_global_audience_drops_class_ids(self, make_post, sample_utc_now):
        clean = validate_post(make_post(class_ids=["7a"]), now=sample_utc_now)
        assert clean.class_ids == []

    def test_past_due_date_allowed_with_override(self, make_post, sample_utc_now):
        post = make_post(type=PostType.ASSIGNMENT, due_at=sample_utc_now - timedelta(days=1))

        clean = validate_post(post, allow_past_override=True, now=sample_utc_now)

        assert clean.due_at == sample_utc_now - timedelta(days=1)

    def test_event_end_requires_start(self, make_post, sample_utc_now):
        post = make_post(type=PostType.EVENT, event_end_at=sample_utc_now + timedelta(days=1))
        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)
        assert _fields(exc_info) == {"event_start_at"}

    def test_event_end_before_start(self, make_post, sample_utc_now):
        start = sample_utc_now + timedelta(days=2)
        post = make_post(type=PostType.EVENT, event_start_at=start, event_end_at=start - timedelta(hours=1))
        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)
        assert _fields(exc_info) == {"event_end_at"}

    def test_point_in_time_event_is_valid(self, make_post, sample_utc_now):
        start = sample_utc_now + timedelta(days=2)
        clean = validate_post(make_post(type=PostType.EVENT, event_start_at=start), now=sample_utc_now)
        assert clean.event_end_at is None

    def test_scheduled_requires_publish_at(self, make_post, sample_utc_now):
        post = make_post(status=PostStatus.SCHEDULED)
        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)
        assert _fields(exc_info) == {"publish_at"}

    def test_scheduled_publish_at_must_be_future(self, make_post, sample_utc_now):
        post = make_post(status=PostStatus.SCHEDULED, publish_at=sample_utc_now)
        with pytest.raises(ValidationError):
            validate_post(post, now=sample_utc_now)

        clean = validate_post(post, allow_past_override=True, now=sample_utc_now)
        assert clean.publish_at == sample_utc_now

    def test_naive_and_offset_dates_are_normalised(self, make_post, sample_utc_now):
        local = timezone(timedelta(hours=-3))
        post = make_post(
            type=PostType.EXAM,
            due_at=datetime(2024, 3, 20, 7, tzinfo=local),
            event_start_at=datetime(2024, 3, 21, 9),
        )

        clean = validate_post(post, now=sample_utc_now)

        assert clean.due_at == datetime(2024, 3, 20, 10, tzinfo=timezone.utc)
        assert clean.event_start_at.tzinfo == timezone.utc

    @pytest.mark.parametrize("weight", ["3", True, [1]])
    def test_non_numeric_weight_is_rejected(self, make_post, sample_utc_now, weight):
        post = make_post(type=PostType.PROJECT, activity_meta={"weight": weight})
        with pytest.raises(ValidationError) as exc_info:
            validate_post(post, now=sample_utc_now)
        assert _fields(exc_info) == {"activity_meta.weight"}

    @pytest.mark.parametrize("weight", [0, 2, 7.5, None])
    def test_numeric_or_missing_weight_is_accepted(self, make_post, sample_utc_now, weight):
        post = make_post(type=PostType.PROJECT, activity_meta={"weight": weight})
        assert validate_post(post, now=sample_utc_now).activity_meta == {"weight": weight}
