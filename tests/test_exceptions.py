"""
Tests for the classboard exception hierarchy.

Covers:
    - Inheritance relationships callers rely on in ``except`` clauses
    - Attributes and messages of the richer exceptions
"""

import pytest

from classboard.exceptions import (
    ClassboardError,
    ConfigurationError,
    ConflictError,
    FieldError,
    NotFoundError,
    PermissionDeniedError,
    RetryExhaustedError,
    StorageError,
    ValidationError,
)


@pytest.mark.parametrize(
    "exc_class",
    [NotFoundError, StorageError, ConflictError, PermissionDeniedError, ConfigurationError, RetryExhaustedError],
)
def test_storage_and_lookup_errors_share_base(exc_class):
    assert issubclass(exc_class, ClassboardError)


def test_backend_specific_errors_are_storage_errors():
    assert issubclass(ConflictError, StorageError)
    assert issubclass(PermissionDeniedError, StorageError)
    assert not issubclass(PermissionDeniedError, PermissionError)


def test_validation_error_is_value_error():
    assert issubclass(ValidationError, ValueError)
    assert not issubclass(ValidationError, ClassboardError)


class TestValidationError:
    """Tests for ValidationError."""

    def test_lists_every_field(self):
        err = ValidationError([
            FieldError("title", "Title is required", ""),
            FieldError("class_ids", "At least one class is required", []),
        ])

        assert err.fields == ["title", "class_ids"]
        assert "title: Title is required" in str(err)
        assert "class_ids: At least one class is required" in str(err)

    def test_errors_keep_offending_value(self):
        err = ValidationError([FieldError("activity_meta.weight", "Weight must be a number", "heavy")])
        assert err.errors[0].value == "heavy"


def test_not_found_message():
    err = NotFoundError("Post", "p-42")
    assert err.entity == "Post"
    assert err.entity_id == "p-42"
    assert str(err) == "Post p-42 not found"


def test_storage_error_code_is_optional():
    assert StorageError("down").code is None
    assert ConflictError("dup", code="23505").code == "23505"


def test_retry_exhausted_message():
    cause = TimeoutError("slow")
    err = RetryExhaustedError("write audit", 3, cause)

    assert err.operation == "write audit"
    assert err.attempts == 3
    assert err.last_error is cause
    assert "write audit failed after 3 attempts" in str(err)
    assert "slow" in str(err)
