"""
Custom exception classes for the classboard post core.

Errors raised by the Post Store propagate synchronously to the caller.
Failures of best-effort side effects (audit recording, notification
generation, class-name lookup) are logged and never raised.

Hierarchy:
    Exception
    +-- ClassboardError (base for all classboard errors)
    |   +-- NotFoundError
    |   +-- StorageError
    |   |   +-- ConflictError
    |   |   +-- PermissionDeniedError
    |   +-- ConfigurationError
    |   +-- RetryExhaustedError
    +-- ValidationError (ValueError)
"""

from dataclasses import dataclass
from typing import Any, List, Optional


# =============================================================================
# BASE EXCEPTION
# =============================================================================


class ClassboardError(Exception):
    """Base exception for all classboard errors."""

    pass


# =============================================================================
# VALIDATION
# =============================================================================


@dataclass
class FieldError:
    """A single violated field reported by post validation."""

    field: str
    message: str
    value: Any = None


class ValidationError(ValueError):
    """Raised when post input violates a data model invariant.

    Attributes:
        errors: One entry per violated field.
    """

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        details = ", ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(f"Invalid post data: {details}")

    @property
    def fields(self) -> List[str]:
        """Names of the violated fields, in reporting order."""
        return [e.field for e in self.errors]


# =============================================================================
# LOOKUP / STORAGE EXCEPTIONS
# =============================================================================


class NotFoundError(ClassboardError):
    """Raised when a referenced post id does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StorageError(ClassboardError):
    """Raised when the persistence backend fails (unavailable, timeout, unknown).

    Attributes:
        code: Backend error code when one was reported.
    """

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class ConflictError(StorageError):
    """Raised when the backend reports a uniqueness or constraint conflict."""

    pass


class PermissionDeniedError(StorageError):
    """Raised when the backend reports the caller lacks rights."""

    pass


# =============================================================================
# CONFIGURATION / RETRY
# =============================================================================


class ConfigurationError(ClassboardError):
    """Raised when system configuration is invalid."""

    pass


class RetryExhaustedError(ClassboardError):
    """Raised when all retry attempts have been exhausted.

    Attributes:
        operation: Name of the operation that was retried.
        attempts: Total number of attempts made.
        last_error: The last exception raised before giving up.
    """

    def __init__(self, operation: str, attempts: int, last_error: Optional[Exception]):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempts. "
            f"Last error: {last_error}"
        )


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "ClassboardError",
    "FieldError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ConflictError",
    "PermissionDeniedError",
    "ConfigurationError",
    "RetryExhaustedError",
]
