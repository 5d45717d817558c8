"""Failure taxonomy shared by the storage, auth and controller layers."""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Mapping, Optional


class FailureKind(str, Enum):
    """Every outcome the HTTP boundary knows how to translate."""

    VALIDATION = "validation"
    AUTH = "auth"
    CSRF = "csrf"
    NOT_FOUND = "not_found"
    DUPLICATE_KEY = "duplicate_key"
    UNAUTHENTICATED = "unauthenticated"
    STORAGE = "storage"
    UNHANDLED = "unhandled"


STATUS_CODES: Dict[FailureKind, int] = {
    FailureKind.VALIDATION: 400,
    FailureKind.AUTH: 400,
    FailureKind.CSRF: 403,
    FailureKind.NOT_FOUND: 404,
    FailureKind.DUPLICATE_KEY: 400,
    FailureKind.UNAUTHENTICATED: 401,
    FailureKind.STORAGE: 500,
    FailureKind.UNHANDLED: 500,
}


class JobTrackerError(RuntimeError):
    """Base class for failures raised deliberately by the application."""

    kind: FailureKind = FailureKind.UNHANDLED
    default_message = "Internal Server Error: Something went wrong on our end."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]


class ValidationFailure(JobTrackerError):
    """User-correctable input problem, reported per form field."""

    kind = FailureKind.VALIDATION
    default_message = "Validation Error: Please check your input and try again."

    def __init__(
        self,
        field_errors: Mapping[str, List[str]],
        *,
        values: Optional[Mapping[str, object]] = None,
    ) -> None:
        super().__init__()
        self.field_errors: Dict[str, List[str]] = {
            field: list(messages) for field, messages in field_errors.items()
        }
        self.values: Dict[str, object] = dict(values or {})

    @property
    def messages(self) -> List[str]:
        return [message for messages in self.field_errors.values() for message in messages]


class AuthFailure(JobTrackerError):
    """Credentials were rejected. Deliberately says nothing about why."""

    kind = FailureKind.AUTH
    default_message = "Invalid email or password."


class CSRFFailure(JobTrackerError):
    kind = FailureKind.CSRF
    default_message = (
        "Forbidden: Invalid or missing CSRF token. Please refresh the page and try again."
    )


class NotFoundFailure(JobTrackerError):
    """Raised both for missing records and for records owned by someone else."""

    kind = FailureKind.NOT_FOUND
    default_message = "Not Found: The requested resource does not exist."


class DuplicateKeyFailure(JobTrackerError):
    """A uniqueness constraint rejected an insert."""

    kind = FailureKind.DUPLICATE_KEY

    def __init__(self, field: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"A record with that {field} already exists")
        self.field = field


class AuthenticationRequired(JobTrackerError):
    kind = FailureKind.UNAUTHENTICATED
    default_message = "Unauthorized: Please log in to continue."


class StorageError(JobTrackerError):
    """The database could not complete an operation."""

    kind = FailureKind.STORAGE


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or malformed."""


__all__ = [
    "AuthFailure",
    "AuthenticationRequired",
    "CSRFFailure",
    "ConfigurationError",
    "DuplicateKeyFailure",
    "FailureKind",
    "JobTrackerError",
    "NotFoundFailure",
    "STATUS_CODES",
    "StorageError",
    "ValidationFailure",
]
