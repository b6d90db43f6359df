"""Error taxonomy and user-facing error messages.

- :class:`ValidationError`: local, raised before any network call,
  tagged with the offending field. Never retried.
- :class:`BackendError`: a failure reported by the backing store,
  optionally carrying an SQLSTATE-style code.
- :class:`TransactionError`: a backend failure that was not retryable
  or that exhausted its retries; wraps the last underlying error.
"""

from __future__ import annotations

from typing import Any


class MdkError(Exception):
    """Base class for every error raised by mdksys."""


class ValidationError(MdkError):
    """An entity broke one of its structural rules."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class BackendError(MdkError):
    """An error reported by the backing relational service."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}


class TransactionError(MdkError):
    """A backend operation failed for good."""

    def __init__(
        self,
        message: str,
        operation: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.cause = cause
        self.__cause__ = cause


class ImportFormatError(MdkError):
    """A document handed to the importer is not a project export."""


# ---------------------------------------------------------------------------
# SQLSTATE codes the retry policy treats as terminal
# ---------------------------------------------------------------------------

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CHECK_VIOLATION = "23514"


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

GENERIC_FAILURE = "Operation failed, please try again."
PROJECT_NOT_FOUND = "The project does not exist or has been deleted."
PROJECT_NAME_REQUIRED = "Project name must not be empty."
PROJECT_NAME_TOO_LONG = "Project name must be at most 100 characters."
PROJECT_SAVED = "Project saved."
PROJECT_CREATED = "Project created."
PROJECT_DELETE_FAILED = "Failed to delete project."
DATABASE_UNREACHABLE = "Cannot reach the database."
NOT_SIGNED_IN = "You must be signed in."

_BACKEND_MESSAGES: dict[str, str] = {
    "Invalid login credentials": "Wrong email or password, please try again.",
    "User already registered": "This email is already registered, please sign in.",
    "Email not confirmed": "Please confirm your email before signing in.",
    "Too many requests": "Too many requests, please wait a moment.",
    "Password should be at least 6 characters": "Password must be at least 6 characters.",
    "Invalid email": "Please enter a valid email address.",
    "Signup requires a valid password": "Please enter a password.",
    "User not found": "No such user, please register first.",
    "Invalid token": "Your session token is invalid, please sign in again.",
}

_CODE_MESSAGES: dict[str, str] = {
    UNIQUE_VIOLATION: "A record with the same identifier already exists.",
    FOREIGN_KEY_VIOLATION: "A referenced record does not exist.",
    CHECK_VIOLATION: "A value is outside its allowed range.",
}


def describe_error(exc: BaseException) -> str:
    """Map *exc* to a message fit for display.

    Known backend messages and codes get a fixed translation; transaction
    failures are described by their cause; validation errors show their
    own message. Anything else gets the generic retry prompt.
    """
    if isinstance(exc, ValidationError):
        return exc.message
    if isinstance(exc, TransactionError):
        if exc.cause is not None:
            return describe_error(exc.cause)
        return GENERIC_FAILURE
    if isinstance(exc, BackendError):
        if exc.message in _BACKEND_MESSAGES:
            return _BACKEND_MESSAGES[exc.message]
        if exc.code in _CODE_MESSAGES:
            return _CODE_MESSAGES[exc.code]
        return GENERIC_FAILURE
    message = str(exc)
    return _BACKEND_MESSAGES.get(message, GENERIC_FAILURE)
