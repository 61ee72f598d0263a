"""
Error kinds for submissions and document store calls.
Every failure a handler can report is a SubmissionError carrying its kind and
HTTP status; the API layer renders them, nothing else needs to know codes.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    METHOD_NOT_ALLOWED = "method_not_allowed"
    VALIDATION_FAILED = "validation_failed"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    REMOTE_STORE_FAILURE = "remote_store_failure"
    NOTIFY_FAILURE = "notify_failure"


class SubmissionError(Exception):
    """Base for every error a submission can end with."""

    kind: ErrorKind = ErrorKind.REMOTE_STORE_FAILURE
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(SubmissionError):
    """Missing or malformed form field."""
    kind = ErrorKind.VALIDATION_FAILED
    status_code = 400


class Unauthorized(SubmissionError):
    """Admin credential missing or wrong."""
    kind = ErrorKind.UNAUTHORIZED
    status_code = 401


class EntityNotFound(SubmissionError):
    """A player (or leaderboard row) the submission refers to does not exist."""
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class DuplicateRegistration(SubmissionError):
    """Player name or warband name already registered (case-insensitive)."""
    kind = ErrorKind.CONFLICT
    status_code = 409


class VersionConflict(SubmissionError):
    """The stored document (or branch) changed since it was read."""
    kind = ErrorKind.CONFLICT
    status_code = 409


class RemoteStoreError(SubmissionError):
    """Network, auth or permission failure talking to the document store."""
    kind = ErrorKind.REMOTE_STORE_FAILURE
    status_code = 502


class NotifyFailure(SubmissionError):
    """Build hook unreachable or returned a non-success status."""
    kind = ErrorKind.NOTIFY_FAILURE
    status_code = 502


class DocumentNotFound(Exception):
    """Document does not exist yet. Callers start from an empty collection."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Document not found: {path}")
        self.path = path
