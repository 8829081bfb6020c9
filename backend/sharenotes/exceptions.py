"""
ShareNotes Backend — Custom Exception Hierarchy
=================================================

What:  Application-specific exceptions for every failure the catalog can report.
How:   Each exception carries a user-safe message and an optional context dict.
       Global exception handlers (registered in main.py) map them to
       structured JSON error responses with stable status codes.
Who:   Raised by services, dependencies and middleware; caught by global handlers.

Exception Hierarchy:
    ShareNotesError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── NotFoundError            → 404 Not Found
    │   └── NoteFileMissingError → 404 Not Found (note exists, file gone)
    ├── ConcurrentUpdateError    → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── StorageError             → 500 Internal Server Error
        ├── DatabaseError
        └── FileStorageError
"""

from typing import Any, Dict, Optional


class ShareNotesError(Exception):
    """
    Base exception for all ShareNotes application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned for server errors)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ShareNotesError):
    """
    Raised when client input fails validation.

    When:    Missing subject or file, non-PDF upload, oversized upload,
             rating value outside 1-5.
    HTTP:    400 Bad Request

    Example response:
        {
            "error": "validation_error",
            "message": "Rating value must be an integer between 1 and 5",
            "details": {"field": "value", "received": 7}
        }
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class AuthenticationError(ShareNotesError):
    """
    Raised when a route requires a caller identity and none could be established.

    When:    Missing bearer token, bad signature, expired token, no `sub` claim.
    HTTP:    401 Unauthorized (with WWW-Authenticate: Bearer)
    """

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(ShareNotesError):
    """
    Raised when a requested resource does not exist.

    When:    Any note operation addressed to an id with no row.
    HTTP:    404 Not Found

    SQLAlchemy returns None (or a zero rowcount) for missing records; services
    convert that into this exception before attempting dependent work.
    """

    error_code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)
        self.resource = resource
        self.resource_id = resource_id


class NoteFileMissingError(NotFoundError):
    """
    Raised when a note exists but its stored PDF does not.

    When:    Download of a note whose file was removed outside the application.
    HTTP:    404 Not Found, error code `file_not_found` so clients can tell it
             apart from a missing note.
    """

    error_code = "file_not_found"

    def __init__(self, note_id: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(resource="file", context=context)
        self.message = f"The file for note '{note_id}' is no longer available"
        self.context["note_id"] = note_id


class ConcurrentUpdateError(ShareNotesError):
    """
    Raised when a versioned write keeps losing to concurrent writers.

    When:    Rating upsert exhausted its retry attempts.
    HTTP:    409 Conflict (client may simply resubmit)
    """

    def __init__(
        self,
        message: str = "The note was modified concurrently. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(ShareNotesError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP:    429 Too Many Requests, with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class StorageError(ShareNotesError):
    """
    Raised when an underlying store is unreachable or a write fails.

    HTTP:    500 Internal Server Error. Reported, never retried, by the services.
    """

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StorageError):
    """
    Raised when a catalog query or write fails.

    The client always gets a generic message; SQL details stay in server logs.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(StorageError):
    """
    Raised when file system operations fail.

    When:    Disk full, permission denied, directory not writable, I/O error.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
