"""Typed failures for the path-resolution and access-control layer.

Every failure carries an HTTP status intent and a message that is safe to
show to clients. ``reason`` is a short machine tag that only goes to the
audit log; authentication failures in particular share one public message
so a client cannot tell a forged token from an expired or stale one.
"""
from __future__ import annotations


class FileVueError(Exception):
    """Base class for all failures surfaced to the route layer."""

    status_code = 500
    public_message = "Internal server error."

    def __init__(
        self,
        message: str | None = None,
        *,
        reason: str | None = None,
        extra: dict | None = None,
    ) -> None:
        self.reason = reason or type(self).__name__
        self.extra = extra or {}
        super().__init__(message or self.public_message)

    @property
    def detail(self) -> str:
        return str(self)

    def to_payload(self) -> dict:
        return {"error": self.detail, **self.extra}


class InvalidInput(FileVueError):
    """Malformed client input, rejected before touching the filesystem."""

    status_code = 400
    public_message = "Invalid request."


class OutsideRoot(FileVueError):
    status_code = 400
    public_message = "Path escapes the configured root directory."


class OutsideShare(OutsideRoot):
    public_message = "Cannot access paths outside shared directory."


class NotFound(FileVueError):
    status_code = 404
    public_message = "Not found."


class AuthenticationError(FileVueError):
    """Any 401. The client always sees ``public_message``."""

    status_code = 401
    public_message = "Authentication required."

    @property
    def detail(self) -> str:
        return self.public_message


class Unauthenticated(AuthenticationError):
    pass


class InvalidToken(AuthenticationError):
    pass


class SessionInvalidated(AuthenticationError):
    pass


class InvalidCredentials(AuthenticationError):
    public_message = "Invalid credentials."


class Forbidden(FileVueError):
    status_code = 403
    public_message = "Forbidden."


class CsrfError(Forbidden):
    public_message = "CSRF token validation failed."

    @property
    def detail(self) -> str:
        return self.public_message


class ReadOnlyError(Forbidden):
    public_message = "Server is running in read-only mode."


class Conflict(FileVueError):
    status_code = 409
    public_message = "Conflict."


class RateLimited(FileVueError):
    status_code = 429
    public_message = "Too many requests. Please slow down."

    def __init__(
        self,
        message: str | None = None,
        *,
        retry_after: float = 0.0,
        reason: str | None = None,
    ) -> None:
        self.retry_after = retry_after
        super().__init__(message, reason=reason)


class Internal(FileVueError):
    pass


class TooLarge(FileVueError):
    status_code = 413
    public_message = "Payload too large."


class UnsupportedMediaType(FileVueError):
    status_code = 415
    public_message = "Unsupported media type."
