"""
Error taxonomy for the approval lifecycle.

Every public lifecycle operation either returns its result or raises one of
the subclasses below. Handlers in ``expense_api.main`` turn them into the
``{"error": {"code": ..., "message": ...}}`` envelope.

Retry-safe kinds (after a fresh read): Conflict, Timeout.
Everything else must be surfaced to the user.
"""

from typing import Optional


class LifecycleError(Exception):
    code: str = "LIFECYCLE_ERROR"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class NotFound(LifecycleError):
    code = "NOT_FOUND"
    status_code = 404


class Denied(LifecycleError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = 403


class InvalidTransition(LifecycleError):
    code = "INVALID_TRANSITION"
    status_code = 409


class Conflict(LifecycleError):
    code = "TRANSITION_CONFLICT"
    status_code = 409
    retryable = True


class Timeout(LifecycleError):
    code = "READ_TIMEOUT"
    status_code = 504
    retryable = True


class AttachmentUnavailable(LifecycleError):
    code = "ATTACHMENT_UNAVAILABLE"
    status_code = 502


class ValidationError(LifecycleError):
    code = "VALIDATION_ERROR"
    status_code = 422
