"""Error taxonomy shared by the engine, the adapters and the HTTP layer.

Each error carries the HTTP status it maps to and a message that is safe to
show to the caller. Diagnostic detail belongs in the log, not in `message`.
"""
from __future__ import annotations

from enum import Enum


class MurmurError(Exception):
    status_code = 500
    default_message = "Internal error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class SubmissionError(MurmurError):
    """Base for anything that ends a submission without a Post or QuarantinedItem."""


class ValidationErrorKind(str, Enum):
    EMPTY_CONTENT = "empty_content"
    CONTENT_TOO_LONG = "content_too_long"
    ATTACHMENT_TOO_LARGE = "attachment_too_large"
    ATTACHMENT_NOT_AN_IMAGE = "attachment_not_an_image"


class ValidationError(SubmissionError):
    status_code = 400

    def __init__(self, kind: ValidationErrorKind, message: str) -> None:
        self.kind = kind
        super().__init__(message)


class AuthError(MurmurError):
    status_code = 401
    default_message = "Unauthorized"


class ForbiddenError(MurmurError):
    status_code = 403
    default_message = "Forbidden: You can only delete your own posts."


class NotFoundError(SubmissionError):
    status_code = 404
    default_message = "Post not found"


class ClassifierError(SubmissionError):
    default_message = "Could not moderate the submission. Please try again."


class ClassifierUnavailable(ClassifierError):
    pass


class ClassifierMalformedResponse(ClassifierError):
    pass


class PersistenceError(SubmissionError):
    default_message = "Failed to save the submission."
