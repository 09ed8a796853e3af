from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base class for errors the API layer renders as ErrorResponse.

    `code` is stable and machine-readable; `message` is safe to show to users.
    """

    code: str = "error"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, *, details: list[dict[str, Any]] | None = None):
        self.message = message or self.default_message
        self.details = details or []
        super().__init__(self.message)


class ValidationError(DomainError):
    code = "validation_error"
    status_code = 422
    default_message = "Invalid request"


class NotFoundError(DomainError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class PermissionDeniedError(DomainError):
    code = "forbidden"
    status_code = 403
    default_message = "Not allowed"


class InvalidTransitionError(DomainError):
    code = "invalid_transition"
    status_code = 409
    default_message = "Status change not allowed"


class InsufficientImagesError(DomainError):
    code = "insufficient_images"
    status_code = 409
    default_message = "Add more photos before publishing this listing"


class QuotaExceededError(DomainError):
    code = "quota_exceeded"
    status_code = 402
    default_message = "Free listing limit reached: upgrade to add more listings"


class StoreUnavailableError(DomainError):
    # transient; callers may retry with backoff
    code = "store_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
