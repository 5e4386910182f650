"""Error taxonomy shared by the generation pipeline and the API layer.

Every error carries a ``status_class`` that the API maps to an HTTP status
code.  Messages are user-facing and returned verbatim in the response body.
"""

from __future__ import annotations


class NanphotoError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_class = "upstream-failure"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NanphotoError):
    """A required request field is missing or empty.

    Raised before any external call is made.
    """

    status_class = "bad-request"


class Unauthorized(NanphotoError):
    """The request carries no valid session."""

    status_class = "unauthorized"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ExternalServiceError(NanphotoError):
    """Transport failure, non-success status, or unparseable model response."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GenerationRejected(NanphotoError):
    """The model answered but declined to produce usable output."""

    def __init__(self, reason: str):
        super().__init__(f"Generation stopped by the model (reason: {reason})")
        self.reason = reason


class MissingImage(NanphotoError):
    """The call succeeded but the mode-required image is absent."""

    def __init__(self, message: str = "The model did not return an image. Try a different request."):
        super().__init__(message)


class StoreUnavailable(NanphotoError):
    """The gallery backend is not configured or cannot be reached."""

    status_class = "store-unavailable"


class GalleryItemNotFound(NanphotoError):
    """No gallery item exists with the requested identifier."""

    status_class = "not-found"

    def __init__(self, item_id: str):
        super().__init__(f"Gallery item not found: {item_id}")
        self.item_id = item_id
