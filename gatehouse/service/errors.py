from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each subclass carries both an HTTP ``status_code`` and a stable
    ``error_code``:
    - unauthorized (401)
    - forbidden (403)
    - not_found (404)
    - validation_error (400)
    - unavailable (503)
    """

    status_code: int = 400
    error_code: str = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class InvalidRequestError(ServiceError):
    """The caller sent something it can correct (400)."""
    status_code = 400
    error_code = "validation_error"


class NotAuthorizedError(ServiceError):
    """Credentials were rejected (401).

    The message is identical for every rejection so callers cannot tell
    which validation branch failed.
    """
    status_code = 401
    error_code = "unauthorized"

    def __init__(self, message: str = "not authorized", **kwargs) -> None:
        super().__init__(message, **kwargs)


class ForbiddenError(ServiceError):
    """Access denied - insufficient roles (403)."""
    status_code = 403
    error_code = "forbidden"


class NotFoundError(ServiceError):
    """Requested resource not found (404)."""
    status_code = 404
    error_code = "not_found"


class ServiceUnavailableError(ServiceError):
    """A backing store or directory could not be reached (503)."""
    status_code = 503
    error_code = "unavailable"


__all__ = [
    "ServiceError",
    "InvalidRequestError",
    "NotAuthorizedError",
    "ForbiddenError",
    "NotFoundError",
    "ServiceUnavailableError",
]
