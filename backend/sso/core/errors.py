# sso/core/errors.py
"""
Error taxonomy shared by services and routers.

Every client-facing failure is an ``AppError``; the application factory
registers a handler that renders it as a flat ``{"error": message}`` body
with the matching status code.
"""
from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **extra):
        self.message = message or self.default_message
        self.extra = extra  # Additional top-level body fields (e.g. valid=False)
        super().__init__(self.message)

    def to_body(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(AppError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConflictError(AppError):
    """Duplicate username or email. Sent as 400 to keep the wire contract."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Resource already exists"


class AuthError(AppError):
    """Bad credentials, or a missing/invalid/expired token."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class UpstreamError(AppError):
    """Blob store or anti-automation endpoint failure."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Upstream service error"


class InternalError(AppError):
    pass


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests from this IP, please try again later."
