"""
Shared error handling for the condominium back-office API.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}


class CondoException(Exception):
    """Base exception for the back-office API."""

    status_code = 500

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class AuthenticationError(CondoException):
    """Authentication-related errors."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHENTICATION_ERROR", message, details)


class NotFoundError(CondoException):
    """Missing resource."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            "NOT_FOUND",
            f"{resource} not found",
            {"resource": resource, "id": str(identifier)},
        )


class StoreError(CondoException):
    """Shared store call failed.

    Raised by the store client and always caught by its consumers; the cache
    and rate-limit layers degrade instead of surfacing it to a client.
    """

    status_code = 503

    def __init__(self, operation: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.operation = operation
        super().__init__("STORE_ERROR", f"{operation}: {message}", details)


class RateLimitError(CondoException):
    """Rate limiting errors."""

    status_code = 429

    def __init__(self, message: str = "Rate limit exceeded", details: Optional[Dict[str, Any]] = None):
        super().__init__("RATE_LIMIT_ERROR", message, details)

    def to_body(self) -> Dict[str, Any]:
        """Body of the 429 response sent to rejected clients."""
        return {"status": self.status_code, "message": self.message}
