"""
Shared error handling for the TaskHub services.

Authentication-stage failures (everything under ``AuthenticationError``
except ``AuthenticationRequired``) are raised by the token pipeline and
collapsed to an anonymous request at the gate. ``AuthenticationRequired``
and ``AuthorizationDenied`` are raised by the authorization guard and are
surfaced to callers.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: Dict[str, Any] = {}
    path: Optional[str] = None


class AccessLayerException(Exception):
    """Base exception for TaskHub services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, path: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            code=self.code,
            message=self.message,
            details=self.details,
            path=path
        )


class AuthenticationError(AccessLayerException):
    """Authentication-related errors."""

    status_code = 401
    default_code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(self.default_code, message, details)


class MalformedToken(AuthenticationError):
    """Token structure could not be parsed or lacks a key identifier."""

    default_code = "MALFORMED_TOKEN"


class KeyResolutionFailed(AuthenticationError):
    """Signing key for the token could not be resolved."""

    default_code = "KEY_RESOLUTION_FAILED"


class KeyNotFound(KeyResolutionFailed):
    """The remote key set has no key with the requested identifier."""

    default_code = "KEY_NOT_FOUND"


class FetchUnavailable(KeyResolutionFailed):
    """The remote key set endpoint could not be reached."""

    default_code = "FETCH_UNAVAILABLE"


class RateLimited(KeyResolutionFailed):
    """Key set refresh attempts exceeded the configured window."""

    default_code = "RATE_LIMITED"


class SignatureInvalid(AuthenticationError):
    """Token signature does not verify against the resolved key."""

    default_code = "SIGNATURE_INVALID"


class IssuerMismatch(AuthenticationError):
    """Token issuer is not the configured identity provider."""

    default_code = "ISSUER_MISMATCH"


class Expired(AuthenticationError):
    """Token is past its expiry."""

    default_code = "TOKEN_EXPIRED"


class NotYetValid(AuthenticationError):
    """Token ``nbf`` lies in the future."""

    default_code = "TOKEN_NOT_YET_VALID"


class AuthenticationRequired(AuthenticationError):
    """An operation needs a Principal and the request has none."""

    default_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class AuthorizationDenied(AccessLayerException):
    """Authorization-related errors."""

    status_code = 403

    def __init__(self, message: str = "Access denied", details: Optional[Dict[str, Any]] = None):
        super().__init__("AUTHORIZATION_DENIED", message, details)


class ResourceNotFound(AccessLayerException):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("RESOURCE_NOT_FOUND", message, details)


class ValidationError(AccessLayerException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)
