"""
Switchboard exception hierarchy.

Every error raised at a request boundary is an ``HTTPException`` subclass so
FastAPI turns it into a JSON response, and the error handlers in
``switchboard.security.error_handlers`` can add itemised field errors.
"""

from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status


class SwitchboardError(HTTPException):
    """Base exception for all Switchboard errors."""

    code: str = "UNKNOWN_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(
        self,
        detail: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )
        self.errors = errors or []


# =============================================================================
# Input Errors
# =============================================================================

class ValidationError(SwitchboardError):
    """Malformed input. Carries itemised field errors."""
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input data"


class Conflict(SwitchboardError):
    """Duplicate email or extension.

    Reported as 400 rather than 409 to keep the existing client contract.
    """
    code = "CONFLICT"
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Resource already exists"


# =============================================================================
# Auth Errors
# =============================================================================

class Unauthorized(SwitchboardError):
    """Missing, invalid or expired credential."""
    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Could not validate credentials"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class InvalidCredentials(Unauthorized):
    """Login failure. One message for unknown email, inactive user and bad password."""
    code = "INVALID_CREDENTIALS"
    default_detail = "Invalid credentials"


class Forbidden(SwitchboardError):
    """Authenticated but not allowed."""
    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Insufficient permissions"


# =============================================================================
# Lookup Errors
# =============================================================================

class NotFound(SwitchboardError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class NotConfigured(SwitchboardError):
    """Telephony credentials have not been stored yet."""
    code = "TELEPHONY_NOT_CONFIGURED"
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Telephony credentials not configured"
