"""
Error Handlers

Turns request-boundary errors into structured JSON responses. Domain errors
keep their message; unexpected errors are logged in full and answered with a
generic message so no internals leak to the caller.
"""

import logging
import traceback
from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from switchboard.core.exceptions import SwitchboardError
from switchboard.security.audit_logger import audit_logger

logger = logging.getLogger(__name__)


class SecureErrorHandler:
    """Handles errors without leaking sensitive information"""

    def __init__(self, debug_mode: bool = False):
        self.debug_mode = debug_mode

        self.safe_validation_messages = {
            "missing": "This field is required",
            "string_too_short": "Value is too short",
            "string_too_long": "Value is too long",
            "string_type": "Invalid data type",
            "int_parsing": "Invalid data type",
            "bool_parsing": "Invalid data type",
            "datetime": "Invalid date/time format",
            "enum": "Invalid option selected",
            "value_error": "Invalid value",
            "json_invalid": "Invalid JSON format"
        }

    async def handle_http_exception(self, request: Request, exc: HTTPException) -> JSONResponse:
        """Handle HTTP exceptions, including the Switchboard error hierarchy"""
        status_code = exc.status_code
        client_ip = self._get_client_ip(request)
        logger.warning(
            f"HTTP {status_code} error: {request.method} {request.url.path} "
            f"from {client_ip} - {exc.detail}"
        )

        if status_code == 401:
            audit_logger.log_authentication_failure(
                ip_address=client_ip,
                user_agent=request.headers.get("user-agent", "unknown"),
                failure_reason=str(exc.detail)
            )

        response_data = {"detail": exc.detail, "message": exc.detail}
        if isinstance(exc, SwitchboardError):
            response_data["code"] = exc.code
            if exc.errors:
                response_data["errors"] = exc.errors

        return JSONResponse(
            status_code=status_code,
            content=response_data,
            headers=getattr(exc, "headers", None)
        )

    async def handle_validation_error(self, request: Request, exc: RequestValidationError) -> JSONResponse:
        """Report malformed input as 400 with itemised field errors"""
        client_ip = self._get_client_ip(request)
        logger.warning(
            f"Validation error: {request.method} {request.url.path} "
            f"from {client_ip} - {len(exc.errors())} errors"
        )

        safe_errors = []
        for error in exc.errors():
            # Drop the leading "body"/"query" location segment
            loc = [str(part) for part in error.get("loc", [])]
            if loc and loc[0] in ("body", "query", "path"):
                loc = loc[1:]
            safe_errors.append({
                "field": ".".join(loc),
                "message": self._get_safe_validation_message(error.get("type", ""))
            })

        return JSONResponse(
            status_code=400,
            content={
                "detail": "Invalid input data",
                "message": "Invalid input data",
                "code": "VALIDATION_ERROR",
                "errors": safe_errors[:10]
            }
        )

    async def handle_internal_error(self, request: Request, exc: Exception) -> JSONResponse:
        """Log the failure and answer with a generic message"""
        client_ip = self._get_client_ip(request)
        logger.error(
            f"Internal server error: {request.method} {request.url.path} "
            f"from {client_ip} - {type(exc).__name__}: {exc}"
        )
        logger.error(f"Traceback: {''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))}")

        response_data = {"detail": "Internal server error", "message": "Internal server error"}
        if self.debug_mode:
            response_data["error_type"] = type(exc).__name__

        return JSONResponse(status_code=500, content=response_data)

    def _get_safe_validation_message(self, error_type: str) -> str:
        for error_key, safe_msg in self.safe_validation_messages.items():
            if error_key in error_type:
                return safe_msg
        return "Invalid value"

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request"""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(',')[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"


# Global error handler instance
error_handler = SecureErrorHandler()
