"""
Error Definitions

Exceptions raised by the gateway and rendered by the HTTP layer. Each
subclass fixes the OpenAI-style error `type`, its default `code` and the
HTTP status it is reported with.
"""

from typing import Any, Optional


class AppError(Exception):
    error_type = "app_error"
    default_code = "internal_error"
    default_message = "Internal server error"
    http_status = 500

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        self.code = code or self.default_code
        self.details = details or {}
        self.status_code = status_code or self.http_status

    def to_dict(self, include_details: bool = True) -> dict[str, Any]:
        """Render as `{"error": {"message", "type", "code"[, "details"]}}`."""
        error: dict[str, Any] = {
            "message": self.message,
            "type": self.error_type,
            "code": self.code,
        }
        if include_details and self.details:
            error["details"] = self.details
        return {"error": error}


class AuthenticationError(AppError):
    """No usable upstream credentials."""

    error_type = "authentication_error"
    default_code = "invalid_credentials"
    default_message = "Authentication failed"
    http_status = 401


class ValidationError(AppError):
    """The inbound body cannot be translated."""

    error_type = "validation_error"
    default_code = "validation_error"
    default_message = "Validation failed"
    http_status = 422


class UnsupportedFormatError(AppError):
    error_type = "invalid_request_error"
    default_code = "unsupported_format"
    default_message = "Unsupported request format"
    http_status = 400


class UpstreamError(AppError):
    """The upstream call could not be made or the connection dropped."""

    error_type = "upstream_error"
    default_code = "upstream_error"
    default_message = "Upstream service error"
    http_status = 502
