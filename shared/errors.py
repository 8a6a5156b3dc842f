"""
Shared error handling for the Relay Access service.

Every failure that reaches a caller is rendered as ``{error, message, code}``
with the HTTP status carried by the exception class.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: str
    code: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RelayError(Exception):
    """Base exception for relay failures surfaced to callers."""

    status_code: int = 500
    title: str = "Internal Server Error"

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.title,
            message=self.message,
            code=self.code,
            details=self.details
        )


class MalformedInputError(RelayError):
    """Bad or missing URL, unknown format or unknown source."""

    status_code = 400
    title = "Bad Request"

    def __init__(self, message: str = "Malformed input", details: Optional[Dict[str, Any]] = None):
        super().__init__("MALFORMED_INPUT", message, details)


class ForbiddenTargetError(RelayError):
    """Target resolves to the local or private network."""

    status_code = 403
    title = "Forbidden"

    def __init__(self, message: str = "Access to local resources is forbidden", details: Optional[Dict[str, Any]] = None):
        super().__init__("FORBIDDEN_TARGET", message, details)


class PayloadTooLargeError(RelayError):
    """Inbound request body exceeds the configured limit."""

    status_code = 413
    title = "Payload Too Large"

    def __init__(self, message: str = "Request body too large", details: Optional[Dict[str, Any]] = None):
        super().__init__("PAYLOAD_TOO_LARGE", message, details)


class UpstreamTimeoutError(RelayError):
    """Outbound request exceeded its deadline."""

    status_code = 504
    title = "Gateway Timeout"

    def __init__(self, message: str = "Upstream request timed out", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_TIMEOUT", message, details)


class UpstreamUnavailableError(RelayError):
    """Upstream fetch failed and no fallback was available."""

    status_code = 500
    title = "Upstream Unavailable"

    def __init__(self, service: str, message: str = "Upstream unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("UPSTREAM_UNAVAILABLE", f"{service}: {message}", details)


class InternalFailureError(RelayError):
    """Unexpected internal failure."""

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, message: str = "Internal failure", details: Optional[Dict[str, Any]] = None):
        super().__init__("INTERNAL_FAILURE", message, details)


class EncodingError(InternalFailureError):
    """Base-58 encoding of a document failed."""

    def __init__(self, message: str = "Encoding failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "ENCODING_FAILURE"
