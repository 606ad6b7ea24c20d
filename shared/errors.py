"""
Shared error handling for the credential gate.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field
from opentelemetry import trace


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GateException(Exception):
    """Base exception for gate services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        # Get trace ID from current span
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(GateException):
    """Missing or invalid configuration. Fatal at startup."""

    status_code = 500

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class TransportError(GateException):
    """Network failure, timeout or non-2xx answer from an upstream."""

    status_code = 502

    def __init__(self, service: str, message: str = "Upstream unavailable", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("TRANSPORT_ERROR", f"{service}: {message}", details)


class UpstreamFormatError(GateException):
    """Upstream answered with an unexpected response shape."""

    status_code = 502

    def __init__(self, service: str, message: str = "Unexpected response shape", details: Optional[Dict[str, Any]] = None):
        self.service = service
        super().__init__("UPSTREAM_FORMAT_ERROR", f"{service}: {message}", details)


class NotFoundError(GateException):
    """Requested record does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class VerificationMismatch(GateException):
    """Commitment fields do not reconcile."""

    status_code = 401

    def __init__(self, message: str = "Commitment verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VERIFICATION_MISMATCH", message, details)


class ValidationError(GateException):
    """Validation-related errors."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class MalformedCommitmentError(ValidationError):
    """Commitment inputs are not a complete 4-tuple."""

    def __init__(self, message: str = "Commitment inputs must hold account, asset, timestamp and digest",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = "MALFORMED_COMMITMENT"
