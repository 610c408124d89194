"""
Shared error handling for the rate limiter.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RateLimiterException(Exception):
    """Base exception for rate limiter errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class StoreUnavailable(RateLimiterException):
    """The shared counter store could not be reached, timed out or returned garbage."""

    def __init__(self, message: str = "Counter store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORE_UNAVAILABLE", message, details)


class Contended(RateLimiterException):
    """Compare-and-set retry budget exhausted under concurrent updates."""

    def __init__(self, bucket: str, attempts: int, details: Optional[Dict[str, Any]] = None):
        details = {"bucket": bucket, "attempts": attempts, **(details or {})}
        super().__init__("CONTENDED", f"Bucket '{bucket}' contended after {attempts} attempts", details)
        self.bucket = bucket
        self.attempts = attempts


class InvalidConfiguration(RateLimiterException):
    """Configuration or call arguments that can never be satisfied."""

    def __init__(self, message: str = "Invalid rate limiter configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_CONFIGURATION", message, details)


class RateLimitExceeded(RateLimiterException):
    """Raised by callers that prefer an exception over a denied result."""

    def __init__(self, bucket: str, retry_after: float, details: Optional[Dict[str, Any]] = None):
        details = {"bucket": bucket, "retry_after": retry_after, **(details or {})}
        super().__init__("RATE_LIMIT_EXCEEDED", "Rate limit exceeded", details)
        self.bucket = bucket
        self.retry_after = retry_after
