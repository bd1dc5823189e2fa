"""
Error taxonomy for the invite pipeline.

Every error carries an HTTP status code so the FastAPI exception handlers
in main.py can map it to a response without inspecting the type further.
"""

from typing import Any, Dict, Optional


class InviteError(Exception):
    """Base exception for all pipeline errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        # Set when a rendered invite was parked for a later confirm() retry
        self.retry_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ok": False,
            "error": type(self).__name__,
            "detail": self.message,
        }
        if self.retry_token:
            data["retry_token"] = self.retry_token
        return data


class ConfigurationError(InviteError):
    """A required credential or address is missing. Not retryable."""

    status_code = 500


class ProviderTimeout(InviteError):
    """An external provider did not answer within the enforced timeout."""

    status_code = 504

    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(f"{provider} timeout after {timeout_seconds}s")
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class ProviderHttpError(InviteError):
    """An external provider answered with a non-2xx status."""

    status_code = 502

    def __init__(self, provider: str, status: int, body: str):
        super().__init__(f"{provider} API error: {status} {body}")
        self.provider = provider
        self.status = status
        self.body = body

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        data["provider_status"] = self.status
        return data


class MalformedResponse(InviteError):
    """The AI response is not parseable JSON."""

    status_code = 502


class SchemaViolation(InviteError):
    """The AI response parsed but does not match the event schema."""

    status_code = 502

    def __init__(self, field: str, reason: str, index: Optional[int] = None):
        if index is None:
            message = f"Schema violation: '{field}' {_REASONS.get(reason, reason)}"
        else:
            message = f"Schema violation: '{field}' {_REASONS.get(reason, reason)} in event {index}"
        super().__init__(message)
        self.field = field
        self.reason = reason
        self.index = index

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"field": self.field, "reason": self.reason, "index": self.index})
        return data


class InvalidOrExpiredToken(InviteError):
    """confirm() was called with an unknown, consumed or expired token."""

    status_code = 404

    def __init__(self, message: str = "Invalid or expired confirmation token"):
        super().__init__(message)


_REASONS = {
    "missing": "is missing",
    "wrong_type": "has the wrong type",
    "empty": "must not be empty",
    "invalid": "is not a valid value",
}
