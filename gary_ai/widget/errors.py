"""Exception hierarchy for the chat widget.

Every error carries a short ``kind`` string so the coordinator can report
the specific failure to analytics while showing the end user a generic
message.
"""

from __future__ import annotations

from typing import Any


class WidgetError(Exception):
    """Base exception for chat widget errors."""

    kind = "widget_error"

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for analytics payloads.

        Returns:
            Dictionary with the error kind and message.
        """
        return {
            "error": self.kind,
            "message": str(self),
        }


class ValidationError(WidgetError):
    """Raised when outgoing text is empty or too long."""

    kind = "validation_error"


class RateLimitedError(WidgetError):
    """Raised when the client-side rate limit refuses a request.

    Attributes:
        retry_after_ms: Milliseconds until a request may be attempted again.
    """

    kind = "rate_limited"

    def __init__(self, retry_after_ms: int):
        self.retry_after_ms = retry_after_ms
        super().__init__(
            "Rate limit exceeded. Please wait before sending another message."
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_ms"] = self.retry_after_ms
        return data


class BusyError(WidgetError):
    """Raised when a send is attempted while another one is in flight."""

    kind = "busy"


class TransportError(WidgetError):
    """Base exception for failures talking to the chat endpoint."""

    kind = "transport_error"


class NetworkError(TransportError):
    """No response was received (connection failure or timeout)."""

    kind = "network_error"


class ServerError(TransportError):
    """The endpoint answered but reported a failure."""

    kind = "server_error"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class MalformedResponse(TransportError):
    """The endpoint answered with a body missing the expected fields."""

    kind = "malformed_response"


class StorageError(WidgetError):
    """Conversation storage could not be read or written."""

    kind = "storage_error"


class StorageQuotaExceeded(StorageError):
    """The storage backend has no room left for a write."""

    kind = "storage_quota_exceeded"
