"""Chat widget configuration.

This module defines the configuration dataclasses handed to the widget
coordinator on construction: behaviour flags, rate limiting, storage limits,
and the API credentials needed to reach the chat endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gary_ai.config.settings import Settings

VALID_POSITIONS = ("bottom-right", "bottom-left")

DEFAULT_WELCOME_MESSAGE = "Hello! How can I help you today?"


@dataclass
class RateLimitConfig:
    """Client-side rate limit for outgoing chat messages.

    Attributes:
        max_requests: Requests allowed within one window.
        time_window: Window length in milliseconds.
        lockout_duration: Milliseconds of refusal after the cap is hit.
    """

    max_requests: int = 10
    time_window: int = 60_000
    lockout_duration: int = 300_000

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.time_window < 1:
            raise ValueError("time_window must be at least 1")
        if self.lockout_duration < 0:
            raise ValueError("lockout_duration cannot be negative")


@dataclass
class WidgetConfig:
    """Configuration for the chat widget coordinator.

    Every field has a default, and changing one only changes the behaviour
    it names.

    Attributes:
        position: Widget corner, "bottom-right" or "bottom-left".
        theme: Theme name applied by the view.
        auto_open: Open the widget as soon as it is ready.
        enable_analytics: Report widget events to the analytics endpoint.
        enable_storage: Persist conversation history and preferences. When
            False no history is loaded or saved and the welcome message is
            shown on every load.
        max_message_length: Longest message a user may send.
        rate_limit: Client-side rate limit for chat requests.
        max_messages: Stored conversation cap (oldest messages evicted first).
        max_age_ms: Stored messages older than this are purged.
        welcome_message: Bot greeting seeded into an empty conversation.
    """

    position: str = "bottom-right"
    theme: str = "default"
    auto_open: bool = False
    enable_analytics: bool = True
    enable_storage: bool = True
    max_message_length: int = 2000
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    max_messages: int = 100
    max_age_ms: int = 7 * 24 * 60 * 60 * 1000
    welcome_message: str = DEFAULT_WELCOME_MESSAGE

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.position not in VALID_POSITIONS:
            raise ValueError(
                f"Invalid position '{self.position}'. "
                f"Must be one of: {', '.join(VALID_POSITIONS)}"
            )
        if self.max_message_length < 1:
            raise ValueError("max_message_length must be at least 1")
        if self.max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        if self.max_age_ms < 1:
            raise ValueError("max_age_ms must be at least 1")
        if not self.welcome_message:
            raise ValueError("welcome_message cannot be empty")

    def validate_message_length(self, content: str) -> bool:
        """Check if a message is within the allowed length limit.

        Args:
            content: The message content to validate.

        Returns:
            True if the message is within limits, False otherwise.
        """
        return len(content) <= self.max_message_length

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides) -> "WidgetConfig":
        """Build a configuration from environment settings.

        Args:
            settings: Loaded application settings.
            **overrides: Field values taking precedence over settings.

        Returns:
            A validated WidgetConfig.
        """
        values = {
            "enable_analytics": settings.ENABLE_ANALYTICS,
            "enable_storage": settings.ENABLE_STORAGE,
            "max_message_length": settings.MAX_MESSAGE_LENGTH,
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class ApiCredentials:
    """Where and how to reach the chat endpoint.

    Attributes:
        endpoint: URL of the admin-ajax style endpoint.
        nonce: Authentication token sent with every request.
        timeout: Request timeout in seconds.
    """

    endpoint: str
    nonce: str
    timeout: float = 30.0

    @property
    def is_complete(self) -> bool:
        """True when both the endpoint URL and the nonce are present."""
        return bool(self.endpoint and self.endpoint.strip() and self.nonce)

    def missing_fields(self) -> list[str]:
        """Names of required credential fields that are empty."""
        missing = []
        if not self.endpoint or not self.endpoint.strip():
            missing.append("endpoint")
        if not self.nonce:
            missing.append("nonce")
        return missing

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ApiCredentials":
        """Read credentials from environment settings."""
        return cls(
            endpoint=settings.ENDPOINT,
            nonce=settings.NONCE,
            timeout=settings.TIMEOUT,
        )
