"""Data types shared by the widget components."""

from __future__ import annotations

import secrets
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

Clock = Callable[[], int]
"""Callable returning the current epoch time in milliseconds."""


def now_ms() -> int:
    """Current epoch time in milliseconds."""
    return int(time.time() * 1000)


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def random_base36(length: int) -> str:
    """Random lowercase base36 string of the given length."""
    return "".join(secrets.choice(BASE36_ALPHABET) for _ in range(length))


class MessageType(str, Enum):
    """Who authored a conversation message."""

    USER = "user"
    BOT = "bot"


class WidgetState(str, Enum):
    """Lifecycle states of the widget coordinator."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SENDING = "sending"
    FAILED = "failed"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class Message:
    """A single conversation message.

    Attributes:
        id: Unique message identifier.
        text: Message body.
        type: Author of the message.
        timestamp: Creation time in epoch milliseconds.
        session_id: Session the message belongs to.
        metadata: Free-form extra data supplied by the caller.
    """

    id: str
    text: str
    type: MessageType
    timestamp: int
    session_id: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            type=MessageType(data["type"]),
            timestamp=int(data["timestamp"]),
            session_id=str(data["session_id"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Preferences:
    """Visual preferences of the widget, merged last-write-wins."""

    theme: str = "default"
    position: str = "bottom-right"
    minimized: bool = False
    sound_enabled: bool = True
    notifications_enabled: bool = True
    updated: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Preferences":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class WidgetSnapshot:
    """Persisted open/closed state of the widget."""

    is_open: bool
    session_id: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ConversationStats:
    """Summary of the active conversation."""

    count: int = 0
    user_count: int = 0
    bot_count: int = 0
    oldest_timestamp: int | None = None
    newest_timestamp: int | None = None

    @property
    def duration_ms(self) -> int:
        if self.oldest_timestamp is None or self.newest_timestamp is None:
            return 0
        return self.newest_timestamp - self.oldest_timestamp

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["duration_ms"] = self.duration_ms
        return data


@dataclass
class StorageUsage:
    """How much of the backend the widget's keys occupy."""

    keys: int
    size_bytes: int
    available: bool

    @property
    def size_kb(self) -> float:
        return round(self.size_bytes / 1024, 2)


@dataclass
class ChatReply:
    """Successful answer from the chat endpoint.

    Attributes:
        response: The bot's reply text.
        data: The full ``data`` object of the response envelope.
    """

    response: str
    data: dict[str, Any] = field(default_factory=dict)
