"""Conversation persistence for the chat widget.

The store keeps one partition per session (``conversation_<session_id>``)
plus widget-wide preferences and open/closed state, all as JSON documents
in a key-value backend. History is bounded two ways: messages older than
``max_age_ms`` are dropped on every read and write, and once a conversation
holds more than ``max_messages`` the oldest entries are evicted.

Storage problems never interrupt the chat. A failed write is retried once
after making room; if it still fails the store stops persisting for the
rest of the session.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from gary_ai.widget.backends import KeyValueBackend
from gary_ai.widget.errors import StorageError, StorageQuotaExceeded
from gary_ai.widget.models import (
    Clock,
    ConversationStats,
    Message,
    MessageType,
    Preferences,
    StorageUsage,
    WidgetSnapshot,
    now_ms,
    random_base36,
    to_base36,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PREFIX = "gary_ai_"
DEFAULT_MAX_MESSAGES = 100
DEFAULT_MAX_AGE_MS = 7 * 24 * 60 * 60 * 1000
STATE_MAX_AGE_MS = 24 * 60 * 60 * 1000

CONVERSATION_KEY = "conversation_"
PREFERENCES_KEY = "preferences"
STATE_KEY = "widget_state"


class ConversationStore:
    """
    Persists the active session's conversation, preferences and widget state.

    Thread Safety:
        Not thread-safe. Two stores sharing a backend (e.g. two widget
        instances) are not synchronized; the last write wins.

    Example:
        store = ConversationStore(MemoryBackend(), session_id="gary_1_abc")
        store.save_message("hi", MessageType.USER)
        store.get_conversation()[-1].text  # "hi"
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        session_id: str,
        *,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        max_age_ms: int = DEFAULT_MAX_AGE_MS,
        prefix: str = DEFAULT_STORAGE_PREFIX,
        clock: Clock | None = None,
    ) -> None:
        if not session_id:
            raise ValueError("session_id is required")
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        self._backend = backend
        self._session_id = session_id
        self._max_messages = max_messages
        self._max_age_ms = max_age_ms
        self._prefix = prefix
        self._clock = clock or now_ms
        self._degraded = False
        self._closed = False
        logger.debug("Storage initialized for session %s", session_id)

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def persistent(self) -> bool:
        """False once writes have been given up on or the store is closed."""
        return not (self._degraded or self._closed)

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Low-level JSON access
    # ------------------------------------------------------------------

    @property
    def _conversation_key(self) -> str:
        return f"{CONVERSATION_KEY}{self._session_id}"

    def _full_key(self, key: str) -> str:
        return self._prefix + key

    def _get_json(self, key: str) -> Any:
        raw = self._backend.get(self._full_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value under {key}: {e}") from e

    def _set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize value for {key}: {e}") from e
        self._backend.set(self._full_key(key), raw)

    def _remove(self, key: str) -> None:
        self._backend.remove(self._full_key(key))

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    def _is_current(self, message: Message, now: int) -> bool:
        return (
            message.session_id == self._session_id
            and now - self._max_age_ms < message.timestamp <= now
        )

    def _load_messages(self, now: int) -> list[Message]:
        raw = self._get_json(self._conversation_key) or []
        messages = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                message = Message.from_dict(entry)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored message: %r", entry)
                continue
            if self._is_current(message, now):
                messages.append(message)
        return messages

    def _write_messages(self, messages: list[Message]) -> None:
        self._set_json(self._conversation_key, [m.to_dict() for m in messages])

    def _degrade(self, error: StorageError) -> None:
        self._degraded = True
        logger.warning(
            "Conversation will not be persisted for the rest of session %s: %s",
            self._session_id,
            error,
        )

    @staticmethod
    def generate_message_id(timestamp: int) -> str:
        """Message id: base36 timestamp followed by random base36 characters."""
        return to_base36(timestamp) + random_base36(11)

    def save_message(
        self,
        text: str,
        type: MessageType | str,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Append a message to the active conversation.

        Args:
            text: Message body.
            type: Author of the message, "user" or "bot".
            metadata: Optional extra data stored with the message.

        Returns:
            The new message id, or None if the message was not persisted.
        """
        if not self.persistent:
            return None

        now = self._clock()
        message = Message(
            id=self.generate_message_id(now),
            text=text,
            type=MessageType(type),
            timestamp=now,
            session_id=self._session_id,
            metadata=dict(metadata or {}),
        )

        try:
            messages = self._load_messages(now)
        except StorageError as e:
            logger.warning("Discarding unreadable conversation: %s", e)
            messages = []

        messages.append(message)
        messages = [m for m in messages if self._is_current(m, now)]
        if len(messages) > self._max_messages:
            messages = messages[-self._max_messages:]

        try:
            self._write_messages(messages)
        except StorageQuotaExceeded as e:
            logger.warning("Storage quota exceeded, evicting and retrying: %s", e)
            messages = self._evict(messages)
            try:
                self._write_messages(messages)
            except StorageError as retry_error:
                self._degrade(retry_error)
                return None
        except StorageError as e:
            self._degrade(e)
            return None

        return message.id

    def _evict(self, messages: list[Message]) -> list[Message]:
        try:
            self.purge_stale_conversations()
        except StorageError as e:
            logger.warning("Stale conversation purge failed during eviction: %s", e)
        keep = max(1, len(messages) // 2)
        return messages[-keep:]

    def get_conversation(self) -> list[Message]:
        """Messages of the active session, oldest first, stale ones removed."""
        try:
            return self._load_messages(self._clock())
        except StorageError as e:
            logger.error("Failed to load conversation: %s", e)
            return []

    def clear_conversation(self) -> bool:
        """Delete the active session's conversation."""
        try:
            self._remove(self._conversation_key)
        except StorageError as e:
            logger.error("Failed to clear conversation: %s", e)
            return False
        logger.debug("Conversation cleared for session %s", self._session_id)
        return True

    def get_stats(self) -> ConversationStats:
        """Counts and time span of the active conversation."""
        messages = self.get_conversation()
        if not messages:
            return ConversationStats()
        return ConversationStats(
            count=len(messages),
            user_count=sum(1 for m in messages if m.type is MessageType.USER),
            bot_count=sum(1 for m in messages if m.type is MessageType.BOT),
            oldest_timestamp=messages[0].timestamp,
            newest_timestamp=messages[-1].timestamp,
        )

    # ------------------------------------------------------------------
    # Preferences and widget state
    # ------------------------------------------------------------------

    def get_preferences(self) -> Preferences:
        """Stored preferences, or defaults when none are stored."""
        try:
            data = self._get_json(PREFERENCES_KEY)
        except StorageError as e:
            logger.error("Failed to load preferences: %s", e)
            return Preferences()
        if not isinstance(data, dict):
            return Preferences()
        return Preferences.from_dict(data)

    def save_preferences(self, **changes: Any) -> bool:
        """Merge ``changes`` into the stored preferences.

        Unknown preference names raise ``TypeError``.
        """
        unknown = set(changes) - set(Preferences.__dataclass_fields__)
        if unknown:
            raise TypeError(f"Unknown preferences: {', '.join(sorted(unknown))}")

        merged = self.get_preferences().to_dict()
        merged.update(changes)
        merged["updated"] = self._clock()
        try:
            self._set_json(PREFERENCES_KEY, merged)
        except StorageError as e:
            logger.error("Failed to save preferences: %s", e)
            return False
        return True

    def save_state(self, is_open: bool) -> bool:
        """Remember whether the widget is open."""
        snapshot = WidgetSnapshot(
            is_open=is_open,
            session_id=self._session_id,
            timestamp=self._clock(),
        )
        try:
            self._set_json(STATE_KEY, snapshot.to_dict())
        except StorageError as e:
            logger.error("Failed to save widget state: %s", e)
            return False
        return True

    def get_state(self) -> WidgetSnapshot | None:
        """The remembered widget state, or None if absent or over a day old."""
        try:
            data = self._get_json(STATE_KEY)
        except StorageError as e:
            logger.error("Failed to load widget state: %s", e)
            return None
        if not isinstance(data, dict):
            return None

        try:
            snapshot = WidgetSnapshot(
                is_open=bool(data["is_open"]),
                session_id=str(data["session_id"]),
                timestamp=int(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError):
            return None

        if self._clock() - snapshot.timestamp > STATE_MAX_AGE_MS:
            try:
                self._remove(STATE_KEY)
            except StorageError as e:
                logger.warning("Failed to remove stale widget state: %s", e)
            return None
        return snapshot

    # ------------------------------------------------------------------
    # Housekeeping
    # ------------------------------------------------------------------

    def _widget_keys(self) -> list[str]:
        return [k for k in self._backend.keys() if k.startswith(self._prefix)]

    def purge_stale_conversations(self) -> int:
        """Remove conversations whose newest message is older than ``max_age_ms``.

        Returns:
            Number of conversations removed.
        """
        marker = self._prefix + CONVERSATION_KEY
        cutoff = self._clock() - self._max_age_ms
        cleaned = 0

        for key in self._widget_keys():
            if not key.startswith(marker):
                continue
            try:
                raw = json.loads(self._backend.get(key) or "[]")
                newest = int(raw[-1]["timestamp"]) if raw else None
            except (json.JSONDecodeError, KeyError, TypeError, ValueError, IndexError):
                logger.warning("Skipping unreadable conversation %s", key)
                continue
            if newest is not None and newest < cutoff:
                self._backend.remove(key)
                cleaned += 1

        logger.debug("Cleaned up %d old conversations", cleaned)
        return cleaned

    def usage_info(self) -> StorageUsage:
        """Number and total size of the widget's keys in the backend."""
        keys = self._widget_keys()
        size = 0
        for key in keys:
            value = self._backend.get(key)
            size += len(key) + (len(value) if value else 0)
        return StorageUsage(
            keys=len(keys),
            size_bytes=size,
            available=self._backend.is_available(),
        )

    def cleanup(self) -> int:
        """Purge stale conversations and close the store.

        After cleanup no further messages are saved.

        Returns:
            Number of stale conversations removed.
        """
        if self._closed:
            return 0
        try:
            cleaned = self.purge_stale_conversations()
        except StorageError as e:
            logger.error("Cleanup failed: %s", e)
            cleaned = 0
        self._closed = True
        return cleaned


def list_conversations(
    backend: KeyValueBackend,
    prefix: str = DEFAULT_STORAGE_PREFIX,
) -> dict[str, int]:
    """Session ids with a stored conversation, mapped to raw message counts."""
    marker = prefix + CONVERSATION_KEY
    result: dict[str, int] = {}
    for key in backend.keys():
        if not key.startswith(marker):
            continue
        try:
            raw = json.loads(backend.get(key) or "[]")
        except json.JSONDecodeError:
            logger.warning("Unreadable conversation under %s", key)
            raw = []
        result[key[len(marker):]] = len(raw) if isinstance(raw, list) else 0
    return result
