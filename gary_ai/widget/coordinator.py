"""Chat widget coordinator.

``ChatWidget`` owns one widget instance: it obtains the session, builds the
transport, store and view, replays stored history, and runs the send
lifecycle. No error raised by its collaborators escapes to the host; they
become widget states and ``SendOutcome`` values instead.

Lifecycle::

    UNINITIALIZED -> INITIALIZING -> READY <-> SENDING
                           |
                           +-> FAILED          (any state) -> DESTROYED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from gary_ai.widget.backends import KeyValueBackend, MemoryBackend
from gary_ai.widget.config import ApiCredentials, WidgetConfig
from gary_ai.widget.errors import (
    BusyError,
    RateLimitedError,
    StorageError,
    ValidationError,
    WidgetError,
)
from gary_ai.widget.models import (
    Clock,
    ConversationStats,
    MessageType,
    WidgetState,
    now_ms,
)
from gary_ai.widget.session import DEFAULT_SESSION_PREFIX, SessionManager
from gary_ai.widget.storage import ConversationStore
from gary_ai.widget.transport import ChatTransport
from gary_ai.widget.view import ViewFactory, ViewOptions, WidgetEvents, WidgetView

logger = logging.getLogger(__name__)

RATE_LIMITED_REPLY = "You're sending messages too quickly. Please wait a moment."
GENERIC_ERROR_REPLY = "Sorry, I encountered an error. Please try again."
MESSAGE_TOO_LONG_STATUS = "Message too long"


class SendStatus(str, Enum):
    """How a send request ended."""

    DELIVERED = "delivered"
    """The bot replied."""

    INVALID = "invalid"
    """Empty or over-long text; nothing was sent."""

    BUSY = "busy"
    """Another send was still in flight."""

    INACTIVE = "inactive"
    """The widget is not ready (failed, destroyed or not initialized)."""

    RATE_LIMITED = "rate_limited"
    """The client-side rate limit refused the request."""

    FAILED = "failed"
    """The request reached the transport and failed."""


@dataclass
class SendOutcome:
    """Result of ``ChatWidget.send_message``.

    Attributes:
        status: How the request ended.
        reply: Bot reply text when delivered, otherwise the apology shown.
        error: The underlying error, if any.
    """

    status: SendStatus
    reply: str | None = None
    error: WidgetError | None = None

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.DELIVERED


class ChatWidget(WidgetEvents):
    """Coordinates session, transport, storage and view for one widget.

    Parameters
    ----------
    config:
        Widget behaviour. Defaults to ``WidgetConfig()``.
    credentials:
        Endpoint and nonce. Without them ``init`` fails and the widget shows
        a degraded "chat unavailable" view.
    backend:
        Key-value store for history and preferences. Defaults to an
        in-memory backend.
    view_factory:
        Builds the view, receiving this coordinator as its event sink.
    transport:
        Optional pre-built transport, mainly for tests. The widget only
        closes transports it created itself.
    session_prefix:
        Prefix for locally generated session ids.
    clock:
        Millisecond clock shared with the rate limiter and store.

    Example:
        widget = ChatWidget(WidgetConfig(), credentials=ApiCredentials(url, nonce))
        await widget.init()
        outcome = await widget.send_message("Hi there")
        await widget.destroy()
    """

    def __init__(
        self,
        config: WidgetConfig | None = None,
        *,
        credentials: ApiCredentials | None = None,
        backend: KeyValueBackend | None = None,
        view_factory: ViewFactory = WidgetView,
        transport: ChatTransport | None = None,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or WidgetConfig()
        self._credentials = credentials
        self._backend = backend if backend is not None else MemoryBackend()
        self._view_factory = view_factory
        self._transport = transport
        self._owns_transport = transport is None
        self._session_prefix = session_prefix
        self._clock = clock or now_ms

        self._state = WidgetState.UNINITIALIZED
        self._busy = False
        self._session_id: str | None = None
        self._store: ConversationStore | None = None
        self._view: WidgetView | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> WidgetConfig:
        return self._config

    @property
    def state(self) -> WidgetState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def store(self) -> ConversationStore | None:
        """The conversation store, None when storage is disabled."""
        return self._store

    @property
    def view(self) -> WidgetView | None:
        return self._view

    @property
    def transport(self) -> ChatTransport | None:
        return self._transport

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def _view_options(self) -> ViewOptions:
        return ViewOptions(
            position=self._config.position,
            theme=self._config.theme,
            auto_open=self._config.auto_open,
        )

    def _fail(self, reason: str) -> bool:
        logger.error("Widget initialization failed: %s", reason)
        self._state = WidgetState.FAILED
        if self._view is None:
            self._view = self._view_factory(self, self._view_options())
        self._view.show_unavailable()
        return False

    async def init(self) -> bool:
        """Bring the widget to READY.

        Returns:
            True if the widget is interactive, False if it failed.
        """
        if self._state is not WidgetState.UNINITIALIZED:
            logger.warning("init() called in state %s, ignoring", self._state.value)
            return self._state in (WidgetState.READY, WidgetState.SENDING)

        self._state = WidgetState.INITIALIZING
        logger.debug("Starting initialization")

        if self._transport is None:
            if self._credentials is None or not self._credentials.is_complete:
                missing = (
                    self._credentials.missing_fields()
                    if self._credentials is not None
                    else ["endpoint", "nonce"]
                )
                return self._fail(f"required configuration missing: {', '.join(missing)}")
            self._transport = ChatTransport(
                self._credentials,
                rate_limit=self._config.rate_limit,
                max_message_length=self._config.max_message_length,
                clock=self._clock,
            )

        sessions = SessionManager(self._transport, prefix=self._session_prefix, clock=self._clock)
        self._session_id = await sessions.obtain_session_id()
        logger.debug("Session id: %s", self._session_id)

        if self._config.enable_storage:
            self._store = ConversationStore(
                self._backend,
                self._session_id,
                max_messages=self._config.max_messages,
                max_age_ms=self._config.max_age_ms,
                clock=self._clock,
            )

        self._view = self._view_factory(self, self._view_options())
        self._load_initial_state()

        self._state = WidgetState.READY
        logger.debug("Initialization complete")

        self._record_event(
            "widget_initialized",
            {"sessionId": self._session_id, "config": self._config_summary()},
        )

        if self._config.auto_open or self._restored_open_state():
            self._view.open()
        return True

    def _config_summary(self) -> dict[str, Any]:
        return {
            "position": self._config.position,
            "theme": self._config.theme,
            "autoOpen": self._config.auto_open,
            "enableStorage": self._config.enable_storage,
            "maxMessageLength": self._config.max_message_length,
        }

    def _load_initial_state(self) -> None:
        assert self._view is not None

        if self._store is None:
            self._view.add_message(self._config.welcome_message, MessageType.BOT)
            return

        try:
            conversation = self._store.get_conversation()
            if conversation:
                logger.debug("Loading %d messages from history", len(conversation))
                self._view.clear_messages()
                for message in conversation:
                    self._view.add_message(message.text, message.type)
            else:
                self._view.add_message(self._config.welcome_message, MessageType.BOT)

            self._view.apply_preferences(self._store.get_preferences())
        except (StorageError, ValueError) as e:
            logger.error("Failed to load initial state: %s", e)
            self._view.clear_messages()
            self._view.add_message(self._config.welcome_message, MessageType.BOT)

    def _restored_open_state(self) -> bool:
        if self._store is None:
            return False
        snapshot = self._store.get_state()
        return bool(snapshot and snapshot.is_open)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def _append(self, text: str, type: MessageType) -> None:
        assert self._view is not None
        self._view.add_message(text, type)
        if self._store is not None:
            self._store.save_message(
                text,
                type,
                {"timestamp": self._clock(), "sessionId": self._session_id},
            )

    async def send_message(self, text: str) -> SendOutcome:
        """Send a user message and append the reply.

        Input is disabled and the typing indicator shown while the request
        runs; both are restored whatever the outcome.
        """
        if self._busy or self._state is WidgetState.SENDING:
            logger.warning("Send rejected, another message is in flight")
            return SendOutcome(SendStatus.BUSY, error=BusyError("A message is already being sent"))
        if self._state is not WidgetState.READY:
            logger.warning("Send ignored in state %s", self._state.value)
            return SendOutcome(SendStatus.INACTIVE)

        assert self._view is not None and self._transport is not None

        text = text.strip()
        if not text:
            return SendOutcome(SendStatus.INVALID, error=ValidationError("Message cannot be empty"))
        if not self._config.validate_message_length(text):
            self._view.show_status(MESSAGE_TOO_LONG_STATUS, "error")
            return SendOutcome(
                SendStatus.INVALID,
                error=ValidationError(MESSAGE_TOO_LONG_STATUS),
            )

        self._append(text, MessageType.USER)

        self._busy = True
        self._state = WidgetState.SENDING
        self._view.set_input_enabled(False)
        self._view.show_typing()

        try:
            reply = await self._transport.send_message(text, self._session_id or "")
        except WidgetError as e:
            return self._handle_send_error(e)
        except Exception as e:
            logger.exception("Unexpected error while sending message")
            error = WidgetError(f"Unexpected error: {e}")
            error.__cause__ = e
            return self._handle_send_error(error)
        finally:
            self._finish_sending()

        if self._state is not WidgetState.DESTROYED:
            self._append(reply.response, MessageType.BOT)
        self._record_event(
            "message_sent",
            {
                "sessionId": self._session_id,
                "messageLength": len(text),
                "responseLength": len(reply.response),
            },
        )
        return SendOutcome(SendStatus.DELIVERED, reply=reply.response)

    def _finish_sending(self) -> None:
        self._busy = False
        if self._state is not WidgetState.SENDING:
            return
        self._state = WidgetState.READY
        if self._view is not None:
            self._view.hide_typing()
            self._view.set_input_enabled(True)

    def _handle_send_error(self, error: WidgetError) -> SendOutcome:
        logger.error("Message send failed (%s): %s", error.kind, error)
        self._finish_sending()

        if isinstance(error, RateLimitedError):
            status, apology = SendStatus.RATE_LIMITED, RATE_LIMITED_REPLY
        else:
            status, apology = SendStatus.FAILED, GENERIC_ERROR_REPLY

        if self._state is not WidgetState.DESTROYED:
            self._append(apology, MessageType.BOT)
            assert self._view is not None
            self._view.show_status(str(error), "error")

        self._record_event(
            "message_error",
            {"sessionId": self._session_id, **error.to_dict()},
        )
        return SendOutcome(status, reply=apology, error=error)

    # ------------------------------------------------------------------
    # WidgetEvents
    # ------------------------------------------------------------------

    async def on_send_message(self, text: str) -> SendOutcome:
        return await self.send_message(text)

    def on_widget_open(self) -> None:
        logger.debug("Widget opened")
        if self._store is not None:
            self._store.save_state(True)
        self._record_event("widget_opened", {"sessionId": self._session_id})

    def on_widget_close(self) -> None:
        logger.debug("Widget closed")
        if self._store is not None:
            self._store.save_state(False)
        self._record_event("widget_closed", {"sessionId": self._session_id})

    def _record_event(self, name: str, payload: dict[str, Any]) -> None:
        if self._state is WidgetState.DESTROYED:
            return
        if self._config.enable_analytics and self._transport is not None:
            self._transport.record_event(name, payload)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._state in (WidgetState.READY, WidgetState.SENDING)

    def open(self) -> None:
        if self.is_active and self._view is not None:
            self._view.open()

    def close(self) -> None:
        if self.is_active and self._view is not None:
            self._view.close()

    def clear_history(self) -> None:
        """Forget the conversation and show the welcome message again."""
        if not self.is_active or self._view is None:
            return
        self._view.clear_messages()
        if self._store is not None:
            self._store.clear_conversation()
        self._view.add_message(self._config.welcome_message, MessageType.BOT)

    def save_preferences(self, **changes: Any) -> bool:
        """Persist preference changes and apply them to the view."""
        if not self.is_active or self._store is None:
            return False
        saved = self._store.save_preferences(**changes)
        if saved and self._view is not None:
            self._view.apply_preferences(self._store.get_preferences())
        return saved

    def get_stats(self) -> ConversationStats | None:
        """Conversation statistics, None when storage is disabled."""
        if self.is_active and self._store is not None:
            return self._store.get_stats()
        return None

    async def destroy(self) -> None:
        """Tear the widget down. Every later call is a no-op."""
        if self._state is WidgetState.DESTROYED:
            return

        if self._store is not None:
            self._store.cleanup()
        if self._view is not None:
            self._view.clear()

        self._state = WidgetState.DESTROYED
        self._busy = False

        if self._transport is not None:
            if self._owns_transport:
                await self._transport.aclose()
            else:
                await self._transport.flush_events()
        logger.debug("Widget destroyed")
