"""Gary AI chat widget.

This package reproduces the website chat widget as an embeddable Python
component: a coordinator that obtains a conversation session, sends messages
to the plugin's chat endpoint under a client-side rate limit, keeps history
in a local key-value store, and drives a view through its lifecycle.

Example usage:

    from gary_ai.widget import (
        ApiCredentials,
        ChatWidget,
        JsonFileBackend,
        WidgetConfig,
    )

    widget = ChatWidget(
        WidgetConfig(theme="dark"),
        credentials=ApiCredentials(
            endpoint="https://example.com/wp-admin/admin-ajax.php",
            nonce="abc123",
        ),
        backend=JsonFileBackend("/var/lib/gary_ai/storage.json"),
    )

    await widget.init()
    outcome = await widget.send_message("What are your opening hours?")
    print(outcome.reply)
    await widget.destroy()
"""

from gary_ai.widget.backends import JsonFileBackend, KeyValueBackend, MemoryBackend
from gary_ai.widget.config import ApiCredentials, RateLimitConfig, WidgetConfig
from gary_ai.widget.coordinator import ChatWidget, SendOutcome, SendStatus
from gary_ai.widget.errors import (
    BusyError,
    MalformedResponse,
    NetworkError,
    RateLimitedError,
    ServerError,
    StorageError,
    StorageQuotaExceeded,
    TransportError,
    ValidationError,
    WidgetError,
)
from gary_ai.widget.models import (
    ChatReply,
    ConversationStats,
    Message,
    MessageType,
    Preferences,
    StorageUsage,
    WidgetSnapshot,
    WidgetState,
)
from gary_ai.widget.rate_limiter import RateLimiter, RateLimiterState
from gary_ai.widget.session import SessionManager, generate_session_id
from gary_ai.widget.storage import ConversationStore, list_conversations
from gary_ai.widget.transport import ChatTransport
from gary_ai.widget.view import RenderedMessage, ViewOptions, WidgetEvents, WidgetView

__all__ = [
    # Configuration
    "ApiCredentials",
    "RateLimitConfig",
    "WidgetConfig",
    # Coordinator
    "ChatWidget",
    "SendOutcome",
    "SendStatus",
    # Session and transport
    "ChatTransport",
    "RateLimiter",
    "RateLimiterState",
    "SessionManager",
    "generate_session_id",
    # Storage
    "ConversationStore",
    "JsonFileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "list_conversations",
    # View
    "RenderedMessage",
    "ViewOptions",
    "WidgetEvents",
    "WidgetView",
    # Data types
    "ChatReply",
    "ConversationStats",
    "Message",
    "MessageType",
    "Preferences",
    "StorageUsage",
    "WidgetSnapshot",
    "WidgetState",
    # Errors
    "BusyError",
    "MalformedResponse",
    "NetworkError",
    "RateLimitedError",
    "ServerError",
    "StorageError",
    "StorageQuotaExceeded",
    "TransportError",
    "ValidationError",
    "WidgetError",
]
