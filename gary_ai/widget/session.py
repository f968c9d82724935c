"""Conversation session identifiers.

The endpoint may hand out session ids; when it cannot, the widget makes up
its own so the chat keeps working.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gary_ai.widget.errors import WidgetError
from gary_ai.widget.models import Clock, now_ms, random_base36

if TYPE_CHECKING:
    from gary_ai.widget.transport import ChatTransport

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PREFIX = "gary"
SESSION_SUFFIX_LENGTH = 9


def generate_session_id(prefix: str = DEFAULT_SESSION_PREFIX, clock: Clock | None = None) -> str:
    """Generate a client-side session id.

    The id has the form ``<prefix>_<epoch-millis>_<9 base36 chars>``. It is
    unique with overwhelming probability but is not a security token.
    """
    timestamp = (clock or now_ms)()
    return f"{prefix}_{timestamp}_{random_base36(SESSION_SUFFIX_LENGTH)}"


class SessionManager:
    """Obtains the session id for one widget instance.

    Example:
        manager = SessionManager(transport)
        session_id = await manager.obtain_session_id()
    """

    def __init__(
        self,
        transport: "ChatTransport | None" = None,
        prefix: str = DEFAULT_SESSION_PREFIX,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._prefix = prefix
        self._clock = clock or now_ms

    async def obtain_session_id(self) -> str:
        """Return a server-assigned session id, or a generated one.

        Every failure of the session call falls back to a local id; the
        wait is bounded by the transport's request timeout.
        """
        if self._transport is not None:
            try:
                session_id = await self._transport.fetch_session_id()
                logger.debug("Using server session id %s", session_id)
                return session_id
            except WidgetError as e:
                logger.warning("Session id request failed (%s), generating locally", e.kind)

        session_id = generate_session_id(self._prefix, self._clock)
        logger.debug("Generated session id %s", session_id)
        return session_id
