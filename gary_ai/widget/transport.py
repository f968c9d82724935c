"""HTTP transport for the chat widget.

Talks to the plugin's admin-ajax style endpoint: every call is a form
encoded POST carrying an ``action`` name and the authentication nonce, and
every answer is a ``{"success": bool, "data": {...}}`` envelope.

Requires *httpx* (async).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from gary_ai.widget.config import ApiCredentials, RateLimitConfig
from gary_ai.widget.errors import (
    MalformedResponse,
    NetworkError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from gary_ai.widget.models import ChatReply, Clock
from gary_ai.widget.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

ACTION_CHAT = "gary_ai_chat"
ACTION_SESSION = "gary_ai_get_session"
ACTION_TEST_CONNECTION = "gary_ai_test_connection"
ACTION_ANALYTICS = "gary_ai_analytics"


def _preview(text: str, length: int = 50) -> str:
    return text if len(text) <= length else text[:length] + "..."


class ChatTransport:
    """Async client for the chat endpoint with a client-side rate limit.

    Parameters
    ----------
    credentials:
        Endpoint URL, nonce and request timeout.
    rate_limit:
        Limits applied to ``send_message``. Other calls are not limited.
    max_message_length:
        Longest text ``send_message`` accepts.
    client:
        Optional pre-built ``httpx.AsyncClient``. When omitted the transport
        creates and owns one.
    clock:
        Millisecond clock used by the rate limiter.
    """

    def __init__(
        self,
        credentials: ApiCredentials,
        *,
        rate_limit: RateLimitConfig | None = None,
        max_message_length: int = 2000,
        client: httpx.AsyncClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        missing = credentials.missing_fields()
        if missing:
            raise ValueError(f"Missing API credentials: {', '.join(missing)}")

        self._credentials = credentials
        self._max_message_length = max_message_length
        self._rate_limiter = RateLimiter(rate_limit, clock=clock)
        self._client = client
        self._owns_client = client is None
        self._pending_events: set[asyncio.Task] = set()

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def pending_event_count(self) -> int:
        return len(self._pending_events)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._credentials.timeout)
        return self._client

    async def _post(self, action: str, fields: dict[str, Any] | None = None) -> dict[str, Any]:
        """POST one action and return the decoded response envelope.

        Raises:
            NetworkError: No response arrived (connection error or timeout).
            ServerError: HTTP error status.
            MalformedResponse: Body is not a JSON object.
        """
        form = {"action": action, "nonce": self._credentials.nonce}
        if fields:
            form.update({k: str(v) for k, v in fields.items()})

        try:
            response = await self._get_client().post(
                self._credentials.endpoint,
                data=form,
                timeout=self._credentials.timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {action}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request failed: {e}") from e

        if response.is_error:
            raise ServerError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedResponse("Invalid response from server") from e

        if not isinstance(result, dict):
            raise MalformedResponse("Invalid response from server")

        return result

    @staticmethod
    def _unwrap(result: dict[str, Any], status_code: int | None = None) -> dict[str, Any]:
        data = result.get("data")
        if not result.get("success"):
            message = "Server error occurred"
            if isinstance(data, dict) and data.get("message"):
                message = str(data["message"])
            elif isinstance(data, str) and data:
                message = data
            raise ServerError(message, status_code=status_code)
        if not isinstance(data, dict):
            raise MalformedResponse("Response is missing its data object")
        return data

    def validate_message(self, text: str) -> None:
        """Reject text the endpoint must never receive.

        Raises:
            ValidationError: Text is empty or longer than the limit.
        """
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty")
        if len(text) > self._max_message_length:
            raise ValidationError(
                f"Message exceeds maximum length of {self._max_message_length} characters"
            )

    async def send_message(self, text: str, session_id: str) -> ChatReply:
        """Send a chat message and return the bot's reply.

        Args:
            text: Message typed by the user.
            session_id: Active conversation session.

        Returns:
            The reply from the endpoint.

        Raises:
            ValidationError: Text is empty or too long; nothing was sent.
            RateLimitedError: The client-side rate limit refused the request.
            NetworkError, ServerError, MalformedResponse: The call failed.
        """
        self.validate_message(text)

        if not self._rate_limiter.can_make_request():
            raise RateLimitedError(self._rate_limiter.time_until_reset())
        self._rate_limiter.record_request()

        logger.debug("Sending message: %s", _preview(text))
        try:
            data = self._unwrap(
                await self._post(ACTION_CHAT, {"message": text, "session_id": session_id})
            )
        except (NetworkError, ServerError, MalformedResponse) as e:
            logger.error("Message send failed (%s): %s", e.kind, e)
            raise

        reply = data.get("response")
        if not isinstance(reply, str) or not reply:
            logger.error("Chat response missing 'response' field: %r", data)
            raise MalformedResponse("Invalid response from server")

        return ChatReply(response=reply, data=data)

    async def fetch_session_id(self) -> str:
        """Ask the endpoint for a conversation session id.

        Raises:
            NetworkError, ServerError, MalformedResponse: No usable id.
        """
        data = self._unwrap(await self._post(ACTION_SESSION))
        session_id = data.get("session_id")
        if not isinstance(session_id, str) or not session_id:
            raise MalformedResponse("Response did not include a session_id")
        return session_id

    async def test_connection(self) -> bool:
        """Check that the endpoint accepts our credentials.

        Returns:
            True if the endpoint answered with success, False otherwise.
        """
        logger.debug("Testing connection to %s", self._credentials.endpoint)
        try:
            result = await self._post(ACTION_TEST_CONNECTION)
        except (NetworkError, ServerError, MalformedResponse) as e:
            logger.error("Connection test failed: %s", e)
            return False
        return bool(result.get("success"))

    def record_event(self, name: str, payload: dict[str, Any] | None = None) -> None:
        """Report an analytics event without waiting for it.

        The POST runs as a background task on the current event loop. Any
        failure is logged and dropped.

        Args:
            name: Event type, e.g. ``"message_sent"``.
            payload: JSON-serializable event data.
        """
        try:
            event_data = json.dumps(payload or {}, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Analytics payload for %s is not serializable: %s", name, e)
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping analytics event %s", name)
            return

        task = loop.create_task(self._post_event(name, event_data))
        self._pending_events.add(task)
        task.add_done_callback(self._pending_events.discard)

    async def _post_event(self, name: str, event_data: str) -> None:
        try:
            await self._post(ACTION_ANALYTICS, {"event_type": name, "event_data": event_data})
        except Exception as e:
            logger.error("Analytics recording failed for %s: %s", name, e)

    async def flush_events(self) -> None:
        """Wait for every scheduled analytics event to finish."""
        if self._pending_events:
            await asyncio.gather(*list(self._pending_events), return_exceptions=True)

    async def aclose(self) -> None:
        """Flush analytics and close the HTTP client if we created it."""
        await self.flush_events()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
