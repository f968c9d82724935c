"""UI controller for the chat widget.

``WidgetView`` keeps the visible state of the widget (rendered messages,
open/closed, typing indicator, input enabled, status line) and forwards user
actions to a ``WidgetEvents`` implementation, which is the coordinator.
The base class renders nothing; hosts subclass it and override the
``render_*`` hooks to draw on a real surface.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from gary_ai.widget.models import MessageType, Preferences

if TYPE_CHECKING:
    from gary_ai.widget.coordinator import SendOutcome

STATUS_DURATION_SECONDS = 3.0
UNAVAILABLE_TEXT = "Chat Unavailable"


class WidgetEvents(ABC):
    """Events a view raises; implemented by the widget coordinator."""

    @abstractmethod
    async def on_send_message(self, text: str) -> "SendOutcome":
        """The user submitted a message."""

    @abstractmethod
    def on_widget_open(self) -> None:
        """The widget was opened."""

    @abstractmethod
    def on_widget_close(self) -> None:
        """The widget was closed."""


@dataclass
class ViewOptions:
    """Initial presentation options handed to a view."""

    position: str = "bottom-right"
    theme: str = "default"
    auto_open: bool = False


@dataclass(frozen=True)
class RenderedMessage:
    text: str
    type: MessageType


class WidgetView:
    """Headless widget view.

    Attributes:
        messages: Messages currently on screen, in display order.
        is_open: Whether the chat window is open.
        is_typing: Whether the typing indicator is shown.
        input_enabled: Whether the input box accepts text.
        status: Current status line as ``(message, level)``, or None.
        degraded: True once the "chat unavailable" UI is shown.
    """

    def __init__(
        self,
        events: WidgetEvents,
        options: ViewOptions | None = None,
        status_duration: float = STATUS_DURATION_SECONDS,
    ) -> None:
        self._events = events
        self.options = options or ViewOptions()
        self.theme = self.options.theme
        self.position = self.options.position
        self.status_duration = status_duration

        self.messages: list[RenderedMessage] = []
        self.is_open = False
        self.is_typing = False
        self.input_enabled = True
        self.status: tuple[str, str] | None = None
        self.degraded = False
        self._status_timer: asyncio.TimerHandle | None = None

    # -- rendering hooks ------------------------------------------------

    def render_message(self, message: RenderedMessage) -> None:
        pass

    def render_typing(self, visible: bool) -> None:
        pass

    def render_status(self, message: str, level: str) -> None:
        pass

    def render_open_state(self, is_open: bool) -> None:
        pass

    def render_degraded(self) -> None:
        pass

    # -- messages -------------------------------------------------------

    def add_message(self, text: str, type: MessageType | str = MessageType.BOT) -> RenderedMessage:
        """Display a message. Persistence is the coordinator's concern."""
        message = RenderedMessage(text=text, type=MessageType(type))
        self.messages.append(message)
        self.render_message(message)
        return message

    def clear_messages(self) -> None:
        self.messages.clear()

    def show_typing(self) -> None:
        self.is_typing = True
        self.render_typing(True)

    def hide_typing(self) -> None:
        if self.is_typing:
            self.is_typing = False
            self.render_typing(False)

    def set_input_enabled(self, enabled: bool) -> None:
        self.input_enabled = enabled

    # -- status line ----------------------------------------------------

    def show_status(self, message: str, level: str = "info") -> None:
        """Show a transient status line, cleared after ``status_duration``."""
        self._cancel_status_timer()
        self.status = (message, level)
        self.render_status(message, level)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._status_timer = loop.call_later(self.status_duration, self.clear_status)

    def clear_status(self) -> None:
        self._cancel_status_timer()
        self.status = None

    def _cancel_status_timer(self) -> None:
        if self._status_timer is not None:
            self._status_timer.cancel()
            self._status_timer = None

    # -- open / close ---------------------------------------------------

    def open(self) -> None:
        if self.is_open or self.degraded:
            return
        self.is_open = True
        self.render_open_state(True)
        self._events.on_widget_open()

    def close(self) -> None:
        if not self.is_open:
            return
        self.is_open = False
        self.render_open_state(False)
        self._events.on_widget_close()

    def toggle(self) -> None:
        if self.is_open:
            self.close()
        else:
            self.open()

    # -- user input -----------------------------------------------------

    async def submit(self, text: str) -> "SendOutcome | None":
        """Send what the user typed. Blank input is ignored."""
        text = text.strip()
        if not text or not self.input_enabled or self.degraded:
            return None
        return await self._events.on_send_message(text)

    # -- presentation ---------------------------------------------------

    def apply_preferences(self, preferences: Preferences) -> None:
        if preferences.theme and preferences.theme != "default":
            self.theme = preferences.theme
        if preferences.position and preferences.position != "bottom-right":
            self.position = preferences.position

    def show_unavailable(self) -> None:
        """Replace the widget with a disabled "chat unavailable" badge."""
        self.clear_messages()
        self.degraded = True
        self.input_enabled = False
        self.is_open = False
        self.status = (UNAVAILABLE_TEXT, "error")
        self.render_degraded()

    def clear(self) -> None:
        """Tear the view down."""
        self._cancel_status_timer()
        self.messages.clear()
        self.status = None
        self.is_typing = False
        self.is_open = False
        self.input_enabled = False


ViewFactory = Callable[[WidgetEvents, ViewOptions], WidgetView]
"""Builds the view for a coordinator; ``WidgetView`` itself qualifies."""

