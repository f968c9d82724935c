"""Terminal rendering of the chat widget."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from gary_ai.widget.models import MessageType
from gary_ai.widget.view import (
    UNAVAILABLE_TEXT,
    RenderedMessage,
    ViewOptions,
    WidgetEvents,
    WidgetView,
)

STATUS_STYLES = {
    "info": "blue",
    "error": "red",
    "warning": "yellow",
}


class ConsoleView(WidgetView):
    """Widget view that prints to a Rich console."""

    def __init__(
        self,
        events: WidgetEvents,
        options: ViewOptions | None = None,
        console: Console | None = None,
    ) -> None:
        super().__init__(events, options)
        self._console = console or Console()

    def render_message(self, message: RenderedMessage) -> None:
        if message.type is MessageType.USER:
            self._console.print(f"[bold cyan]You:[/bold cyan] {escape(message.text)}")
        else:
            self._console.print(f"[bold magenta]Gary:[/bold magenta] {escape(message.text)}")

    def render_typing(self, visible: bool) -> None:
        if visible:
            self._console.print("[dim]Gary is typing...[/dim]")

    def render_status(self, message: str, level: str) -> None:
        style = STATUS_STYLES.get(level, "blue")
        self._console.print(f"[{style}]{escape(message)}[/{style}]")

    def render_open_state(self, is_open: bool) -> None:
        if is_open:
            self._console.print(Panel.fit(
                "Type a message, [cyan]/stats[/cyan], [cyan]/clear[/cyan] or [cyan]/quit[/cyan]",
                title="Gary AI Assistant",
                border_style="magenta",
            ))

    def render_degraded(self) -> None:
        self._console.print(Panel.fit(
            f"[bold red]{UNAVAILABLE_TEXT}[/bold red]",
            border_style="red",
        ))
