"""
Gary AI - Command Line Interface

A terminal host for the Gary AI chat widget. Built with Typer for the
command-line experience and Rich for output.

Usage:
    $ gary-ai --help
    $ gary-ai chat
    $ gary-ai chat -m "What are your opening hours?"
    $ gary-ai ping
    $ gary-ai sessions
    $ gary-ai history gary_1718000000000_k3j9x0a1b
    $ gary-ai config

Credentials and storage location come from the environment
(``GARY_AI_ENDPOINT``, ``GARY_AI_NONCE``, ``GARY_AI_STORAGE_PATH``) or a
``.env`` file.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer

from gary_ai import __version__
from gary_ai.cli.console_view import ConsoleView
from gary_ai.cli.output import (
    console,
    format_duration,
    format_timestamp,
    print_error,
    print_info,
    print_json,
    print_key_value,
    print_success,
    print_table,
    print_warning,
    truncate_string,
)
from gary_ai.config.settings import Settings
from gary_ai.widget import (
    ApiCredentials,
    ChatTransport,
    ChatWidget,
    ConversationStore,
    JsonFileBackend,
    MemoryBackend,
    StorageError,
    WidgetConfig,
    list_conversations,
)

# Create main application
app = typer.Typer(
    name="gary-ai",
    help="Gary AI - chat widget client",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)

CREDENTIALS_HINT = "Set GARY_AI_ENDPOINT and GARY_AI_NONCE in the environment or .env"


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Gary AI version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        import logging
        logging.basicConfig(level=logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable verbose output.",
    ),
) -> None:
    """
    Gary AI - chat widget client

    Chat with a Gary AI site from the terminal and inspect the locally
    stored conversations.
    """
    pass


def load_settings() -> Settings:
    """Read settings from the current environment."""
    return Settings()


def build_widget(settings: Settings, *, enable_storage: bool = True, theme: str = "default") -> ChatWidget:
    """Assemble a widget that renders to the terminal."""
    config = WidgetConfig.from_settings(
        settings,
        theme=theme,
        enable_storage=settings.ENABLE_STORAGE and enable_storage,
    )
    backend = JsonFileBackend(settings.STORAGE_PATH) if config.enable_storage else MemoryBackend()

    return ChatWidget(
        config,
        credentials=ApiCredentials.from_settings(settings),
        backend=backend,
        view_factory=lambda events, options: ConsoleView(events, options, console=console),
        session_prefix=settings.SESSION_PREFIX,
    )


def _print_stats(widget: ChatWidget) -> None:
    stats = widget.get_stats()
    if stats is None:
        print_info("Conversation storage is disabled")
        return
    print_key_value(
        [
            ("Session", widget.session_id),
            ("Messages", stats.count),
            ("From you", stats.user_count),
            ("From Gary", stats.bot_count),
            ("Started", format_timestamp(stats.oldest_timestamp)),
            ("Last activity", format_timestamp(stats.newest_timestamp)),
            ("Duration", format_duration(stats.duration_ms)),
        ],
        title="Conversation",
    )


async def _chat_loop(widget: ChatWidget) -> None:
    assert widget.view is not None
    widget.open()
    while True:
        try:
            line = await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")
        except (EOFError, KeyboardInterrupt):
            break

        command = line.strip()
        if command in ("/quit", "/exit"):
            break
        if command == "/clear":
            widget.clear_history()
            continue
        if command == "/stats":
            _print_stats(widget)
            continue

        await widget.view.submit(line)
    widget.close()


async def _run_chat(widget: ChatWidget, message: Optional[str]) -> int:
    if not await widget.init():
        print_error("Chat is unavailable", hint=CREDENTIALS_HINT)
        await widget.destroy()
        return 1

    try:
        if message is None:
            await _chat_loop(widget)
            return 0

        assert widget.view is not None
        outcome = await widget.view.submit(message)
        return 0 if outcome is not None and outcome.ok else 1
    finally:
        await widget.destroy()


@app.command()
def chat(
    message: Optional[str] = typer.Option(
        None,
        "--message",
        "-m",
        help="Send a single message and exit.",
    ),
    no_storage: bool = typer.Option(
        False,
        "--no-storage",
        help="Do not load or save conversation history.",
    ),
    theme: str = typer.Option(
        "default",
        "--theme",
        "-t",
        help="Widget theme name.",
    ),
) -> None:
    """
    Chat with Gary.

    Starts an interactive conversation. Inside the chat, [cyan]/stats[/cyan]
    shows conversation statistics, [cyan]/clear[/cyan] forgets the history
    and [cyan]/quit[/cyan] leaves.
    """
    settings = load_settings()
    widget = build_widget(settings, enable_storage=not no_storage, theme=theme)
    exit_code = asyncio.run(_run_chat(widget, message))
    if exit_code:
        raise typer.Exit(exit_code)


async def _ping(credentials: ApiCredentials) -> bool:
    transport = ChatTransport(credentials)
    try:
        return await transport.test_connection()
    finally:
        await transport.aclose()


@app.command()
def ping() -> None:
    """
    Test the connection to the chat endpoint.
    """
    settings = load_settings()
    credentials = ApiCredentials.from_settings(settings)
    if not credentials.is_complete:
        print_error("Missing credentials", hint=CREDENTIALS_HINT)
        raise typer.Exit(1)

    console.print(f"Testing [cyan]{credentials.endpoint}[/cyan]...")
    if asyncio.run(_ping(credentials)):
        print_success("Connection OK")
    else:
        print_error("Connection failed")
        raise typer.Exit(1)


@app.command()
def sessions(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    List conversations stored on this machine.
    """
    settings = load_settings()
    try:
        conversations = list_conversations(JsonFileBackend(settings.STORAGE_PATH))
    except StorageError as e:
        print_error("Cannot read conversation storage", details=str(e))
        raise typer.Exit(1)

    if format == "json":
        print_json(conversations)
        return

    if not conversations:
        print_info(f"No stored conversations in {settings.STORAGE_PATH}")
        return

    print_table(
        "Stored Conversations",
        ["Session", "Messages"],
        [[session_id, str(count)] for session_id, count in sorted(conversations.items())],
        styles=["cyan", None],
    )


def _open_store(settings: Settings, session_id: str) -> ConversationStore:
    return ConversationStore(JsonFileBackend(settings.STORAGE_PATH), session_id)


@app.command()
def history(
    session_id: str = typer.Argument(..., help="Session to show."),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show a stored conversation.
    """
    settings = load_settings()
    try:
        messages = _open_store(settings, session_id).get_conversation()
    except StorageError as e:
        print_error("Cannot read conversation storage", details=str(e))
        raise typer.Exit(1)

    if format == "json":
        print_json([m.to_dict() for m in messages])
        return

    if not messages:
        print_warning(f"No messages stored for session {session_id}")
        return

    print_table(
        f"Conversation {session_id}",
        ["Time", "From", "Message"],
        [
            [format_timestamp(m.timestamp), m.type.value, truncate_string(m.text, 80)]
            for m in messages
        ],
        styles=["dim", "cyan", None],
    )


@app.command()
def clear(
    session_id: str = typer.Argument(..., help="Session to delete."),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """
    Delete a stored conversation.
    """
    settings = load_settings()
    if not yes and not typer.confirm(f"Delete conversation {session_id}?"):
        print_warning("Nothing deleted")
        return

    if _open_store(settings, session_id).clear_conversation():
        print_success(f"Conversation {session_id} deleted")
    else:
        print_error("Could not delete conversation")
        raise typer.Exit(1)


@app.command("config")
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show the effective configuration.
    """
    settings = load_settings()
    values = settings.model_dump()
    if values.get("NONCE"):
        values["NONCE"] = "****"

    if format == "json":
        print_json(values)
        return

    print_key_value(
        [(key, value if value != "" else "[dim](not set)[/dim]") for key, value in values.items()],
        title="Gary AI Configuration",
    )


__all__ = [
    "app",
    "build_widget",
    "load_settings",
    "__version__",
]


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
