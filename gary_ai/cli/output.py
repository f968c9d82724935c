"""
Rich output helpers for the gary-ai CLI.

Everything the commands print goes through these helpers so that messages,
tables and JSON look the same across commands. Regular output goes to
stdout, errors to stderr.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Sequence

from rich.console import Console
from rich.json import JSON
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

# (label, style) per message level
_LEVELS = {
    "success": ("Success", "bold green"),
    "warning": ("Warning", "bold yellow"),
    "info": ("Info", "bold blue"),
}


def print_table(
    title: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    styles: Optional[Sequence[Optional[str]]] = None,
) -> None:
    """
    Print rows as a Rich table.

    Args:
        title: Table title
        columns: Column headers
        rows: Cell values; short rows are padded, long rows cut
        styles: Optional style per column
    """
    table = Table(title=title)
    for i, column in enumerate(columns):
        table.add_column(column, style=styles[i] if styles and i < len(styles) else None)

    width = len(columns)
    for row in rows:
        cells = [str(cell) for cell in row][:width]
        table.add_row(*cells, *([""] * (width - len(cells))))

    console.print(table)


def print_json(data: Any, highlight: bool = True) -> None:
    """Print data as indented JSON that stays machine readable."""
    text = json.dumps(data, indent=2, default=str)
    # Long values must not be wrapped, the output is meant to be parsed
    if highlight:
        console.print(JSON(text), soft_wrap=True)
    else:
        console.print(text, soft_wrap=True, highlight=False, markup=False)


def print_error(
    message: str,
    details: Optional[str] = None,
    hint: Optional[str] = None,
) -> None:
    """
    Print an error to stderr.

    Args:
        message: What went wrong
        details: Underlying error text, shown dimmed
        hint: How to fix it
    """
    err_console.print(f"[bold red]Error:[/bold red] {message}")
    if details:
        err_console.print(f"[dim]{details}[/dim]")
    if hint:
        err_console.print(f"[yellow]Hint:[/yellow] {hint}")


def _print_level(level: str, message: str, details: Optional[str]) -> None:
    label, style = _LEVELS[level]
    console.print(f"[{style}]{label}:[/{style}] {message}")
    if details:
        console.print(f"[dim]{details}[/dim]")


def print_success(message: str, details: Optional[str] = None) -> None:
    _print_level("success", message, details)


def print_warning(message: str, details: Optional[str] = None) -> None:
    _print_level("warning", message, details)


def print_info(message: str, details: Optional[str] = None) -> None:
    _print_level("info", message, details)


def print_key_value(items: Sequence[tuple[str, Any]], title: Optional[str] = None) -> None:
    """Print aligned ``key: value`` lines under an optional bold title."""
    if title:
        console.print(f"[bold]{title}[/bold]\n")

    pad = max((len(key) for key, _ in items), default=0)
    for key, value in items:
        console.print(f"  [cyan]{key.ljust(pad)}[/cyan]: {value}")


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    """
    Format an epoch-millisecond timestamp in local time.

    Returns "-" when there is no timestamp.
    """
    if timestamp_ms is None:
        return "-"
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).astimezone()
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def format_duration(milliseconds: int) -> str:
    """Human readable duration: ``850ms``, ``4.2s``, ``3m 10s`` or ``2h 5m``."""
    if milliseconds < 1000:
        return f"{milliseconds}ms"
    seconds = milliseconds / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"


def truncate_string(text: str, max_length: int) -> str:
    """Shorten text to ``max_length`` characters, ending in "..." when cut."""
    if len(text) <= max_length:
        return text
    return text[:max_length - 3] + "..."
