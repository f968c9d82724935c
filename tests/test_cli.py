"""Tests for the Gary AI CLI.

Tests cover:
- Main app options (--help, --version)
- chat (unavailable, one-shot and interactive)
- ping
- sessions, history and clear against a JSON storage file
- config
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qsl

import httpx
import pytest
from typer.testing import CliRunner

from gary_ai import __version__
from gary_ai.cli import app
from gary_ai.cli.console_view import ConsoleView
from gary_ai.widget import (
    ApiCredentials,
    ChatTransport,
    ChatWidget,
    ConversationStore,
    JsonFileBackend,
    MemoryBackend,
    MessageType,
    WidgetConfig,
)

ENDPOINT = "https://example.com/wp-admin/admin-ajax.php"


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create a CliRunner for testing."""
    return CliRunner()


@pytest.fixture
def storage_path(tmp_path):
    return tmp_path / "storage.json"


@pytest.fixture
def env(storage_path) -> dict[str, str]:
    """Environment with no credentials and a temporary storage file."""
    return {
        "GARY_AI_ENDPOINT": "",
        "GARY_AI_NONCE": "",
        "GARY_AI_STORAGE_PATH": str(storage_path),
    }


def _endpoint(status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode()))
        if form["action"] == "gary_ai_chat":
            if status != 200:
                return httpx.Response(status, text="error")
            return httpx.Response(
                200, json={"success": True, "data": {"response": f"Echo: {form['message']}"}}
            )
        if form["action"] == "gary_ai_get_session":
            return httpx.Response(200, json={"success": True, "data": {"session_id": "srv_1"}})
        return httpx.Response(200, json={"success": True, "data": {}})

    return handler


def _widget(status: int = 200) -> ChatWidget:
    client = httpx.AsyncClient(transport=httpx.MockTransport(_endpoint(status)))
    transport = ChatTransport(ApiCredentials(ENDPOINT, "n0nce"), client=client)
    return ChatWidget(
        WidgetConfig(enable_analytics=False),
        transport=transport,
        backend=MemoryBackend(),
        view_factory=lambda events, options: ConsoleView(events, options),
    )


def _seed(storage_path, session_id: str, *texts: str) -> None:
    store = ConversationStore(JsonFileBackend(storage_path), session_id)
    for i, text in enumerate(texts):
        store.save_message(text, MessageType.USER if i % 2 == 0 else MessageType.BOT)


# ===========================================================================
# Main app
# ===========================================================================


class TestMainApp:
    """Test top-level options."""

    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "chat" in result.output
        assert "sessions" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


# ===========================================================================
# chat
# ===========================================================================


class TestChat:
    """Test the chat command."""

    def test_unavailable_without_credentials(self, runner, env):
        result = runner.invoke(app, ["chat", "-m", "hi"], env=env)
        assert result.exit_code == 1
        assert "Chat Unavailable" in result.output
        assert "GARY_AI_ENDPOINT" in result.output

    def test_one_shot_message(self, runner, env):
        with patch("gary_ai.cli.build_widget", return_value=_widget()):
            result = runner.invoke(app, ["chat", "-m", "hello"], env=env)
        assert result.exit_code == 0
        assert "Echo: hello" in result.output

    def test_one_shot_failure(self, runner, env):
        with patch("gary_ai.cli.build_widget", return_value=_widget(status=500)):
            result = runner.invoke(app, ["chat", "-m", "hello"], env=env)
        assert result.exit_code == 1
        assert "Sorry, I encountered an error" in result.output

    def test_interactive(self, runner, env):
        with patch("gary_ai.cli.build_widget", return_value=_widget()):
            result = runner.invoke(
                app,
                ["chat"],
                env=env,
                input="first question\n/stats\n/quit\n",
            )
        assert result.exit_code == 0
        assert "Gary AI Assistant" in result.output
        assert "Echo: first question" in result.output
        assert "Messages" in result.output

    def test_build_widget_respects_no_storage(self, runner, env):
        with patch("gary_ai.cli.build_widget", return_value=_widget()) as build:
            runner.invoke(app, ["chat", "--no-storage", "-m", "hi"], env=env)
        assert build.call_args.kwargs["enable_storage"] is False


# ===========================================================================
# ping
# ===========================================================================


class TestPing:
    """Test the ping command."""

    def test_missing_credentials(self, runner, env):
        result = runner.invoke(app, ["ping"], env=env)
        assert result.exit_code == 1
        assert "Missing credentials" in result.output

    def test_success(self, runner, env):
        env.update(GARY_AI_ENDPOINT=ENDPOINT, GARY_AI_NONCE="n0nce")
        with patch("gary_ai.cli._ping", new=AsyncMock(return_value=True)):
            result = runner.invoke(app, ["ping"], env=env)
        assert result.exit_code == 0
        assert "Connection OK" in result.output

    def test_failure(self, runner, env):
        env.update(GARY_AI_ENDPOINT=ENDPOINT, GARY_AI_NONCE="n0nce")
        with patch("gary_ai.cli._ping", new=AsyncMock(return_value=False)):
            result = runner.invoke(app, ["ping"], env=env)
        assert result.exit_code == 1
        assert "Connection failed" in result.output


# ===========================================================================
# Stored conversations
# ===========================================================================


class TestStoredConversations:
    """Test sessions, history and clear."""

    def test_sessions_empty(self, runner, env):
        result = runner.invoke(app, ["sessions"], env=env)
        assert result.exit_code == 0
        assert "No stored conversations" in result.output

    def test_sessions_json(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "hi", "hello")
        _seed(storage_path, "gary_b", "yo")

        result = runner.invoke(app, ["sessions", "--format", "json"], env=env)
        assert result.exit_code == 0
        assert json.loads(result.output) == {"gary_a": 2, "gary_b": 1}

    def test_sessions_table(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "hi")
        result = runner.invoke(app, ["sessions"], env=env)
        assert result.exit_code == 0
        assert "gary_a" in result.output

    def test_sessions_corrupt_storage(self, runner, env, storage_path):
        storage_path.write_text("{broken")
        result = runner.invoke(app, ["sessions"], env=env)
        assert result.exit_code == 1
        assert "Cannot read conversation storage" in result.output

    def test_history(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "opening hours?", "9 to 5")
        result = runner.invoke(app, ["history", "gary_a"], env=env)
        assert result.exit_code == 0
        assert "opening hours?" in result.output
        assert "9 to 5" in result.output

    def test_history_json(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "hi")
        result = runner.invoke(app, ["history", "gary_a", "-f", "json"], env=env)
        assert result.exit_code == 0
        messages = json.loads(result.output)
        assert [m["text"] for m in messages] == ["hi"]
        assert messages[0]["type"] == "user"

    def test_history_unknown_session(self, runner, env):
        result = runner.invoke(app, ["history", "gary_missing"], env=env)
        assert result.exit_code == 0
        assert "No messages stored" in result.output

    def test_clear(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "hi")
        result = runner.invoke(app, ["clear", "gary_a", "--yes"], env=env)
        assert result.exit_code == 0
        assert "deleted" in result.output
        assert JsonFileBackend(storage_path).keys() == []

    def test_clear_declined(self, runner, env, storage_path):
        _seed(storage_path, "gary_a", "hi")
        result = runner.invoke(app, ["clear", "gary_a"], env=env, input="n\n")
        assert result.exit_code == 0
        assert "Nothing deleted" in result.output
        assert JsonFileBackend(storage_path).keys() != []


# ===========================================================================
# config
# ===========================================================================


class TestConfig:
    """Test the config command."""

    def test_nonce_masked(self, runner, env):
        env.update(GARY_AI_ENDPOINT=ENDPOINT, GARY_AI_NONCE="super-secret")
        result = runner.invoke(app, ["config", "--format", "json"], env=env)
        assert result.exit_code == 0
        values = json.loads(result.output)
        assert values["NONCE"] == "****"
        assert values["ENDPOINT"] == ENDPOINT
        assert "super-secret" not in result.output

    def test_table(self, runner, env):
        result = runner.invoke(app, ["config"], env=env)
        assert result.exit_code == 0
        assert "Gary AI Configuration" in result.output
        assert "(not set)" in result.output
