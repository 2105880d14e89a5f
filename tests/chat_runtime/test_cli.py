"""Tests for the click command line."""

from __future__ import annotations

import asyncio

import pytest
from click.testing import CliRunner

from parley.chat_runtime.execution.coordinator import ChatCoordinator
from parley.chat_runtime.models.catalog import find_model
from parley.chat_runtime.models.chat import AssistantMessage, Chat, UserMessage
from parley.chat_runtime.providers.registry import AdapterRegistry
from parley.chat_runtime.settings import _get_settings_cached
from parley.chat_runtime.store.local import LocalChatStore
from parley.cli import _command, main

_KEY_VARS = (
    "PARLEY_OPENAI_API_KEY",
    "OPENAI_API_KEY",
    "PARLEY_ANTHROPIC_API_KEY",
    "ANTHROPIC_API_KEY",
    "PARLEY_GOOGLE_API_KEY",
    "GOOGLE_API_KEY",
    "GEMINI_API_KEY",
    "PARLEY_DEFAULT_MODEL",
    "PARLEY_DATA_PREFIX",
    "PARLEY_LOG_FILE",
)


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    for name in _KEY_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PARLEY_DATA_ROOT", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("parley.cli.setup_logging", lambda level, **kwargs: None)
    _get_settings_cached.cache_clear()
    yield
    _get_settings_cached.cache_clear()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def stored_chat(tmp_path) -> str:
    chat = Chat(
        messages=[
            UserMessage(content="What is the capital of France?"),
            AssistantMessage(model="Sonnet 4.5", content="Paris.", stop_reason="end_turn", cost=0.0001),
        ]
    )
    return asyncio.run(LocalChatStore(tmp_path).create_chat(chat))


def test_models_without_keys(runner: CliRunner) -> None:
    result = runner.invoke(main, ["models"])
    assert result.exit_code == 0
    assert "No API keys configured" in result.output


def test_models_lists_keyed_providers_first(runner: CliRunner, monkeypatch) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "g-test")

    result = runner.invoke(main, ["models"])

    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert lines[0].startswith("Gemini 3 Pro")
    assert lines[-1] == "Without a key: GPT-5.1, Sonnet 4.5, Opus 4.5"


def test_chats_list_empty(runner: CliRunner) -> None:
    result = runner.invoke(main, ["chats", "list"])
    assert result.exit_code == 0
    assert "No chats." in result.output


def test_chats_list_and_show(runner: CliRunner, stored_chat: str) -> None:
    listed = runner.invoke(main, ["chats", "list"])
    assert listed.exit_code == 0
    assert stored_chat[:8] in listed.output
    assert "What is the capital of France?" in listed.output

    shown = runner.invoke(main, ["chats", "show", stored_chat[:6]])
    assert shown.exit_code == 0
    assert "Paris." in shown.output
    assert "Sonnet 4.5" in shown.output


def test_chats_show_unknown(runner: CliRunner) -> None:
    result = runner.invoke(main, ["chats", "show", "nope"])
    assert result.exit_code != 0
    assert "No unique chat matching 'nope'" in result.output


def test_chats_delete(runner: CliRunner, stored_chat: str, tmp_path) -> None:
    result = runner.invoke(main, ["chats", "delete", stored_chat])
    assert result.exit_code == 0
    assert f"Deleted {stored_chat}" in result.output
    assert not (tmp_path / "chats" / stored_chat).exists()


def test_ask_without_key_records_error(runner: CliRunner, tmp_path) -> None:
    result = runner.invoke(main, ["ask", "--model", "gpt", "Hello?"])

    assert result.exit_code == 1
    assert "OpenAI API key not found" in result.output

    chats = asyncio.run(LocalChatStore(tmp_path).list_chats())
    assert len(chats) == 1
    assert [m.role for m in chats[0].messages] == ["user", "assistant"]
    assert chats[0].messages[-1].stop_reason == "error"


def test_ask_unknown_model(runner: CliRunner) -> None:
    result = runner.invoke(main, ["ask", "--model", "llama", "Hello?"])
    assert result.exit_code == 2
    assert "Unknown model 'llama'" in result.output


# ---------------------------------------------------------------------------
# REPL commands
# ---------------------------------------------------------------------------


async def test_help_command_lists_commands(coordinator, capsys) -> None:
    assert await _command(coordinator, "/help") is True

    out = capsys.readouterr().out
    assert "Unknown command" not in out
    assert "/regen" in out
    assert "/help" in out


async def test_unknown_command_shows_help(coordinator, capsys) -> None:
    assert await _command(coordinator, "/frobnicate") is True

    out = capsys.readouterr().out
    assert "Unknown command /frobnicate" in out
    assert "/new" in out


async def test_quit_command_leaves_repl(coordinator) -> None:
    assert await _command(coordinator, "/quit") is False


async def test_model_command_rejects_model_without_key(store, adapter, capsys) -> None:
    gpt = find_model("gpt")
    coordinator = ChatCoordinator(store, AdapterRegistry([adapter]), models=[gpt])

    await _command(coordinator, "/model sonnet")

    assert "no API key" in capsys.readouterr().out
    assert coordinator.selected_model is gpt
