from __future__ import annotations

import asyncio
import contextlib
import signal
from collections.abc import Awaitable, Callable

import click
from anyio import to_thread

from parley.chat_runtime.execution.coordinator import ChatCoordinator
from parley.chat_runtime.log import setup_logging
from parley.chat_runtime.models.chat import AssistantMessage, Chat
from parley.chat_runtime.models.enums import Role
from parley.chat_runtime.settings import ParleySettings, get_settings


@click.group()
@click.option("--log-level", default=None, help="Log level (default: from PARLEY_LOG_LEVEL or WARNING).")
@click.option("--log-file", default=None, help="Log to this file instead of stderr (default: PARLEY_LOG_FILE).")
@click.pass_context
def main(ctx: click.Context, log_level: str | None, log_file: str | None) -> None:
    """Parley - multi-chat client for remote language models."""
    settings = get_settings()
    setup_logging(log_level or settings.log_level, log_file=log_file or settings.log_file)
    ctx.obj = settings


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _short(chat_id: str | None) -> str:
    return (chat_id or "--------")[:8]


def _preview(chat: Chat, width: int = 48) -> str:
    first = next((m.content for m in chat.messages if m.role == Role.USER), "")
    first = " ".join(first.split())
    return first if len(first) <= width else first[: width - 1] + "…"


def _echo_reply(message: AssistantMessage | None) -> None:
    if message is None:
        return
    if message.reasoning:
        click.secho(message.reasoning, dim=True)
        click.echo()
    color = "red" if message.terminal else None
    click.secho(message.content, fg=color)
    click.secho(
        f"[{message.model} · {message.stop_reason} · "
        f"{message.tokens.input}/{message.tokens.output} tokens · "
        f"${message.cost:.5f} · {message.time_ms / 1000:.1f}s]",
        dim=True,
    )


def _echo_chat(chat: Chat) -> None:
    click.secho(f"chat {chat.id} ({chat.created_at:%Y-%m-%d %H:%M})", bold=True)
    for index, message in enumerate(chat.messages):
        if message.role == Role.USER:
            click.secho(f"[{index}] you> ", fg="cyan", nl=False)
            click.echo(message.content)
        else:
            click.secho(f"[{index}] {message.model}> ", fg="green", nl=False)
            _echo_reply(message)


def _echo_chats(coordinator: ChatCoordinator) -> None:
    current = coordinator.current
    for chat in coordinator.chats:
        marker = "*" if chat is current else " "
        loading = " (loading)" if coordinator.is_loading(chat.id) else ""
        blocked = " (blocked)" if chat.blocked else ""
        click.echo(
            f"{marker} {_short(chat.id)}  {chat.created_at:%Y-%m-%d %H:%M}  "
            f"{len(chat.messages):>3} msgs  {_preview(chat)}{loading}{blocked}"
        )


def _find_chat(coordinator: ChatCoordinator, prefix: str) -> Chat | None:
    matches = [c for c in coordinator.chats if c.id and c.id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


# ---------------------------------------------------------------------------
# Interactive chat
# ---------------------------------------------------------------------------


async def _interruptible(coordinator: ChatCoordinator, chat: Chat, turn: Awaitable[AssistantMessage | None]) -> None:
    """Await a turn; Ctrl-C stops the chat's request instead of exiting."""
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(turn)
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, coordinator.stop, chat)
        installed = True
    try:
        _echo_reply(await task)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)

    if chat.blocked:
        click.secho("Chat is blocked: /regen N or /fork N to continue.", dim=True)


def _read_line(prompt: str) -> str | None:
    try:
        return click.prompt(prompt, default="", show_default=False, prompt_suffix=" ")
    except click.exceptions.Abort:
        return None


async def _command(coordinator: ChatCoordinator, line: str) -> bool:
    """Run a slash command.  Returns ``False`` to leave the REPL."""
    name, _, arg = line[1:].partition(" ")
    arg = arg.strip()
    chat = coordinator.current

    handlers: dict[str, Callable[[], Awaitable[None]]] = {}

    async def _new() -> None:
        created = await coordinator.new_chat()
        click.echo(f"New chat {_short(created.id)}")

    async def _list() -> None:
        _echo_chats(coordinator)

    async def _show() -> None:
        if chat is not None:
            _echo_chat(chat)

    async def _switch() -> None:
        target = _find_chat(coordinator, arg)
        if target is None or target.id is None:
            click.echo(f"No unique chat matching '{arg}'")
            return
        coordinator.select_chat(target.id)
        _echo_chat(target)

    async def _delete() -> None:
        target = _find_chat(coordinator, arg) if arg else chat
        if target is None or target.id is None:
            click.echo(f"No unique chat matching '{arg}'")
            return
        await coordinator.delete_chat(target.id)
        click.echo(f"Deleted {_short(target.id)}")

    async def _regen() -> None:
        if chat is None or not arg.isdigit():
            click.echo("Usage: /regen N  (N = index of a user message, see /show)")
            return
        await _interruptible(coordinator, chat, coordinator.regenerate(chat, int(arg)))

    async def _fork() -> None:
        if chat is None or not arg.isdigit():
            click.echo("Usage: /fork N  (N = index of a user message, see /show)")
            return
        text = await coordinator.fork(chat, int(arg))
        if text is None:
            click.echo(f"Message {arg} is not a user message")
            return
        click.echo(f"Forked into {_short(coordinator.current.id if coordinator.current else None)}")
        click.secho(f"Forked message: {text}", dim=True)

    async def _model() -> None:
        if not arg:
            for model in coordinator.models:
                marker = "*" if model is coordinator.selected_model else " "
                click.echo(f"{marker} {model.id} ({model.provider})")
            return
        model = coordinator.select_model(arg)
        if model is None:
            click.echo(f"Unknown model '{arg}' or no API key for its provider")
            return
        click.echo(f"Model: {model.id}")

    async def _search() -> None:
        coordinator.web_search = not coordinator.web_search
        click.echo(f"Web search {'on' if coordinator.web_search else 'off'}")

    async def _think() -> None:
        coordinator.reasoning = not coordinator.reasoning
        click.echo(f"Reasoning {'on' if coordinator.reasoning else 'off'}")

    handlers.update(
        new=_new,
        list=_list,
        show=_show,
        switch=_switch,
        delete=_delete,
        regen=_regen,
        fork=_fork,
        model=_model,
        search=_search,
        think=_think,
    )

    async def _help() -> None:
        click.echo(f"Commands: /{', /'.join(handlers)}, /quit")

    handlers.update(help=_help)

    if name in ("quit", "exit", "q"):
        return False
    handler = handlers.get(name)
    if handler is None:
        click.echo(f"Unknown command /{name}")
        await _help()
    else:
        await handler()
    return True


async def _repl(coordinator: ChatCoordinator, settings: ParleySettings) -> None:
    await coordinator.init()
    model = coordinator.selected_model
    click.secho(f"parley · {model.id if model else 'no model'} · /help for commands", dim=True)

    try:
        while True:
            chat = coordinator.current
            if chat is None:
                chat = await coordinator.new_chat()
            line = await to_thread.run_sync(_read_line, f"{_short(chat.id)}>")
            if line is None:
                break
            line = line.strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _command(coordinator, line):
                    break
                continue
            if chat.blocked:
                click.secho("Chat is blocked: /regen N or /fork N to continue.", dim=True)
                continue
            await _interruptible(coordinator, chat, coordinator.send(chat, line))
    finally:
        await coordinator.shutdown(settings.graceful_shutdown_timeout)


def _build_coordinator(settings: ParleySettings, model: str | None = None) -> ChatCoordinator:
    coordinator = ChatCoordinator.from_settings(settings)
    if model and coordinator.select_model(model) is None:
        msg = f"Unknown model '{model}' or no API key for its provider"
        raise click.BadParameter(msg, param_hint="--model")
    return coordinator


@main.command()
@click.option("--model", default=None, help="Model id or key fragment (default: PARLEY_DEFAULT_MODEL).")
@click.pass_obj
def chat(settings: ParleySettings, model: str | None) -> None:
    """Start an interactive chat session."""
    coordinator = _build_coordinator(settings, model)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_repl(coordinator, settings))


@main.command()
@click.argument("text")
@click.option("--model", default=None, help="Model id or key fragment (default: PARLEY_DEFAULT_MODEL).")
@click.option("--search/--no-search", default=None, help="Enable web search.")
@click.option("--think/--no-think", default=None, help="Enable extended reasoning.")
@click.pass_obj
def ask(settings: ParleySettings, text: str, model: str | None, search: bool | None, think: bool | None) -> None:
    """Ask a single question in a new chat and print the reply."""
    coordinator = _build_coordinator(settings, model)
    if search is not None:
        coordinator.web_search = search
    if think is not None:
        coordinator.reasoning = think

    async def _ask() -> AssistantMessage | None:
        target = await coordinator.init()
        return await coordinator.send(target, text)

    reply = asyncio.run(_ask())
    if reply is None:
        raise click.UsageError("Nothing to send")
    _echo_reply(reply)
    if reply.terminal:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# Stored chats
# ---------------------------------------------------------------------------


@main.group()
def chats() -> None:
    """Inspect and manage stored chats."""


@chats.command("list")
@click.pass_obj
def list_chats(settings: ParleySettings) -> None:
    """List stored chats, newest first."""
    coordinator = ChatCoordinator.from_settings(settings)
    asyncio.run(coordinator.load_history())
    if not coordinator.chats:
        click.echo("No chats.")
        return
    _echo_chats(coordinator)


@chats.command("show")
@click.argument("chat_id")
@click.pass_obj
def show_chat(settings: ParleySettings, chat_id: str) -> None:
    """Print a stored chat (CHAT_ID may be a unique prefix)."""
    coordinator = ChatCoordinator.from_settings(settings)
    asyncio.run(coordinator.load_history())
    target = _find_chat(coordinator, chat_id)
    if target is None:
        raise click.ClickException(f"No unique chat matching '{chat_id}'")
    _echo_chat(target)


@chats.command("delete")
@click.argument("chat_id")
@click.pass_obj
def delete_chat(settings: ParleySettings, chat_id: str) -> None:
    """Delete a stored chat (CHAT_ID may be a unique prefix)."""
    coordinator = ChatCoordinator.from_settings(settings)

    async def _delete() -> str:
        await coordinator.load_history()
        target = _find_chat(coordinator, chat_id)
        if target is None or target.id is None:
            raise click.ClickException(f"No unique chat matching '{chat_id}'")
        await coordinator.delete_chat(target.id)
        return target.id

    deleted = asyncio.run(_delete())
    click.echo(f"Deleted {deleted}")


@main.command()
@click.pass_obj
def models(settings: ParleySettings) -> None:
    """List models that have an API key, with prices (USD per million tokens)."""
    from parley.chat_runtime.credentials import SettingsCredentials
    from parley.chat_runtime.models.catalog import MODELS, available_models

    available = available_models(SettingsCredentials(settings))
    if not available:
        click.echo("No API keys configured. Set one of OPENAI_API_KEY, ANTHROPIC_API_KEY or GOOGLE_API_KEY.")
        return
    for model in available:
        cached = f"{model.input_cached:g}" if model.input_cached is not None else "-"
        click.echo(
            f"{model.id:<16} {model.provider.value:<10} {model.key:<24} "
            f"in {model.input:g}  cached {cached}  out {model.output:g}  search {model.search:g}/call"
        )
    missing = [m.id for m in MODELS if m not in available]
    if missing:
        click.secho(f"Without a key: {', '.join(missing)}", dim=True)


if __name__ == "__main__":
    main()
