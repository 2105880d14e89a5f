"""Unit tests for RequestRegistry and the cancellation token."""

from __future__ import annotations

import asyncio

import pytest

from parley.chat_runtime.context import CancellationToken, InFlightRequest, RequestCancelledError
from parley.chat_runtime.models.catalog import MODELS
from parley.chat_runtime.models.enums import CancelCause
from parley.chat_runtime.registry import RequestRegistry, ShuttingDownError


def _request(chat_id: str = "chat-1") -> InFlightRequest:
    return InFlightRequest(chat_id=chat_id, model=MODELS[0])


# ---------------------------------------------------------------------------
# RequestRegistry
# ---------------------------------------------------------------------------


def test_register_and_get() -> None:
    registry = RequestRegistry()
    request = _request()

    assert registry.register(request) is None
    assert registry.get("chat-1") is request
    assert registry.is_current(request)
    assert registry.active_count == 1


def test_register_replaces_previous() -> None:
    registry = RequestRegistry()
    first = _request()
    second = _request()
    registry.register(first)

    assert registry.register(second) is first
    assert not registry.is_current(first)
    assert registry.is_current(second)
    assert registry.active_count == 1


def test_unregister_only_removes_matching_record() -> None:
    registry = RequestRegistry()
    first = _request()
    second = _request()
    registry.register(first)
    registry.register(second)

    # A settling stale request never clears its successor.
    assert registry.unregister("chat-1", first) is None
    assert registry.get("chat-1") is second

    assert registry.unregister("chat-1", second) is second
    assert registry.get("chat-1") is None
    assert registry.unregister("chat-1") is None


def test_cancel() -> None:
    registry = RequestRegistry()
    request = _request()
    registry.register(request)

    assert registry.cancel("chat-1", CancelCause.USER_STOP) is True
    assert request.token.cause is CancelCause.USER_STOP
    # First cause wins.
    assert registry.cancel("chat-1", CancelCause.INTERRUPTED) is False
    assert request.token.cause is CancelCause.USER_STOP
    assert registry.cancel("other", CancelCause.USER_STOP) is False


def test_interrupt_all() -> None:
    registry = RequestRegistry()
    a, b = _request("a"), _request("b")
    registry.register(a)
    registry.register(b)
    b.cancel(CancelCause.USER_STOP)

    assert registry.interrupt_all() == 1
    assert a.token.cause is CancelCause.INTERRUPTED
    assert b.token.cause is CancelCause.USER_STOP
    assert registry.active_count == 2


def test_shutdown_refuses_new_requests() -> None:
    registry = RequestRegistry()
    registry.begin_shutdown()

    assert registry.is_shutting_down
    with pytest.raises(ShuttingDownError):
        registry.register(_request())


async def test_wait_until_drained() -> None:
    registry = RequestRegistry()
    assert await registry.wait_until_drained(timeout=0.01) is True

    request = _request()
    registry.register(request)
    assert await registry.wait_until_drained(timeout=0.01) is False

    asyncio.get_running_loop().call_soon(registry.unregister, "chat-1", request)
    assert await registry.wait_until_drained(timeout=1) is True


# ---------------------------------------------------------------------------
# CancellationToken
# ---------------------------------------------------------------------------


async def test_token_run_returns_result() -> None:
    token = CancellationToken()

    async def _work() -> str:
        await asyncio.sleep(0)
        return "done"

    assert await token.run(_work()) == "done"


async def test_token_cancel_aborts_bound_awaitable() -> None:
    token = CancellationToken()
    started = asyncio.Event()
    finished = False

    async def _work() -> None:
        nonlocal finished
        started.set()
        await asyncio.sleep(10)
        finished = True

    task = asyncio.create_task(token.run(_work()))
    await started.wait()
    token.cancel(CancelCause.USER_STOP)

    with pytest.raises(RequestCancelledError) as exc_info:
        await task
    assert exc_info.value.cause is CancelCause.USER_STOP
    assert finished is False


async def test_token_already_cancelled_never_starts_work() -> None:
    token = CancellationToken()
    token.cancel(CancelCause.SUPERSEDED)
    started = False

    async def _work() -> None:
        nonlocal started
        started = True

    with pytest.raises(RequestCancelledError):
        await token.run(_work())
    assert started is False
    with pytest.raises(RequestCancelledError):
        token.raise_if_cancelled()


async def test_task_cancellation_propagates_through_token() -> None:
    token = CancellationToken()
    started = asyncio.Event()

    async def _work() -> None:
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(token.run(_work()))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert token.cancelled is False


async def test_token_cancel_after_result_is_ignored() -> None:
    token = CancellationToken()
    result: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    task = asyncio.create_task(token.run(result))
    await asyncio.sleep(0)
    result.set_result("reply")

    # The result is in but the caller has not resumed yet.
    assert token.cancel(CancelCause.USER_STOP) is False
    assert await task == "reply"
    assert token.cancelled is False


def test_finished_token_ignores_cancel() -> None:
    token = CancellationToken()
    token.finish()

    assert token.cancel(CancelCause.INTERRUPTED) is False
    assert token.cause is None
