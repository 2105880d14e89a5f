"""Shared fixtures for chat-runtime tests.

No network or provider keys required: provider calls go through a fake
adapter whose replies are resolved by the test, and persistence goes
through an in-memory store that records every write.
"""

from __future__ import annotations

import asyncio
import itertools

import pytest

from parley.chat_runtime.execution.coordinator import ChatCoordinator
from parley.chat_runtime.models.catalog import MODELS
from parley.chat_runtime.models.chat import Chat, TokenCounts
from parley.chat_runtime.models.enums import Provider
from parley.chat_runtime.providers.base import ChatInput, ModelReply
from parley.chat_runtime.providers.registry import AdapterRegistry
from parley.chat_runtime.store.base import ChatNotFoundError

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class RecordingChatStore:
    """In-memory ChatStore that snapshots every write.

    ``writes`` holds ``(op, chat_id, snapshot)`` tuples in write order; the
    snapshot is a deep copy taken at write time.
    """

    def __init__(self) -> None:
        self.chats: dict[str, Chat] = {}
        self.writes: list[tuple[str, str, Chat | None]] = []
        self._ids = itertools.count(1)

    async def create_chat(self, chat: Chat) -> str:
        await asyncio.sleep(0)
        chat_id = f"chat-{next(self._ids)}"
        snapshot = chat.model_copy(deep=True, update={"id": chat_id})
        self.chats[chat_id] = snapshot
        self.writes.append(("create", chat_id, snapshot))
        return chat_id

    async def update_chat(self, chat_id: str, chat: Chat) -> None:
        await asyncio.sleep(0)
        snapshot = chat.model_copy(deep=True, update={"id": chat_id})
        self.chats[chat_id] = snapshot
        self.writes.append(("update", chat_id, snapshot))

    async def get_chat(self, chat_id: str) -> Chat:
        try:
            return self.chats[chat_id].model_copy(deep=True)
        except KeyError:
            raise ChatNotFoundError(chat_id) from None

    async def list_chats(self) -> list[Chat]:
        chats = [c.model_copy(deep=True) for c in self.chats.values()]
        return sorted(chats, key=lambda c: c.created_at, reverse=True)

    async def delete_chat(self, chat_id: str) -> None:
        await asyncio.sleep(0)
        self.chats.pop(chat_id, None)
        self.writes.append(("delete", chat_id, None))

    def writes_for(self, chat_id: str) -> list[Chat]:
        return [snap for op, cid, snap in self.writes if cid == chat_id and snap is not None]


class FakeAdapter:
    """Adapter whose calls stay pending until the test resolves them.

    With ``honour_cancel=False`` the adapter ignores the cancellation token
    and only returns when resolved, like a transport that cannot be aborted.
    """

    def __init__(self, provider: Provider = Provider.GOOGLE, *, honour_cancel: bool = True) -> None:
        self.provider = provider
        self.honour_cancel = honour_cancel
        self.calls: list[ChatInput] = []
        self.pending: list[asyncio.Future[ModelReply]] = []

    async def create_message(self, request: ChatInput) -> ModelReply:
        future: asyncio.Future[ModelReply] = asyncio.get_running_loop().create_future()
        self.calls.append(request)
        self.pending.append(future)
        if self.honour_cancel:
            return await request.token.run(future)
        return await future

    def resolve(self, index: int = -1, content: str = "Hello!", **kwargs: object) -> None:
        defaults: dict[str, object] = {
            "tokens": TokenCounts(input=100, output=10),
            "stop_reason": "STOP",
        }
        defaults.update(kwargs)
        self.pending[index].set_result(ModelReply(content=content, **defaults))  # type: ignore[arg-type]

    def fail(self, exc: BaseException, index: int = -1) -> None:
        self.pending[index].set_exception(exc)

    async def wait_for_calls(self, count: int) -> None:
        for _ in range(200):
            if len(self.calls) >= count:
                return
            await asyncio.sleep(0)
        msg = f"expected {count} adapter calls, got {len(self.calls)}"
        raise AssertionError(msg)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> RecordingChatStore:
    return RecordingChatStore()


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter(MODELS[0].provider)


@pytest.fixture
def coordinator(store: RecordingChatStore, adapter: FakeAdapter) -> ChatCoordinator:
    return ChatCoordinator(
        store,
        AdapterRegistry([adapter]),
        system_prompt="You are terse.",
        selected_model=MODELS[0],
    )


@pytest.fixture
def fake_adapter_factory():
    """Build extra fake adapters (e.g. one that ignores cancellation)."""
    return FakeAdapter
