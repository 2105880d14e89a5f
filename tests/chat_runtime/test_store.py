"""Unit tests for LocalChatStore.

No network or provider keys required -- uses a temporary directory.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from parley.chat_runtime.models.chat import AssistantMessage, Chat, TokenCounts, UserMessage
from parley.chat_runtime.store.base import ChatNotFoundError, ChatStore
from parley.chat_runtime.store.local import LocalChatStore


@pytest.fixture
def store(tmp_path) -> LocalChatStore:
    return LocalChatStore(tmp_path)


@pytest.fixture
def prefixed_store(tmp_path) -> LocalChatStore:
    return LocalChatStore(tmp_path, prefix="alice")


def test_satisfies_protocol(store: LocalChatStore) -> None:
    assert isinstance(store, ChatStore)


async def test_create_and_read_chat(store: LocalChatStore) -> None:
    chat = Chat(
        system_prompt="Be brief.",
        messages=[
            UserMessage(content="hello"),
            AssistantMessage(
                model="Sonnet 4.5",
                content="hi",
                reasoning="greeting",
                search=True,
                tokens=TokenCounts(input=12, output=3, input_cache_hit=4),
                stop_reason="end_turn",
                cost=0.0001,
                time_ms=812.5,
            ),
        ],
    )
    chat_id = await store.create_chat(chat)

    # The caller's object is not mutated; the stored copy carries the id.
    assert chat.id is None
    result = await store.get_chat(chat_id)
    assert result.id == chat_id
    assert result.system_prompt == "Be brief."
    assert result.created_at == chat.created_at
    assert isinstance(result.messages[0], UserMessage)
    assert isinstance(result.messages[1], AssistantMessage)
    assert result.messages[1].tokens.input_cache_hit == 4
    assert result.messages[1].reasoning == "greeting"


async def test_get_chat_not_found(store: LocalChatStore) -> None:
    with pytest.raises(ChatNotFoundError):
        await store.get_chat("nonexistent")


async def test_update_chat(store: LocalChatStore) -> None:
    chat = Chat()
    chat_id = await store.create_chat(chat)

    chat.messages.append(UserMessage(content="later"))
    await store.update_chat(chat_id, chat)

    result = await store.get_chat(chat_id)
    assert [m.content for m in result.messages] == ["later"]


async def test_delete_chat(store: LocalChatStore) -> None:
    chat_id = await store.create_chat(Chat())

    await store.delete_chat(chat_id)
    with pytest.raises(ChatNotFoundError):
        await store.get_chat(chat_id)
    assert await store.list_chats() == []

    # Delete non-existent is a no-op.
    await store.delete_chat("nonexistent")


async def test_list_chats_newest_first(store: LocalChatStore) -> None:
    now = datetime.now(tz=UTC)
    old_id = await store.create_chat(Chat(created_at=now - timedelta(days=1)))
    new_id = await store.create_chat(Chat(created_at=now))
    mid_id = await store.create_chat(Chat(created_at=now - timedelta(hours=1)))

    chats = await store.list_chats()
    assert [c.id for c in chats] == [new_id, mid_id, old_id]


async def test_list_chats_empty(store: LocalChatStore) -> None:
    assert await store.list_chats() == []


async def test_list_chats_skips_corrupt_files(store: LocalChatStore, tmp_path) -> None:
    chat_id = await store.create_chat(Chat())
    broken = tmp_path / "chats" / "broken" / "chat.json"
    broken.parent.mkdir(parents=True)
    broken.write_text("{not json", encoding="utf-8")

    chats = await store.list_chats()
    assert [c.id for c in chats] == [chat_id]


async def test_atomic_write_leaves_no_tmp_files(store: LocalChatStore, tmp_path) -> None:
    chat_id = await store.create_chat(Chat())
    await store.update_chat(chat_id, Chat(messages=[UserMessage(content="x")]))

    chat_dir = tmp_path / "chats" / chat_id
    assert [p.name for p in chat_dir.iterdir()] == ["chat.json"]


async def test_prefix_layout(prefixed_store: LocalChatStore, tmp_path) -> None:
    chat_id = await prefixed_store.create_chat(Chat())

    assert (tmp_path / "alice" / "chats" / chat_id / "chat.json").exists()
    assert not (tmp_path / "chats").exists()


async def test_prefix_isolation(store: LocalChatStore, prefixed_store: LocalChatStore) -> None:
    await prefixed_store.create_chat(Chat())

    assert await store.list_chats() == []
    assert len(await prefixed_store.list_chats()) == 1
