"""Chat store interface for chat persistence.

The chat store is the durable, key-addressed home of every chat.  It
assigns the chat id on first write; a chat without an id does not exist in
storage yet.  Each call either fully applies or not at all.  The interface
is async so that file and remote backends share one shape.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from parley.chat_runtime.models.chat import Chat


class ChatNotFoundError(LookupError):
    """Raised when a chat is not found in the store."""


@runtime_checkable
class ChatStore(Protocol):
    """Async protocol for reading and writing chats.

    Storage layout (keyed by chat id)::

        {root}/chats/{chat_id}/chat.json
    """

    async def create_chat(self, chat: Chat) -> str:
        """Persist a new chat and return its assigned id.  Does not mutate *chat*."""
        ...

    async def update_chat(self, chat_id: str, chat: Chat) -> None:
        """Overwrite the stored chat with *chat*'s current contents."""
        ...

    async def get_chat(self, chat_id: str) -> Chat:
        """Read a chat.  Raises ``ChatNotFoundError`` if not found."""
        ...

    async def list_chats(self) -> list[Chat]:
        """Return all chats, most recently created first."""
        ...

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat.  No-op if not found."""
        ...
