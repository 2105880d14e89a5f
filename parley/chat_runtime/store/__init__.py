"""Chat store implementations for chat persistence."""

from parley.chat_runtime.store.base import ChatNotFoundError, ChatStore
from parley.chat_runtime.store.local import LocalChatStore

__all__ = ["ChatNotFoundError", "ChatStore", "LocalChatStore"]
