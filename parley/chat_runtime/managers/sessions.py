"""Session store -- the in-memory collection of chats and the focused chat.

Holds exactly one canonical object per chat.  The coordinator mutates those
objects in place and observers read the same objects, so a change is never
applied to a copy the UI cannot see.  Focus is a property of the store, not
of any chat: switching focus never mutates a chat.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from loguru import logger

from parley.chat_runtime.models.chat import Chat
from parley.chat_runtime.models.enums import ChatEvent

Listener = Callable[[ChatEvent, str | None], None]


class SessionStore:
    """Ordered chats (most recently created first) plus the focused chat."""

    def __init__(self) -> None:
        self._chats: list[Chat] = []
        self._current: Chat | None = None
        self._listeners: list[Listener] = []

    # -- Query -----------------------------------------------------------------

    @property
    def chats(self) -> list[Chat]:
        """Snapshot of the chat list.  The chat objects themselves are canonical."""
        return list(self._chats)

    @property
    def current(self) -> Chat | None:
        return self._current

    def get(self, chat_id: str) -> Chat | None:
        for chat in self._chats:
            if chat.id == chat_id:
                return chat
        return None

    def contains(self, chat: Chat) -> bool:
        return any(c is chat for c in self._chats)

    def most_recent(self) -> Chat | None:
        return self._chats[0] if self._chats else None

    def __len__(self) -> int:
        return len(self._chats)

    # -- Mutation --------------------------------------------------------------

    def replace_all(self, chats: Iterable[Chat]) -> None:
        """Replace the collection, keeping already-held objects for known ids.

        Chats held in memory win over freshly loaded copies: an in-flight
        dispatch or an observer may already reference them.
        """
        held = {c.id: c for c in self._chats if c.id is not None}
        merged = [held.get(c.id, c) if c.id is not None else c for c in chats]
        # In-memory chats the store has not seen yet (e.g. unsaved) stay listed.
        merged_ids = {id(c) for c in merged}
        pending = [c for c in self._chats if id(c) not in merged_ids and c.id is None]
        self._chats = _sort_newest_first([*pending, *merged])
        if self._current is not None and not self.contains(self._current):
            self._current = None
        self.notify(ChatEvent.CHATS_CHANGED)

    def add(self, chat: Chat) -> None:
        if self.contains(chat):
            return
        self._chats = _sort_newest_first([chat, *self._chats])
        self.notify(ChatEvent.CHATS_CHANGED, chat.id)

    def remove(self, chat_id: str) -> Chat | None:
        chat = self.get(chat_id)
        if chat is None:
            return None
        self._chats = [c for c in self._chats if c is not chat]
        if self._current is chat:
            self._current = None
        self.notify(ChatEvent.CHATS_CHANGED, chat_id)
        return chat

    def focus(self, chat: Chat | None) -> None:
        if chat is not None and not self.contains(chat):
            self.add(chat)
        if self._current is chat:
            return
        self._current = chat
        self.notify(ChatEvent.FOCUS_CHANGED, chat.id if chat else None)

    # -- Observers -------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener.  Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify(self, event: ChatEvent, chat_id: str | None = None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, chat_id)
            except Exception:
                logger.exception("Session store listener failed on {}", event)


def _sort_newest_first(chats: list[Chat]) -> list[Chat]:
    # Stable sort: equal timestamps keep insertion order.
    return sorted(chats, key=lambda c: c.created_at, reverse=True)
