"""Request coordinator -- one cancellable provider call per chat.

The coordinator manages the lifecycle of every chat turn:

1. **Begin**: Mutate the chat synchronously (append / truncate), cancel any
   request already in flight for the chat, register a fresh one
2. **Execute**: Persist, acquire the wake resource, call the provider adapter
   through the request's cancellation token
3. **Settle**: Check the request is still authoritative, append the reply or
   a terminal message, persist, release resources

Each step between two awaits is atomic with respect to other coroutines on
the loop.  After every await the coordinator re-checks that its request is
still the one registered for the chat; a superseded or deleted request
settles silently.

Dispatches for different chats are independent.  Within one chat at most
one assistant message is appended per accepted dispatch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from parley.chat_runtime.context import InFlightRequest, RequestCancelledError
from parley.chat_runtime.execution.prompt import render_system_prompt
from parley.chat_runtime.managers.sessions import SessionStore
from parley.chat_runtime.models.catalog import MODELS, ModelDescriptor, available_models, find_model
from parley.chat_runtime.models.chat import AssistantMessage, Chat, TokenCounts, UserMessage
from parley.chat_runtime.models.enums import CancelCause, ChatEvent, StopReason
from parley.chat_runtime.pricing import get_cost
from parley.chat_runtime.providers.base import ChatInput, MissingCredentialError, ModelReply
from parley.chat_runtime.registry import RequestRegistry
from parley.chat_runtime.wake import NullWakeLock

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parley.chat_runtime.providers.registry import AdapterRegistry
    from parley.chat_runtime.settings import ParleySettings
    from parley.chat_runtime.store.base import ChatStore
    from parley.chat_runtime.wake import WakeHandle, WakeLock

logger = logging.getLogger(__name__)

STOPPED_TEXT = "Stopped by user"
INTERRUPTED_TEXT = "Request interrupted before a reply arrived. Regenerate to try again."


class ChatCoordinator:
    """Owns the chats, their in-flight requests and their persistence.

    Constructed explicitly with its collaborators so tests can inject fakes.
    The UI reads ``chats``, ``current`` and ``is_loading`` and calls the
    operations below; it subscribes to changes through ``sessions``.
    """

    def __init__(
        self,
        store: ChatStore,
        adapters: AdapterRegistry,
        *,
        models: Sequence[ModelDescriptor] = MODELS,
        sessions: SessionStore | None = None,
        registry: RequestRegistry | None = None,
        wake_lock: WakeLock | None = None,
        system_prompt: str | None = None,
        selected_model: ModelDescriptor | None = None,
        web_search: bool = True,
        reasoning: bool = False,
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._models = list(models)
        self._sessions = sessions or SessionStore()
        self._registry = registry or RequestRegistry()
        self._wake_lock = wake_lock or NullWakeLock()
        self._system_prompt = system_prompt

        self.selected_model = selected_model or (self._models[0] if self._models else None)
        self.web_search = web_search
        self.reasoning = reasoning

        self._create_lock = asyncio.Lock()
        self._write_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_settings(cls, settings: ParleySettings) -> ChatCoordinator:
        """Build a coordinator backed by the local chat store and the built-in adapters."""
        from parley.chat_runtime.credentials import SettingsCredentials
        from parley.chat_runtime.providers.registry import build_adapters
        from parley.chat_runtime.store.local import LocalChatStore

        credentials = SettingsCredentials(settings)
        models = available_models(credentials)
        if not models:
            logger.warning("No provider API key configured; every model will fail until one is set")
            models = list(MODELS)

        selected = find_model(settings.default_model, models) if settings.default_model else None
        if settings.default_model and selected is None:
            logger.warning(
                "Default model '%s' is unknown or has no API key, using %s", settings.default_model, models[0].id
            )

        return cls(
            LocalChatStore(settings.data_root, prefix=settings.data_prefix),
            build_adapters(credentials, max_tokens=settings.max_tokens),
            models=models,
            system_prompt=settings.system_prompt,
            selected_model=selected,
            web_search=settings.web_search,
            reasoning=settings.reasoning,
        )

    # -- Observed state ---------------------------------------------------------

    @property
    def sessions(self) -> SessionStore:
        return self._sessions

    @property
    def registry(self) -> RequestRegistry:
        return self._registry

    @property
    def chats(self) -> list[Chat]:
        return self._sessions.chats

    @property
    def current(self) -> Chat | None:
        return self._sessions.current

    @property
    def models(self) -> list[ModelDescriptor]:
        return list(self._models)

    def is_loading(self, chat_id: str | None) -> bool:
        return chat_id is not None and self._registry.get(chat_id) is not None

    def select_model(self, query: str) -> ModelDescriptor | None:
        model = find_model(query, self._models)
        if model is not None:
            self.selected_model = model
        return model

    # -- Chat lifecycle ---------------------------------------------------------

    async def init(self) -> Chat:
        """Load stored chats and focus one, reusing the newest chat if it is empty."""
        await self.load_history()
        newest = self._sessions.most_recent()
        if newest is not None and not newest.is_dirty:
            self._sessions.focus(newest)
            return newest
        return await self.new_chat()

    async def load_history(self) -> None:
        self._sessions.replace_all(await self._store.list_chats())

    async def new_chat(self) -> Chat:
        """Create, store and focus an empty chat.  Saves the focused chat first."""
        await self._save_if_dirty(self.current)

        model_name = self.selected_model.id if self.selected_model else None
        chat = Chat(system_prompt=render_system_prompt(self._system_prompt, model_name=model_name))
        await self._persist(chat)

        self._sessions.add(chat)
        self._sessions.focus(chat)
        return chat

    def select_chat(self, chat_id: str) -> Chat | None:
        """Focus a chat.  Never touches any chat's in-flight request.

        Also selects the model that produced the chat's last reply, when that
        model is in the catalog.
        """
        chat = self._sessions.get(chat_id)
        if chat is None:
            return None
        self._sessions.focus(chat)

        last = chat.last_assistant()
        if last is not None:
            found = next((m for m in self._models if m.id == last.model), None)
            if found is not None:
                self.selected_model = found
        return chat

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat, silently cancelling its in-flight request.

        Nothing is appended to or written for the chat afterward.  If it was
        focused, focus moves to the most recent remaining chat or a new one.
        """
        request = self._registry.get(chat_id)
        if request is not None:
            request.cancel(CancelCause.SUPERSEDED)
            self._registry.unregister(chat_id, request)
            self._sessions.notify(ChatEvent.LOADING_CHANGED, chat_id)

        current = self.current
        was_current = current is not None and current.id == chat_id
        self._sessions.remove(chat_id)

        # Writes already queued find the chat gone from the sessions and drop out.
        async with self._write_lock(chat_id):
            await self._store.delete_chat(chat_id)
        self._write_locks.pop(chat_id, None)
        logger.info("Chat %s deleted", chat_id)

        if was_current:
            remaining = self._sessions.most_recent()
            if remaining is not None:
                self._sessions.focus(remaining)
            else:
                await self.new_chat()

    # -- Turns --------------------------------------------------------------------

    async def send(self, chat: Chat, text: str) -> AssistantMessage | None:
        """Append a user message, store it, and request a reply.

        A silent no-op when the text is blank, the chat is deleted, blocked or
        already loading, no model is selected, or the runtime is shutting down.
        Returns the appended assistant message, if any.
        """
        content = text.strip()
        if not content or not self._accepting(chat):
            return None
        if chat.id is None:
            await self._persist(chat)
            self._sessions.add(chat)
            if not self._accepting(chat):
                return None
        assert chat.id is not None  # noqa: S101

        chat.messages.append(UserMessage(content=content))
        self._sessions.notify(ChatEvent.MESSAGE_APPENDED, chat.id)
        request = self._begin(chat)

        # The question is stored before the reply is requested.
        return await self._dispatch(chat, request, content, persist_first=True)

    async def regenerate(self, chat: Chat, index: int) -> AssistantMessage | None:
        """Drop everything after the user message at *index* and request a new reply.

        Supersedes a request still running for the chat.
        """
        if not 0 <= index < len(chat.messages):
            return None
        target = chat.messages[index]
        if not isinstance(target, UserMessage) or not self._is_live(chat):
            return None
        if self.selected_model is None or self._registry.is_shutting_down:
            return None
        if chat.id is None:
            await self._persist(chat)
            self._sessions.add(chat)
        assert chat.id is not None  # noqa: S101

        del chat.messages[index + 1 :]
        self._sessions.notify(ChatEvent.CHATS_CHANGED, chat.id)
        request = self._begin(chat)
        return await self._dispatch(chat, request, target.content)

    async def fork(self, chat: Chat, index: int) -> str | None:
        """Start a new chat from the messages before the user message at *index*.

        The new chat is stored and focused; the source chat and its in-flight
        request are untouched.  Returns the forked-from text so the caller can
        put it back in the input field.
        """
        if not 0 <= index < len(chat.messages):
            return None
        target = chat.messages[index]
        if not isinstance(target, UserMessage):
            return None

        text = target.content
        prefix = [m.model_copy(deep=True) for m in chat.messages[:index]]

        await self._save_if_dirty(chat)
        forked = Chat(system_prompt=chat.system_prompt, messages=prefix)
        await self._persist(forked)

        self._sessions.add(forked)
        self._sessions.focus(forked)
        logger.info("Forked chat %s at message %d into %s", chat.id, index, forked.id)
        return text

    def stop(self, chat: Chat) -> bool:
        """Cancel the chat's in-flight request at the user's request.

        No-op (returns ``False``) when idle or once the provider has answered:
        a reply that already arrived is kept.
        """
        if chat.id is None:
            return False
        return self._registry.cancel(chat.id, CancelCause.USER_STOP)

    def interrupt_all(self) -> int:
        """Cancel every in-flight request as interrupted (host suspending, network lost)."""
        return self._registry.interrupt_all()

    async def shutdown(self, timeout: float | None = None) -> None:
        """Refuse new requests, let in-flight ones finish, then interrupt the rest."""
        self._registry.begin_shutdown()
        if await self._registry.wait_until_drained(timeout):
            return
        logger.warning("Shutdown: %d requests still in flight", self._registry.active_count)
        count = self._registry.interrupt_all()
        logger.warning("Shutdown: interrupted %d requests", count)
        await self._registry.wait_until_drained(timeout)

    # -- Dispatch ----------------------------------------------------------------

    def _accepting(self, chat: Chat) -> bool:
        return (
            self._is_live(chat)
            and not chat.blocked
            and not self.is_loading(chat.id)
            and self.selected_model is not None
            and not self._registry.is_shutting_down
        )

    def _is_live(self, chat: Chat) -> bool:
        """Unsaved chats and chats still held in the sessions; not deleted ones."""
        return chat.id is None or self._sessions.contains(chat)

    def _begin(self, chat: Chat) -> InFlightRequest:
        """Supersede any running request for the chat and register a new one."""
        assert chat.id is not None  # noqa: S101
        assert self.selected_model is not None  # noqa: S101

        previous = self._registry.get(chat.id)
        if previous is not None:
            previous.cancel(CancelCause.SUPERSEDED)

        request = InFlightRequest(chat_id=chat.id, model=self.selected_model)
        self._registry.register(request)
        self._sessions.notify(ChatEvent.LOADING_CHANGED, chat.id)
        return request

    async def _dispatch(
        self,
        chat: Chat,
        request: InFlightRequest,
        input_text: str,
        *,
        persist_first: bool = False,
    ) -> AssistantMessage | None:
        """Run one provider call for *request* and settle its outcome.

        The request is unregistered on every path, but only while it is still
        the registered one.
        """
        chat_input = ChatInput(
            history=list(chat.messages[:-1]),
            text=input_text,
            model=request.model,
            system_prompt=chat.system_prompt,
            search=self.web_search,
            think=self.reasoning,
            token=request.token,
        )
        wake: WakeHandle | None = None
        started = time.monotonic()
        try:
            if persist_first:
                await self._persist(chat)
            wake = await self._acquire_wake()
            request.token.raise_if_cancelled()
            started = time.monotonic()
            reply = await self._adapters.create_message(chat_input)
            request.token.finish()
        except RequestCancelledError as exc:
            return await self._settle_cancelled(chat, request, exc.cause)
        except asyncio.CancelledError:
            # Our own task was cancelled: record the interruption, then honour it.
            await self._settle_cancelled(chat, request, request.token.cause or CancelCause.INTERRUPTED)
            raise
        except Exception as exc:
            request.token.finish()
            return await self._settle_failed(chat, request, exc)
        else:
            elapsed_ms = (time.monotonic() - started) * 1000
            return await self._settle_reply(chat, request, chat_input, reply, elapsed_ms)
        finally:
            await self._release_wake(wake)
            if self._registry.unregister(request.chat_id, request) is not None:
                self._sessions.notify(ChatEvent.LOADING_CHANGED, request.chat_id)

    async def _settle_reply(
        self,
        chat: Chat,
        request: InFlightRequest,
        chat_input: ChatInput,
        reply: ModelReply,
        elapsed_ms: float,
    ) -> AssistantMessage | None:
        if not self._registry.is_current(request):
            logger.debug("Discarding superseded reply for chat %s", request.chat_id)
            return None

        message = AssistantMessage(
            model=request.model.id,
            content=reply.content,
            reasoning=reply.reasoning,
            search=chat_input.search,
            tokens=reply.tokens,
            stop_reason=reply.stop_reason,
            cost=get_cost(request.model, reply.tokens, reply.searches),
            time_ms=elapsed_ms,
        )
        logger.info(
            "Chat %s reply: model=%s, stop=%s, tokens=%d/%d, cost=$%.5f",
            request.chat_id,
            request.model.id,
            reply.stop_reason,
            reply.tokens.input,
            reply.tokens.output,
            message.cost,
        )
        return await self._append(chat, message)

    async def _settle_cancelled(
        self,
        chat: Chat,
        request: InFlightRequest,
        cause: CancelCause,
    ) -> AssistantMessage | None:
        if cause is CancelCause.SUPERSEDED or not self._registry.is_current(request):
            logger.debug("Request for chat %s superseded", request.chat_id)
            return None

        if cause is CancelCause.USER_STOP:
            message = _terminal_message(request, STOPPED_TEXT, StopReason.STOPPED)
        else:
            message = _terminal_message(request, INTERRUPTED_TEXT, StopReason.INTERRUPTED)
        logger.info("Request for chat %s ended: %s", request.chat_id, message.stop_reason)
        return await self._append(chat, message)

    async def _settle_failed(
        self,
        chat: Chat,
        request: InFlightRequest,
        exc: Exception,
    ) -> AssistantMessage | None:
        if not self._registry.is_current(request):
            logger.debug("Discarding failure of superseded request for chat %s: %s", request.chat_id, exc)
            return None

        if isinstance(exc, MissingCredentialError):
            logger.warning("Request for chat %s: %s", request.chat_id, exc)
        else:
            logger.exception("Request for chat %s failed", request.chat_id)

        description = str(exc) or type(exc).__name__
        message = _terminal_message(request, f"Error: {description}", StopReason.ERROR)
        return await self._append(chat, message)

    async def _append(self, chat: Chat, message: AssistantMessage) -> AssistantMessage:
        chat.messages.append(message)
        self._sessions.notify(ChatEvent.MESSAGE_APPENDED, chat.id)
        await self._persist(chat)
        return message

    # -- Wake resource -------------------------------------------------------------

    async def _acquire_wake(self) -> WakeHandle | None:
        try:
            return await self._wake_lock.acquire()
        except Exception:
            logger.debug("Could not acquire wake lock", exc_info=True)
            return None

    async def _release_wake(self, wake: WakeHandle | None) -> None:
        if wake is None:
            return
        try:
            await wake.release()
        except Exception:
            logger.debug("Could not release wake lock", exc_info=True)

    # -- Persistence ---------------------------------------------------------------

    def _write_lock(self, chat_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(chat_id)
        if lock is None:
            lock = self._write_locks[chat_id] = asyncio.Lock()
        return lock

    async def _persist(self, chat: Chat) -> None:
        """Write *chat*, creating it in the store if it has no id yet.

        Writes for one chat are serialized so later snapshots land last;
        writes for chats no longer held in the sessions (deleted) are dropped.
        """
        if chat.id is None:
            async with self._create_lock:
                if chat.id is None:
                    chat.id = await self._store.create_chat(chat)
                    return

        chat_id = chat.id
        async with self._write_lock(chat_id):
            if not self._sessions.contains(chat):
                logger.debug("Skipping write for deleted chat %s", chat_id)
                return
            await self._store.update_chat(chat_id, chat)

    async def _save_if_dirty(self, chat: Chat | None) -> None:
        if chat is not None and chat.is_dirty:
            await self._persist(chat)


def _terminal_message(request: InFlightRequest, content: str, reason: StopReason) -> AssistantMessage:
    return AssistantMessage(
        model=request.model.id,
        content=content,
        tokens=TokenCounts(),
        stop_reason=reason,
        cost=0.0,
        time_ms=0.0,
    )
