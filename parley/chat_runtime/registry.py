"""In-process request registry.

Tracks the in-flight provider call of each chat with a live cancellation
handle.  Ephemeral -- empty on process restart.  All durable state lives in
the chat store.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from loguru import logger

from parley.chat_runtime.models.enums import CancelCause

if TYPE_CHECKING:
    from parley.chat_runtime.context import InFlightRequest


class ShuttingDownError(RuntimeError):
    """Raised when attempting to register a request during shutdown."""


class RequestRegistry:
    """Registry of currently executing requests, at most one per chat.

    Registering a request for a chat that already has one replaces it; the
    caller is responsible for cancelling the previous record first (the
    coordinator does so with ``CancelCause.SUPERSEDED``).

    The registry also provides a drain mechanism for graceful shutdown:
    ``wait_until_drained`` blocks until all requests have been unregistered.
    """

    def __init__(self) -> None:
        self._requests: dict[str, InFlightRequest] = {}
        self._drain_event = asyncio.Event()
        self._drain_event.set()  # Starts "drained" (no requests).
        self._shutting_down = False

    # -- Mutation --------------------------------------------------------------

    def register(self, request: InFlightRequest) -> InFlightRequest | None:
        """Register a request, returning the record it replaced (if any).

        Raises ``ShuttingDownError`` if shutting down.
        """
        if self._shutting_down:
            raise ShuttingDownError
        previous = self._requests.get(request.chat_id)
        logger.debug("Registry: register request for chat {} (model={})", request.chat_id, request.model.id)
        self._requests[request.chat_id] = request
        self._drain_event.clear()
        return previous

    def unregister(self, chat_id: str, request: InFlightRequest | None = None) -> InFlightRequest | None:
        """Remove the record for *chat_id*.

        When *request* is given the record is only removed if it is still the
        registered one, so a settling request never clears its successor.
        """
        current = self._requests.get(chat_id)
        if current is None or (request is not None and current is not request):
            return None
        del self._requests[chat_id]
        logger.debug("Registry: unregister request for chat {}", chat_id)
        if not self._requests:
            self._drain_event.set()
        return current

    # -- Query -----------------------------------------------------------------

    def get(self, chat_id: str) -> InFlightRequest | None:
        return self._requests.get(chat_id)

    def is_current(self, request: InFlightRequest) -> bool:
        """Whether *request* is still the authoritative request for its chat."""
        return self._requests.get(request.chat_id) is request

    @property
    def active_count(self) -> int:
        return len(self._requests)

    # -- Lifecycle -------------------------------------------------------------

    def begin_shutdown(self) -> None:
        """Mark the registry as shutting down.  New registrations are refused."""
        self._shutting_down = True
        logger.info("Registry: shutdown initiated, refusing new requests")
        if not self._requests:
            self._drain_event.set()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # -- Control ---------------------------------------------------------------

    def cancel(self, chat_id: str, cause: CancelCause) -> bool:
        """Cancel the request registered for *chat_id*.  Returns ``False`` if idle."""
        request = self._requests.get(chat_id)
        if request is None:
            return False
        cancelled = request.cancel(cause)
        if cancelled:
            logger.info("Registry: cancelled request for chat {} ({})", chat_id, cause)
        return cancelled

    def interrupt_all(self) -> int:
        """Cancel every in-flight request with ``CancelCause.INTERRUPTED``.

        Used when the host is about to suspend background work and as a
        last resort during forced shutdown.  Returns the number of requests
        that were cancelled.
        """
        count = 0
        for request in self._requests.values():
            if request.cancel(CancelCause.INTERRUPTED):
                count += 1
                logger.info("Registry: interrupted request for chat {}", request.chat_id)
        return count

    async def wait_until_drained(self, timeout: float | None = None) -> bool:
        """Wait until all requests have been unregistered (drained).

        Returns ``True`` if the registry is empty, ``False`` if *timeout*
        expired with requests still active.
        """
        if not self._requests:
            return True
        try:
            await asyncio.wait_for(self._drain_event.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Registry: drain timed out after {}s with {} requests still active",
                timeout,
                self.active_count,
            )
            return False
        else:
            return True
