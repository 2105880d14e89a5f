"""In-flight request context.

A ``CancellationToken`` is handed to the provider adapter for every
dispatch.  Cancellation is cooperative: the token records *why* it was
cancelled and cancels whatever awaitable the adapter bound through
``CancellationToken.run``, so the HTTP transport itself is aborted rather
than its result merely ignored.

Design note: the ``InFlightRequest`` record's *identity* is what makes a
result authoritative.  The coordinator compares the registered record
against the one it started with after every await; a mismatch means a
newer dispatch (or a deletion) superseded this one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from parley.chat_runtime.models.enums import CancelCause

if TYPE_CHECKING:
    from parley.chat_runtime.models.catalog import ModelDescriptor

T = TypeVar("T")


class RequestCancelledError(Exception):
    """Raised by an adapter when its request was cancelled through the token."""

    def __init__(self, cause: CancelCause) -> None:
        super().__init__(f"Request cancelled ({cause})")
        self.cause = cause


class CancellationToken:
    """Cooperative cancellation handle for one provider call."""

    def __init__(self) -> None:
        self._cause: CancelCause | None = None
        self._bound: asyncio.Future | None = None
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cause is not None

    @property
    def cause(self) -> CancelCause | None:
        return self._cause

    def cancel(self, cause: CancelCause) -> bool:
        """Cancel with *cause*.  Only the first cause is kept.

        Returns ``False`` if the token was already cancelled or the call has
        already produced its outcome.
        """
        if self._cause is not None or self._finished:
            return False
        if self._bound is not None and self._bound.done():
            return False
        self._cause = cause
        if self._bound is not None:
            self._bound.cancel(msg=str(cause))
        return True

    def finish(self) -> None:
        """Mark the call as answered.  Later cancellations are ignored."""
        self._finished = True

    def raise_if_cancelled(self) -> None:
        if self._cause is not None:
            raise RequestCancelledError(self._cause)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* so that cancelling this token cancels it.

        A cancellation caused by the token surfaces as
        ``RequestCancelledError``; a cancellation of the calling task itself
        propagates unchanged as ``asyncio.CancelledError``.
        """
        if self._cause is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelledError(self._cause)

        future = asyncio.ensure_future(awaitable)
        self._bound = future
        try:
            return await future
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._cause is not None and not (current is not None and current.cancelling()):
                raise RequestCancelledError(self._cause) from None
            raise
        finally:
            self._bound = None


@dataclass(eq=False)
class InFlightRequest:
    """One outstanding provider call for a chat.

    Created by the coordinator at dispatch; registered in the
    ``RequestRegistry``; discarded when the call settles.
    """

    chat_id: str
    model: ModelDescriptor
    token: CancellationToken = field(default_factory=CancellationToken)

    def cancel(self, cause: CancelCause) -> bool:
        return self.token.cancel(cause)
