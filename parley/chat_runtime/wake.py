"""Wake resource held for the duration of each provider call.

Keeps the host from suspending background work while a reply is pending.
Acquisition is best-effort: the coordinator logs and ignores failures.
"""

from __future__ import annotations

from typing import Protocol


class WakeHandle(Protocol):
    async def release(self) -> None: ...


class WakeLock(Protocol):
    async def acquire(self) -> WakeHandle:
        """Acquire the resource.  May raise; callers treat failure as non-fatal."""
        ...


class _NullHandle:
    async def release(self) -> None:
        return None


class NullWakeLock:
    """Wake lock for hosts with nothing to hold (servers, terminals)."""

    async def acquire(self) -> WakeHandle:
        return _NullHandle()
