"""Per-host commit locks.

Every booking commit holds the lock of the host it writes to, so two
commits for the same host can't both see a slot as free.  Hosts have
independent locks and never wait on each other.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from booking_engine.errors import ConcurrencyConflict

log = logging.getLogger("booking_engine.locks")


class HostLockRegistry:
    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, host_id: str) -> asyncio.Lock:
        lock = self._locks.get(host_id)
        if lock is None:
            lock = self._locks[host_id] = asyncio.Lock()
        return lock

    def locked(self, host_id: str) -> bool:
        lock = self._locks.get(host_id)
        return lock is not None and lock.locked()

    async def _acquire(self, host_id: str) -> asyncio.Lock:
        lock = self._lock(host_id)
        try:
            await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            log.warning("host_lock_timeout host=%s timeout=%.1fs", host_id, self._timeout)
            raise ConcurrencyConflict(
                f"timed out waiting for host {host_id}",
                details={"host_id": host_id},
            ) from exc
        return lock

    @asynccontextmanager
    async def hold(self, *host_ids: str) -> AsyncIterator[None]:
        """Hold the locks of all given hosts.

        Locks are taken in sorted id order so two callers locking the same
        pair of hosts can't deadlock.
        """
        held: list[asyncio.Lock] = []
        try:
            for host_id in _unique_sorted(host_ids):
                held.append(await self._acquire(host_id))
            yield
        finally:
            for lock in reversed(held):
                lock.release()


def _unique_sorted(host_ids: Iterable[str]) -> list[str]:
    return sorted(set(host_ids))
