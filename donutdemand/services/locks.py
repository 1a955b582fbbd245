"""
donutdemand.services.locks — Per-key asyncio Locks
==================================================

Store calls hop to worker threads through ``run_db``, so two handlers for
the same guild / giveaway / channel can interleave between an ``await``
that reads and one that writes.  Wrap every such check-then-act sequence
in ``async with locks(key):``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable


class KeyedLocks:
    """Lazily created :class:`asyncio.Lock` per key."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def __call__(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)

    def discard(self, key: Hashable) -> None:
        """Forget the lock for *key* if nobody is holding it."""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]
