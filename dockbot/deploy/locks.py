"""
Keyed asyncio locks.

Used for per-conversation serialization and per-credential
build/deploy exclusion. Locks are created on demand and dropped
once nobody holds or waits on them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from .errors import ConcurrencyError, mask_credential

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    lock: asyncio.Lock
    users: int = 0


class KeyedLock:
    """
    A family of asyncio locks addressed by string key.

    Waiters on the same key are served in arrival order (asyncio.Lock
    is FIFO). Acquisition can be bounded by a timeout, in which case
    ConcurrencyError is raised.

    Example:
        locks = KeyedLock("credential", timeout=60.0)

        async with locks.hold(credential):
            ...  # exclusive for this credential
    """

    def __init__(self, name: str, timeout: float | None = None, *, mask_keys: bool = False):
        self._name = name
        self._timeout = timeout
        self._mask_keys = mask_keys
        self._entries: dict[str, _Entry] = {}

    @property
    def name(self) -> str:
        return self._name

    def locked(self, key: str) -> bool:
        """Check whether the lock for key is currently held."""
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)

    def _label(self, key: str) -> str:
        return mask_credential(key) if self._mask_keys else key

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold the lock for key for the duration of the block.

        Args:
            key: Lock key
            timeout: Override for the acquisition bound (None = default)

        Raises:
            ConcurrencyError: If the lock was not acquired in time
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry(lock=asyncio.Lock())
            self._entries[key] = entry
        entry.users += 1

        bound = timeout if timeout is not None else self._timeout
        try:
            if entry.lock.locked():
                logger.debug(f"Waiting for {self._name} lock: {self._label(key)}")
            try:
                if bound is None:
                    await entry.lock.acquire()
                else:
                    await asyncio.wait_for(entry.lock.acquire(), timeout=bound)
            except asyncio.TimeoutError:
                raise ConcurrencyError(
                    f"Timed out after {bound}s waiting for {self._name} lock",
                    credential=key if self._mask_keys else "",
                    stage=f"{self._name}_lock",
                ) from None

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]
