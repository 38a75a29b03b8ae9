"""Concurrency control for balance and nonce operations.

Provides keyed asyncio locks so that read-modify-write sequences on one
ledger account, or nonce fetch + broadcast for one EVM sender, never
interleave within this process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

# Global lock registry: key -> asyncio.Lock
_locks: dict[str, asyncio.Lock] = {}


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


def get_lock(key: str) -> asyncio.Lock:
    """Get or create the lock for a key.

    Args:
        key: Lock key, e.g. ``ledger:null_abc...`` or ``nonce:sepolia:0xabc...``

    Returns:
        asyncio.Lock for the key
    """
    lock = _locks.get(key)
    if lock is None:
        lock = _locks.setdefault(key, asyncio.Lock())
    return lock


class KeyedLock:
    """Context manager for exclusive access to one or more keyed resources.

    Keys are acquired in sorted order so two operations touching the same pair
    of accounts can never deadlock.

    Example:
        async with KeyedLock(["ledger:null_a", "ledger:null_b"], operation="transfer"):
            ...
    """

    def __init__(
        self,
        keys: Iterable[str],
        timeout: Optional[float] = 30.0,
        operation: str = "balance_operation",
    ):
        self.keys = sorted(set(keys))
        self.timeout = timeout
        self.operation = operation
        self._held: list[asyncio.Lock] = []

    async def __aenter__(self) -> "KeyedLock":
        for key in self.keys:
            lock = get_lock(key)
            try:
                if self.timeout:
                    await asyncio.wait_for(lock.acquire(), timeout=self.timeout)
                else:
                    await lock.acquire()
            except asyncio.TimeoutError:
                self._release()
                logger.warning(f"Lock timeout for {key} after {self.timeout}s: {self.operation}")
                raise LockTimeoutError(
                    f"Could not acquire lock for {key} within {self.timeout}s"
                )
            self._held.append(lock)

        logger.debug(f"Locks acquired for {self.keys}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._release()
        logger.debug(f"Locks released for {self.keys}: {self.operation}")
        return False

    def _release(self) -> None:
        while self._held:
            self._held.pop().release()


@asynccontextmanager
async def keyed_lock(
    key: str,
    timeout: Optional[float] = 30.0,
    operation: str = "balance_operation",
):
    """Functional context manager for a single keyed lock.

    Example:
        async with keyed_lock(f"nonce:{chain_id}:{address}", operation="broadcast"):
            nonce = await rpc.get_transaction_count(address)
            ...
    """
    async with KeyedLock([key], timeout=timeout, operation=operation):
        yield


def clear_locks() -> None:
    """Clear all locks (useful for testing)."""
    _locks.clear()
