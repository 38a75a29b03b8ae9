"""Utility modules for NullWallet."""

from nullwallet.utils.locks import KeyedLock, LockTimeoutError, clear_locks, keyed_lock

__all__ = ["KeyedLock", "LockTimeoutError", "clear_locks", "keyed_lock"]
