"""
Nested transaction bookkeeping.

Independent call sites sharing one connection may each wrap their work in
begin/commit. The ledger keeps a depth counter per connection key so only
the outermost begin/commit pair reaches the driver, while any rollback
aborts the whole transaction at once.
"""

import threading
from typing import Any, Callable, Dict, Hashable, Optional


class TransactionError(RuntimeError):
    """Raised when a transaction is used outside the thread that opened it."""
    pass


class TransactionLedger:
    """
    Thread-safe transaction depth counters keyed by connection.

    Depth is never negative and is non-zero exactly while a driver-level
    transaction is open. The thread that opened a transaction owns it until
    it is committed or rolled back.
    """

    def __init__(self):
        self._depths: Dict[Hashable, int] = {}
        self._owners: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def depth(self, key: Hashable) -> int:
        """Current nesting depth for a connection (0 when none is open)."""
        with self._lock:
            return self._depths.get(key, 0)

    def in_transaction(self, key: Hashable) -> bool:
        return self.depth(key) > 0

    def owner(self, key: Hashable) -> Optional[int]:
        """Thread ident owning the open transaction, if any."""
        with self._lock:
            return self._owners.get(key)

    def check_owner(self, key: Hashable) -> None:
        """
        Ensure the calling thread may use the connection.

        Raises:
            TransactionError: If another thread holds an open transaction
        """
        with self._lock:
            self._check_owner(key)

    def begin(self, key: Hashable, open_transaction: Callable[[], Any]) -> Any:
        """
        Enter a (possibly nested) transaction.

        Args:
            key: Connection key
            open_transaction: Starts the driver transaction; called only by
                the outermost begin

        Returns:
            Result of open_transaction, or None when joining an open one
        """
        with self._lock:
            self._check_owner(key)
            depth = self._depths.get(key, 0) + 1
            self._depths[key] = depth
            if depth > 1:
                return None
            self._owners[key] = threading.get_ident()

        try:
            return open_transaction()
        except BaseException:
            with self._lock:
                self._forget(key)
            raise

    def commit(self, key: Hashable, commit_transaction: Callable[[], Any]) -> Any:
        """
        Leave one level of transaction nesting.

        A commit without an open transaction is a no-op.

        Args:
            key: Connection key
            commit_transaction: Commits the driver transaction; called only
                when the outermost level is left

        Returns:
            Result of commit_transaction, or None
        """
        with self._lock:
            depth = self._depths.get(key, 0)
            if depth == 0:
                return None
            self._check_owner(key)

            depth -= 1
            if depth > 0:
                self._depths[key] = depth
                return None

            self._forget(key)
        return commit_transaction()

    def rollback(self, key: Hashable, rollback_transaction: Callable[[], Any]) -> Any:
        """
        Abort the transaction regardless of nesting depth.

        Outer callers that still believe they hold the transaction will
        find it closed. A rollback without an open transaction is a no-op.

        Returns:
            Result of rollback_transaction, or None
        """
        with self._lock:
            if self._depths.get(key, 0) == 0:
                return None
            self._check_owner(key)

            self._forget(key)
        return rollback_transaction()

    def clear(self, key: Optional[Hashable] = None) -> None:
        """Drop counters for one connection, or for all when key is None."""
        with self._lock:
            if key is None:
                self._depths.clear()
                self._owners.clear()
            else:
                self._forget(key)

    def _forget(self, key: Hashable) -> None:
        self._depths.pop(key, None)
        self._owners.pop(key, None)

    def _check_owner(self, key: Hashable) -> None:
        owner = self._owners.get(key)
        if owner is not None and owner != threading.get_ident():
            raise TransactionError(
                f"Connection {key} is in a transaction owned by another thread"
            )
