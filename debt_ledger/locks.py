import threading
from contextlib import contextmanager
from typing import Iterator


class CustomerLockRegistry:
    """One lock per customer; customers never contend with each other."""

    def __init__(self):
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, customer_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(customer_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[customer_id] = lock
            return lock

    @contextmanager
    def hold(self, customer_id: str) -> Iterator[None]:
        lock = self.lock_for(customer_id)
        with lock:
            yield

    @contextmanager
    def try_hold(self, customer_id: str) -> Iterator[bool]:
        """Yield True when the lock was taken without waiting, False when it is busy."""
        lock = self.lock_for(customer_id)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
