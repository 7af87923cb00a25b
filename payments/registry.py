"""In-process single-flight registry for payment verification.

Holds the gateway references currently being verified by this process so
that duplicate concurrent requests for the same reference are turned away
instead of racing. It is a local optimisation only: it is not shared across
processes and does not survive restarts. Correctness comes from the
database transaction and the one-order-per-cart constraint.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class VerificationRegistry:
    """Thread-safe set of keys with try-acquire semantics."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._held: set[str] = set()

    def try_acquire(self, key: str) -> bool:
        """Register `key`; False if it is already held."""
        with self._lock:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._held.discard(key)

    def is_held(self, key: str) -> bool:
        with self._lock:
            return key in self._held

    def __len__(self) -> int:
        with self._lock:
            return len(self._held)

    @contextmanager
    def claim(self, key: str) -> Iterator[bool]:
        """Yield whether `key` was acquired; release it on exit if so."""
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
