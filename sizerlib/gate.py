import threading
from contextlib import contextmanager
from typing import Iterator

from .errors import AdmissionRejected


class AdmissionGate:
    """Caps concurrent batches without queuing: callers over the cap fail fast."""

    def __init__(self, capacity: int):
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._in_use = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        with self._lock:
            return self._in_use

    def acquire(self) -> bool:
        with self._lock:
            if self._in_use >= self._capacity:
                return False
            self._in_use += 1
            return True

    def release(self) -> None:
        with self._lock:
            if self._in_use == 0:
                raise RuntimeError("release() called without a matching acquire()")
            self._in_use -= 1

    @contextmanager
    def slot(self) -> Iterator[None]:
        if not self.acquire():
            raise AdmissionRejected(f"all {self._capacity} slots in use")
        try:
            yield
        finally:
            self.release()
