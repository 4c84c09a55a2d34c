import threading
import time
from dataclasses import dataclass
from typing import Optional

from .gate import AdmissionGate


@dataclass
class Totals:
    batches: int = 0
    rejected: int = 0
    fetches: int = 0
    errors: int = 0
    bytes: int = 0
    fetch_ms_sum: float = 0.0


class Metrics:
    def __init__(self):
        self._totals = Totals()
        self._lock = threading.Lock()
        self._start = time.time()

    def record_batch(self, admitted: bool) -> None:
        with self._lock:
            if admitted:
                self._totals.batches += 1
            else:
                self._totals.rejected += 1

    def record_fetch(self, ok: bool, bytes_read: int, fetch_ms: float) -> None:
        with self._lock:
            self._totals.fetches += 1
            self._totals.bytes += max(0, bytes_read)
            if not ok:
                self._totals.errors += 1
            self._totals.fetch_ms_sum += fetch_ms

    def snapshot(self) -> tuple[Totals, float]:
        with self._lock:
            t = Totals(
                batches=self._totals.batches,
                rejected=self._totals.rejected,
                fetches=self._totals.fetches,
                errors=self._totals.errors,
                bytes=self._totals.bytes,
                fetch_ms_sum=self._totals.fetch_ms_sum,
            )
        elapsed = max(1e-6, time.time() - self._start)
        return t, elapsed


class StatsLogger(threading.Thread):
    """Logs what happened since the previous tick, plus batches currently in flight."""

    daemon = True

    def __init__(self, metrics: Metrics, interval_s: float, log_fn, gate: Optional[AdmissionGate] = None):
        super().__init__(name="stats-logger")
        self._metrics = metrics
        self._interval = max(0.5, interval_s)
        self._log = log_fn
        self._gate = gate
        self._stop_event = threading.Event()
        self._previous = Totals()

    def report(self) -> None:
        totals, _elapsed = self._metrics.snapshot()
        prev = self._previous
        self._previous = totals
        fetches = totals.fetches - prev.fetches
        avg_ms = (totals.fetch_ms_sum - prev.fetch_ms_sum) / max(1, fetches)
        in_flight = self._gate.in_use if self._gate is not None else 0
        self._log(
            "Last %.1fs: batches=%d, rejected=%d, in_flight=%d, fetches=%d, errors=%d, MB=%.2f, avg_fetch_ms=%.1f",
            self._interval,
            totals.batches - prev.batches,
            totals.rejected - prev.rejected,
            in_flight,
            fetches,
            totals.errors - prev.errors,
            (totals.bytes - prev.bytes) / (1024 * 1024),
            avg_ms,
        )

    def run(self) -> None:
        while not self._stop_event.wait(self._interval):
            self.report()

    def stop(self) -> None:
        self._stop_event.set()
