import logging
import threading
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from .gate import AdmissionGate
from .metrics import Metrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(
        self,
        metrics: Metrics,
        gate: Optional[AdmissionGate] = None,
        port: int = 8000,
        registry: CollectorRegistry = REGISTRY,
    ) -> None:
        self.metrics = metrics
        self.gate = gate
        self.port = port
        self.registry = registry
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.batches_total = Counter('sizer_batches_total', 'Total number of admitted batches', registry=registry)
        self.rejected_total = Counter('sizer_rejected_total', 'Total number of batches rejected by the admission gate', registry=registry)
        self.fetches_total = Counter('sizer_fetches_total', 'Total number of URL fetches attempted', registry=registry)
        self.errors_total = Counter('sizer_fetch_errors_total', 'Total number of failed URL fetches', registry=registry)
        self.bytes_total = Counter('sizer_bytes_total', 'Total number of body bytes downloaded', registry=registry)
        self.batches_in_flight = Gauge('sizer_batches_in_flight', 'Batches currently holding an admission slot', registry=registry)
        self.avg_fetch_duration_seconds = Gauge('sizer_avg_fetch_duration_seconds', 'Average fetch duration in seconds', registry=registry)

        self._last = {"batches": 0, "rejected": 0, "fetches": 0, "errors": 0, "bytes": 0}

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self._update_metrics()
            self._stop_event.wait(5.0)

    def _update_metrics(self) -> None:
        totals, _elapsed = self.metrics.snapshot()

        counters = {
            "batches": (totals.batches, self.batches_total),
            "rejected": (totals.rejected, self.rejected_total),
            "fetches": (totals.fetches, self.fetches_total),
            "errors": (totals.errors, self.errors_total),
            "bytes": (totals.bytes, self.bytes_total),
        }
        for name, (value, counter) in counters.items():
            delta = value - self._last[name]
            if delta > 0:
                counter.inc(delta)
            self._last[name] = value

        if self.gate is not None:
            self.batches_in_flight.set(self.gate.in_use)

        if totals.fetches > 0:
            avg_fetch_ms = totals.fetch_ms_sum / totals.fetches
            self.avg_fetch_duration_seconds.set(avg_fetch_ms / 1000.0)

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
