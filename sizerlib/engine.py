import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, Optional, Sequence

from .metrics import Metrics
from .types import FetchClientProtocol, LogFn


logger = logging.getLogger(__name__)

_DONE = object()


class FetchEngine:
    """Fans a batch out to one fetch task per URL and fans the sizes back in.

    Sizes come out in completion order. The output iterator ends only after
    every launched task has finished, successfully or not.
    """

    def __init__(self, http_client: FetchClientProtocol, log_fn: LogFn, metrics: Optional[Metrics] = None):
        self.http = http_client
        self.log = log_fn
        self.metrics = metrics

    def _fetch_one(self, url: str, results: "queue.Queue[object]") -> None:
        t0 = time.perf_counter()
        try:
            size = self.http.fetch(url)
        except Exception as exc:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            self.log("Fetch failed for %r: %s", url, exc)
            if self.metrics:
                self.metrics.record_fetch(False, 0, dt_ms)
            return
        dt_ms = (time.perf_counter() - t0) * 1000.0
        if self.metrics:
            self.metrics.record_fetch(True, size, dt_ms)
        results.put(size)

    def _close_when_done(self, executor: ThreadPoolExecutor, results: "queue.Queue[object]") -> None:
        # shutdown(wait=True) is the join barrier for every submitted task.
        executor.shutdown(wait=True)
        results.put(_DONE)

    @staticmethod
    def _drain(results: "queue.Queue[object]") -> Iterator[int]:
        while True:
            item = results.get()
            if item is _DONE:
                return
            yield item

    def fetch(self, urls: Sequence[str]) -> Iterator[int]:
        results: "queue.Queue[object]" = queue.Queue()
        if not urls:
            results.put(_DONE)
            return self._drain(results)
        # One worker per URL, no cap on the fan-out.
        executor = ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix="fetch")
        for url in urls:
            executor.submit(self._fetch_one, url, results)
        joiner = threading.Thread(
            target=self._close_when_done,
            args=(executor, results),
            name="fetch-join",
            daemon=True,
        )
        joiner.start()
        logger.debug("Started %d fetch tasks", len(urls))
        return self._drain(results)
