"""The "handle batch" operation.

A batch is a POSTed text body holding one URL per line. Each URL is fetched
concurrently and the response lists the byte length of every document that
was fetched, one per line, in completion order. Failed fetches are logged and
left out; they never fail the batch.
"""
import logging
from http import HTTPStatus
from typing import Callable, Optional

from .config import DEFAULT_MAX_INCOMING_REQUESTS
from .engine import FetchEngine
from .engine import logger as engine_logger
from .errors import AdmissionRejected, PayloadError
from .gate import AdmissionGate
from .metrics import Metrics
from .net import HttpClient
from .parsing import format_sizes, split_batch
from .types import BatchResponse, FetchClientProtocol, LogFn


logger = logging.getLogger(__name__)


def _error(status: HTTPStatus) -> BatchResponse:
    return BatchResponse(status=status.value, body=f"{status.phrase}\n".encode("ascii"))


class BatchHandler:
    def __init__(
        self,
        http_client: FetchClientProtocol | None = None,
        log_fn: LogFn | None = None,
        max_requests: int = DEFAULT_MAX_INCOMING_REQUESTS,
        metrics: Optional[Metrics] = None,
    ):
        self.http = http_client or HttpClient()
        self.log = log_fn or engine_logger.warning
        self.gate = AdmissionGate(max_requests)
        self.metrics = metrics
        self.engine = FetchEngine(self.http, self.log, metrics)

    def handle(self, method: str, read_body: Callable[[], bytes]) -> BatchResponse:
        if method != "POST":
            return _error(HTTPStatus.METHOD_NOT_ALLOWED)

        try:
            payload = read_body()
        except (PayloadError, OSError) as exc:
            logger.debug("Unreadable batch payload: %s", exc)
            return _error(HTTPStatus.BAD_REQUEST)

        try:
            with self.gate.slot():
                if self.metrics:
                    self.metrics.record_batch(True)
                urls = split_batch(payload)
                logger.debug("Batch admitted: %d URLs", len(urls))
                sizes = list(self.engine.fetch(urls))
        except AdmissionRejected:
            if self.metrics:
                self.metrics.record_batch(False)
            logger.debug("Batch rejected: %d/%d slots in use", self.gate.in_use, self.gate.capacity)
            return _error(HTTPStatus.SERVICE_UNAVAILABLE)

        logger.debug("Batch finished: %d of %d URLs fetched", len(sizes), len(urls))
        return BatchResponse(
            status=HTTPStatus.OK.value,
            body=format_sizes(sizes),
            content_type="text/plain",
            sizes=sizes,
        )
