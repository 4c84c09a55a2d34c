import threading
import time

import pytest

from sizerlib.errors import PayloadError
from sizerlib.handler import BatchHandler
from sizerlib.metrics import Metrics
from sizerlib.net import HttpClient
from sizerlib.types import FetchClientProtocol


class StubHttp(FetchClientProtocol):
    def __init__(self):
        self.calls: list[str] = []

    def fetch(self, url: str) -> int:
        self.calls.append(url)
        if not url:
            raise ValueError("empty URL")
        return len(url)


class BlockingHttp(FetchClientProtocol):
    def __init__(self):
        self.release = threading.Event()

    def fetch(self, url: str) -> int:
        self.release.wait(timeout=10.0)
        return 1


def body(data: bytes):
    return lambda: data


@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
def test_non_post_is_method_not_allowed(method: str, recording_log):
    http = StubHttp()
    h = BatchHandler(http_client=http, log_fn=recording_log)

    def read_body():
        raise AssertionError("body must not be read")

    resp = h.handle(method, read_body)
    assert resp.status == 405
    assert resp.body == b"Method Not Allowed\n"
    assert http.calls == []
    assert h.gate.in_use == 0


@pytest.mark.parametrize("exc", [PayloadError("truncated"), OSError("connection reset")])
def test_unreadable_body_is_bad_request(exc: Exception, recording_log):
    http = StubHttp()
    m = Metrics()
    h = BatchHandler(http_client=http, log_fn=recording_log, metrics=m)

    def read_body():
        raise exc

    resp = h.handle("POST", read_body)
    assert resp.status == 400
    assert resp.body == b"Bad Request\n"
    assert http.calls == []
    totals, _ = m.snapshot()
    assert totals.batches == 0 and totals.rejected == 0


def test_post_reports_sizes_and_drops_failures(recording_log):
    http = StubHttp()
    h = BatchHandler(http_client=http, log_fn=recording_log)
    resp = h.handle("POST", body(b"abc\n\nabcdef"))

    assert resp.status == 200
    assert resp.content_type == "text/plain"
    assert sorted(resp.sizes) == [3, 6]
    assert sorted(resp.body.decode().splitlines()) == ["3", "6"]
    assert len(recording_log.lines) == 1
    assert h.gate.in_use == 0


def test_all_failures_is_still_success(recording_log):
    h = BatchHandler(http_client=StubHttp(), log_fn=recording_log)
    resp = h.handle("POST", body(b"\n\n"))
    assert resp.status == 200
    assert resp.body == b""
    assert resp.sizes == []
    assert len(recording_log.lines) == 3


def test_zero_capacity_rejects_everything(recording_log):
    http = StubHttp()
    h = BatchHandler(http_client=http, log_fn=recording_log, max_requests=0)
    resp = h.handle("POST", body(b"abc"))
    assert resp.status == 503
    assert resp.body == b"Service Unavailable\n"
    assert http.calls == []


def test_admission_under_load(recording_log):
    limit = 5
    http = BlockingHttp()
    m = Metrics()
    h = BatchHandler(http_client=http, log_fn=recording_log, max_requests=limit, metrics=m)
    statuses: list[int] = []
    lock = threading.Lock()
    start = threading.Barrier(limit * 2)

    def submit():
        start.wait()
        resp = h.handle("POST", body(b"https://example.com/"))
        with lock:
            statuses.append(resp.status)

    threads = [threading.Thread(target=submit) for _ in range(limit * 2)]
    for t in threads:
        t.start()

    # Admitted batches block in fetch until released, so rejections arrive first.
    deadline = time.monotonic() + 5.0
    while len(statuses) < limit and time.monotonic() < deadline:
        time.sleep(0.01)
    assert statuses == [503] * limit
    assert h.gate.in_use == limit

    http.release.set()
    for t in threads:
        t.join(timeout=5.0)

    assert statuses.count(503) == limit
    assert statuses.count(200) == limit
    assert h.gate.in_use == 0
    totals, _ = m.snapshot()
    assert totals.batches == limit
    assert totals.rejected == limit


def test_slot_released_when_engine_fails(recording_log, monkeypatch: pytest.MonkeyPatch):
    h = BatchHandler(http_client=StubHttp(), log_fn=recording_log, max_requests=1)

    def broken_fetch(urls):
        raise RuntimeError("engine exploded")

    monkeypatch.setattr(h.engine, "fetch", broken_fetch)
    with pytest.raises(RuntimeError):
        h.handle("POST", body(b"abc"))
    assert h.gate.in_use == 0
    monkeypatch.undo()

    assert h.handle("POST", body(b"abc")).status == 200


def test_partial_failure_with_client_timeout(target_server, recording_log):
    h = BatchHandler(http_client=HttpClient(request_timeout=0.5), log_fn=recording_log)
    urls = [
        target_server.url(100, 0.1),  # in time
        target_server.url(200, 1.5),  # too slow
        target_server.url(300, 0.3),  # in time
        target_server.url(400, 0.05),  # in time
        target_server.url(500, 1.5),  # too slow
    ]
    resp = h.handle("POST", body("\n".join(urls).encode()))

    assert resp.status == 200
    assert sorted(resp.sizes) == [100, 300, 400]
    assert len(recording_log.lines) == 2
    assert sum("length=200" in line for line in recording_log.lines) == 1
    assert sum("length=500" in line for line in recording_log.lines) == 1


def test_defaults():
    h = BatchHandler()
    assert isinstance(h.http, HttpClient)
    assert h.gate.capacity == 100
    assert callable(h.log)
