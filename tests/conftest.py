import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlencode, urlparse

import pytest


class _TargetHandler(BaseHTTPRequestHandler):
    """Serves `length` spaces after sleeping `timeout` seconds, with an optional `status`.

    `/redirect?to=<url>` answers 301 pointing at `to`; `/loop` redirects to itself.
    """

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        query = parse_qs(parsed.query)
        if parsed.path in ("/redirect", "/loop"):
            self.send_response(301)
            self.send_header("Location", query["to"][0] if parsed.path == "/redirect" else "/loop")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return
        length = int(query.get("length", ["0"])[0])
        delay = float(query.get("timeout", ["0"])[0])
        status = int(query.get("status", ["200"])[0])
        time.sleep(delay)
        body = b" " * length
        try:
            self.send_response(status)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except (BrokenPipeError, ConnectionResetError):
            # the client gave up waiting
            pass

    def log_message(self, format, *args) -> None:
        pass


class TargetServer:
    def __init__(self):
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), _TargetHandler)
        self.httpd.daemon_threads = True
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def base_url(self) -> str:
        host, port = self.httpd.server_address[:2]
        return f"http://{host}:{port}/"

    def url(self, length: int, timeout: float = 0.0, status: int = 200) -> str:
        query = {"length": length, "timeout": timeout}
        if status != 200:
            query["status"] = status
        return self.base_url + "?" + urlencode(query)

    def redirect(self, to: str) -> str:
        return self.base_url + "redirect?" + urlencode({"to": to})


class RecordingLog:
    def __init__(self):
        self.lines: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, msg: str, *args: object) -> None:
        with self._lock:
            self.lines.append(msg % args if args else msg)


@pytest.fixture
def target_server():
    server = TargetServer()
    server.thread.start()
    yield server
    server.httpd.shutdown()
    server.httpd.server_close()


@pytest.fixture
def recording_log():
    return RecordingLog()
