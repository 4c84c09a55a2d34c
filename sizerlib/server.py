import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional

from .errors import PayloadError
from .handler import BatchHandler


logger = logging.getLogger(__name__)

_MAX_LINE = 65536


class BatchRequestHandler(BaseHTTPRequestHandler):
    server: "BatchServer"
    protocol_version = "HTTP/1.1"

    def _read_chunked(self) -> bytes:
        chunks = []
        while True:
            size_line = self.rfile.readline(_MAX_LINE + 1)
            if len(size_line) > _MAX_LINE or not size_line.endswith(b"\n"):
                raise PayloadError("truncated or oversized chunk size line")
            # chunk extensions after ';' are ignored
            raw_size = size_line.split(b";", 1)[0].strip()
            try:
                size = int(raw_size, 16)
            except ValueError as exc:
                raise PayloadError(f"invalid chunk size {raw_size!r}") from exc
            if size < 0:
                raise PayloadError(f"invalid chunk size {raw_size!r}")
            if size == 0:
                break
            data = self.rfile.read(size)
            if len(data) != size:
                raise PayloadError(f"expected {size} chunk bytes, got {len(data)}")
            chunks.append(data)
            if self.rfile.readline(_MAX_LINE + 1) not in (b"\r\n", b"\n"):
                raise PayloadError("chunk not terminated by CRLF")
        # trailer section ends with an empty line
        while True:
            line = self.rfile.readline(_MAX_LINE + 1)
            if not line.endswith(b"\n"):
                raise PayloadError("truncated chunked trailer")
            if line in (b"\r\n", b"\n"):
                return b"".join(chunks)

    def _read_body(self) -> bytes:
        transfer_encoding = self.headers.get("Transfer-Encoding")
        if transfer_encoding is not None:
            codings = [c.strip().lower() for c in transfer_encoding.split(",")]
            if codings != ["chunked"]:
                raise PayloadError(f"unsupported Transfer-Encoding {transfer_encoding!r}")
            return self._read_chunked()

        raw_length = self.headers.get("Content-Length")
        if raw_length is None:
            # no framing headers means no body
            return b""
        try:
            length = int(raw_length)
        except ValueError as exc:
            raise PayloadError(f"invalid Content-Length {raw_length!r}") from exc
        if length < 0:
            raise PayloadError(f"invalid Content-Length {raw_length!r}")
        data = self.rfile.read(length)
        if len(data) != length:
            raise PayloadError(f"expected {length} bytes, got {len(data)}")
        return data

    def _dispatch(self) -> None:
        response = self.server.batch_handler.handle(self.command, self._read_body)
        self.send_response(response.status)
        self.send_header("Content-Type", response.content_type)
        self.send_header("Content-Length", str(len(response.body)))
        if response.status >= 400:
            # The request body may be unread; don't reuse the connection.
            self.send_header("Connection", "close")
            self.close_connection = True
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(response.body)

    do_GET = do_HEAD = do_POST = do_PUT = do_PATCH = do_DELETE = do_OPTIONS = _dispatch

    def log_message(self, format: str, *args) -> None:
        logger.debug("%s - " + format, self.address_string(), *args)


class BatchServer(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 128

    def __init__(self, address: tuple[str, int], batch_handler: BatchHandler):
        super().__init__(address, BatchRequestHandler)
        self.batch_handler = batch_handler
        self._thread: Optional[threading.Thread] = None

    @property
    def url(self) -> str:
        host, port = self.server_address[:2]
        return f"http://{host}:{port}"

    def start(self) -> None:
        self._thread = threading.Thread(target=self.serve_forever, name="batch-server", daemon=True)
        self._thread.start()
        logger.info("Serving batches on %s", self.url)

    def stop(self) -> None:
        self.shutdown()
        self.server_close()
        if self._thread:
            self._thread.join(timeout=2.0)


def make_server(batch_handler: BatchHandler, host: str = "127.0.0.1", port: int = 8080) -> BatchServer:
    return BatchServer((host, port), batch_handler)
