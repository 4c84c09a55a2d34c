import urllib3
from urllib3 import exceptions as urllib3_exc

from .config import DEFAULT_USER_AGENT
from .errors import FetchError


class HttpClient:
    """Default fetch capability: GET the URL, read the whole body, return its length.

    The underlying PoolManager is thread-safe, so one client is shared by every
    fetch task of every batch.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, request_timeout: float = 15.0, max_connections: int = 16):
        self.user_agent = user_agent
        self.timeout = urllib3.Timeout(connect=min(5.0, request_timeout), read=request_timeout)
        # Follow redirects, never retry a failed attempt.
        self.retries = urllib3.Retry(total=None, connect=0, read=0, status=0, other=0, redirect=10)
        self.http = urllib3.PoolManager(
            num_pools=max(8, max_connections),
            maxsize=max_connections,
            headers={
                "User-Agent": user_agent,
                "Accept": "*/*",
                "Accept-Encoding": "gzip, deflate",
            },
            retries=self.retries,
        )

    def _request_bytes(self, url: str) -> tuple[int, bytes]:
        try:
            response = self.http.request(
                "GET",
                url,
                timeout=self.timeout,
                retries=self.retries,
                preload_content=True,
            )
        except urllib3_exc.HTTPError as exc:
            raise FetchError(url, str(exc) or type(exc).__name__) from exc
        return response.status, response.data or b""

    def fetch(self, url: str) -> int:
        status, body = self._request_bytes(url)
        if not 200 <= status < 300:
            raise FetchError(url, f"unexpected status {status}")
        return len(body)
