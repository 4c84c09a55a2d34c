from dataclasses import dataclass


DEFAULT_USER_AGENT = "url-sizer/1.0 (+https://example.com; contact: sizer@example.com)"
DEFAULT_MAX_INCOMING_REQUESTS = 100


@dataclass(frozen=True)
class HandlerConfig:
    host: str = "127.0.0.1"
    port: int = 8080
    max_requests: int = DEFAULT_MAX_INCOMING_REQUESTS
    request_timeout: float = 15.0
    max_connections: int = 16
    user_agent: str = DEFAULT_USER_AGENT
    metrics_interval: float = 10.0
    prometheus_port: int = 8000
