from dataclasses import dataclass, field
from typing import List, Protocol


class FetchClientProtocol(Protocol):
    def fetch(self, url: str) -> int: ...


class LogFn(Protocol):
    def __call__(self, msg: str, *args: object) -> None: ...


@dataclass(frozen=True)
class BatchResponse:
    status: int
    body: bytes
    content_type: str = "text/plain; charset=utf-8"
    sizes: List[int] = field(default_factory=list)
