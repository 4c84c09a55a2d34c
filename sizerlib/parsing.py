from typing import Iterable, List


def split_batch(payload: bytes) -> List[str]:
    # Empty lines stay in the batch and simply fail to fetch.
    return payload.decode("utf-8", errors="replace").split("\n")


def format_sizes(sizes: Iterable[int]) -> bytes:
    return "".join(f"{size}\n" for size in sizes).encode("ascii")
