"""Normalised provider results, the provider protocols the orchestrator relies on,
and the wall-clock deadline every provider call runs under."""
from __future__ import annotations

import concurrent.futures
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, TypeVar

from unfoldy.providers.errors import ProviderError

T = TypeVar("T")


@dataclass(frozen=True)
class TextResult:
    text: str
    provider: str


@dataclass(frozen=True)
class ImageResult:
    """``image_ref`` is a remote URL or a ``data:image/...;base64,`` URI."""
    image_ref: str
    provider: str


class TextProvider(Protocol):
    name: str

    def generate(self, prompt: str, timeout: float) -> TextResult: ...


class ImageProvider(Protocol):
    name: str

    def generate(self, prompt: str, timeout: float) -> ImageResult: ...


def run_with_deadline(
    call: Callable[[], T],
    timeout: float,
    provider: str,
    on_timeout: Optional[Callable[[], None]] = None,
) -> T:
    """Run *call* on a worker thread and wait at most *timeout* seconds in total.

    HTTP client timeouts only bound each connect or socket read, so a server
    trickling bytes can keep a request alive far past them.  When the deadline
    passes, *on_timeout* is invoked to abort the request and a TIMEOUT
    ``ProviderError`` is raised; the worker is abandoned, not joined.
    """
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{provider}-call")
    try:
        future = pool.submit(call)
        done, _ = concurrent.futures.wait([future], timeout=timeout)
        if not done:
            future.cancel()
            if on_timeout is not None:
                on_timeout()
            raise ProviderError.timeout(provider, timeout)
        return future.result()
    finally:
        pool.shutdown(wait=False)
