from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, TypeVar

from ..core.constants import DEFAULT_COLLABORATOR_TIMEOUT_SECONDS
from ..core.exceptions import CollaboratorTimeout

T = TypeVar("T")


class BoundedCaller:
    """Run collaborator lookups on a small pool, bounded by a timeout."""

    def __init__(self, timeout_seconds: float = DEFAULT_COLLABORATOR_TIMEOUT_SECONDS, *, max_workers: int = 4):
        self._timeout = float(timeout_seconds)
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="collaborator")

    def call(self, description: str, fn: Callable[..., T], *args) -> T:
        future = self._pool.submit(fn, *args)
        try:
            return future.result(timeout=self._timeout)
        except FutureTimeout:
            future.cancel()
            raise CollaboratorTimeout(f"{description} did not answer within {self._timeout:g}s")

    def shutdown(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)
