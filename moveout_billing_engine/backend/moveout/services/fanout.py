from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

from ..config import settings

T = TypeVar("T")
R = TypeVar("R")

log = logging.getLogger("moveout.fanout")


@dataclass(frozen=True)
class FanoutResult(Generic[T, R]):
    key: T
    value: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def run_all(
    fn: Callable[[T], R],
    keys: Sequence[T],
    *,
    max_workers: Optional[int] = None,
    label: str = "fanout",
) -> list[FanoutResult[T, R]]:
    """
    Issue fn(key) for every key concurrently and wait for all of them.

    A failing call never cancels the others; its exception is captured on the
    result. Results come back in the order of `keys`.
    """
    if not keys:
        return []

    workers = max(1, min(int(max_workers or settings.fanout_max_workers), len(keys)))
    results: dict[int, FanoutResult[T, R]] = {}

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(fn, key): i for i, key in enumerate(keys)}
        for future in as_completed(futures):
            i = futures[future]
            try:
                results[i] = FanoutResult(key=keys[i], value=future.result())
            except Exception as e:
                log.info("%s call failed: %s", label, e, extra={"step": label})
                results[i] = FanoutResult(key=keys[i], error=e)

    return [results[i] for i in range(len(keys))]


def failures(results: Sequence[FanoutResult[Any, Any]]) -> list[FanoutResult[Any, Any]]:
    return [r for r in results if not r.ok]
