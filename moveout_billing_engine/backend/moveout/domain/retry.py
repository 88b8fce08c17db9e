# backend/moveout/domain/retry.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

log = logging.getLogger("moveout.retry")


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """
    Outcome of with_retry.

    When exhausted, `value` is the last value fn returned (best effort), or
    None if every attempt raised.
    """

    value: Optional[T]
    attempts: int
    exhausted: bool
    last_error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return not self.exhausted


def with_retry(
    fn: Callable[[], T],
    *,
    max_attempts: int,
    delay_seconds: float,
    accept: Optional[Callable[[T], bool]] = None,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    label: str = "retry",
) -> RetryResult[T]:
    """
    Bounded retry with a fixed delay between attempts.

    An attempt succeeds when fn returns without raising and `accept` (if given)
    approves the value. No sleep happens after the last attempt.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_value: Optional[T] = None
    last_error: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            value = fn()
        except retry_on as e:
            last_error = e
            log.info("%s attempt failed", label, extra={"attempt": attempt, "step": label})
        else:
            if accept is None or accept(value):
                return RetryResult(value=value, attempts=attempt, exhausted=False)
            last_value = value
            last_error = None

        if attempt < max_attempts:
            sleep(delay_seconds)

    log.warning("%s exhausted after %d attempts", label, max_attempts, extra={"step": label})
    return RetryResult(value=last_value, attempts=max_attempts, exhausted=True, last_error=last_error)
