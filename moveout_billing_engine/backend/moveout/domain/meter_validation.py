# backend/moveout/domain/meter_validation.py
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional


class MeterErrorKind(str, Enum):
    INVALID_NUMBER = "InvalidNumber"
    NEGATIVE_INDEX = "NegativeIndex"
    BELOW_PREVIOUS = "BelowPrevious"
    NO_USAGE = "NoUsage"
    # pre-submit sweep only
    MISSING_READING = "MissingReading"
    NON_POSITIVE_INDEX = "NonPositiveIndex"


MESSAGES: dict[MeterErrorKind, str] = {
    MeterErrorKind.INVALID_NUMBER: "index is not a valid number",
    MeterErrorKind.NEGATIVE_INDEX: "index must be >= 0",
    MeterErrorKind.BELOW_PREVIOUS: "index must be greater than the previous index",
    MeterErrorKind.NO_USAGE: "index equals the previous index (no usage)",
    MeterErrorKind.MISSING_READING: "no index recorded",
    MeterErrorKind.NON_POSITIVE_INDEX: "index must be > 0",
}


@dataclass(frozen=True)
class ReadingCheck:
    current_index: Optional[float]
    previous_index: float
    error: Optional[MeterErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def usage(self) -> Optional[float]:
        if not self.ok or self.current_index is None:
            return None
        return float(self.current_index - self.previous_index)

    @property
    def message(self) -> Optional[str]:
        return MESSAGES.get(self.error) if self.error else None


def parse_index(text: Any) -> Optional[float]:
    if text is None:
        return None
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float)):
        v = float(text)
    else:
        s = str(text).strip()
        if not s:
            return None
        try:
            v = float(s)
        except ValueError:
            return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def validate_reading(current_index_text: Any, previous_index: Optional[float]) -> ReadingCheck:
    """
    Field-level check of a proposed meter index.

    previous=10: "10" -> NoUsage, "9" -> BelowPrevious, "-1" -> NegativeIndex,
    "10.5" -> ok with usage 0.5
    """
    prev = float(previous_index) if previous_index is not None else 0.0
    current = parse_index(current_index_text)

    if current is None:
        return ReadingCheck(current_index=None, previous_index=prev, error=MeterErrorKind.INVALID_NUMBER)
    if current < 0:
        return ReadingCheck(current_index=current, previous_index=prev, error=MeterErrorKind.NEGATIVE_INDEX)
    if current < prev:
        return ReadingCheck(current_index=current, previous_index=prev, error=MeterErrorKind.BELOW_PREVIOUS)
    if current == prev:
        return ReadingCheck(current_index=current, previous_index=prev, error=MeterErrorKind.NO_USAGE)
    return ReadingCheck(current_index=current, previous_index=prev)


@dataclass(frozen=True)
class SweepResult:
    checks: dict[str, ReadingCheck]
    missing: list[str]
    invalid: dict[str, MeterErrorKind]

    @property
    def ok(self) -> bool:
        return not self.missing and not self.invalid


def _is_blank(text: Any) -> bool:
    return text is None or (isinstance(text, str) and not text.strip())


def sweep_readings(meters: Iterable[Any], entries: Mapping[str, Any]) -> SweepResult:
    """
    Pre-submit sweep over every meter of the unit.

    `entries` maps meter id -> raw index text (or an object with `index_text`).
    Same rules as validate_reading, plus: every meter needs an entry and the
    index must be strictly positive.
    """
    checks: dict[str, ReadingCheck] = {}
    missing: list[str] = []
    invalid: dict[str, MeterErrorKind] = {}

    for m in meters:
        meter_id = str(getattr(m, "id"))
        raw = entries.get(meter_id)
        text = getattr(raw, "index_text", raw)

        if _is_blank(text):
            missing.append(meter_id)
            continue

        chk = validate_reading(text, getattr(m, "last_reading", None))
        checks[meter_id] = chk
        if not chk.ok:
            invalid[meter_id] = chk.error
        elif chk.current_index is None or chk.current_index <= 0:
            invalid[meter_id] = MeterErrorKind.NON_POSITIVE_INDEX

    return SweepResult(checks=checks, missing=missing, invalid=invalid)
