# backend/moveout/domain/completion_gates.py
from __future__ import annotations

from typing import Any, Iterable, Mapping

from .errors import ErrorKind, PreconditionFailed
from .meter_validation import sweep_readings


def _condition(item: Any) -> str:
    return str(getattr(item, "condition_status", None) or "").strip().upper()


def _cost(item: Any) -> float:
    c = getattr(item, "cost", None)
    try:
        return float(c) if c is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def assert_can_complete(
    items: Iterable[Any],
    meters: Iterable[Any],
    entries: Mapping[str, Any],
    outstanding_errors: Mapping[str, Any],
) -> None:
    """
    Completion gates, checked in order; the first failing gate raises.

      (a) every item has a condition           -> ItemsMissingStatus
      (b) every non-GOOD item has cost > 0     -> ItemsInvalidCost
      (c) no live meter validation errors      -> MeterReadingInvalid
      (d) every meter has a usable index       -> MetersMissingReading / MetersInvalidReading
    """
    items = list(items or [])
    meters = list(meters or [])

    missing_status = [str(it.id) for it in items if not _condition(it)]
    if missing_status:
        raise PreconditionFailed(
            ErrorKind.ITEMS_MISSING_STATUS,
            f"{len(missing_status)} item(s) have no condition status",
            details={"item_ids": missing_status},
        )

    bad_cost = [str(it.id) for it in items if _condition(it) != "GOOD" and _cost(it) <= 0]
    if bad_cost:
        raise PreconditionFailed(
            ErrorKind.ITEMS_INVALID_COST,
            f"{len(bad_cost)} damaged/missing item(s) have no cost",
            details={"item_ids": bad_cost},
        )

    meter_ids = {str(m.id) for m in meters}
    outstanding = {mid: str(getattr(k, "value", k)) for mid, k in (outstanding_errors or {}).items() if mid in meter_ids}
    if outstanding:
        raise PreconditionFailed(
            ErrorKind.METER_READING_INVALID,
            "meter readings have unresolved validation errors",
            details={"meters": outstanding},
        )

    sweep = sweep_readings(meters, entries or {})
    if sweep.missing:
        raise PreconditionFailed(
            ErrorKind.METERS_MISSING_READING,
            f"{len(sweep.missing)} meter(s) have no reading",
            details={"meter_ids": sweep.missing},
        )
    if sweep.invalid:
        raise PreconditionFailed(
            ErrorKind.METERS_INVALID_READING,
            f"{len(sweep.invalid)} meter(s) have an invalid reading",
            details={"meters": {mid: k.value for mid, k in sweep.invalid.items()}},
        )
