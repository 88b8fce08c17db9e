# backend/moveout/domain/condition_cost.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Optional


class ConditionStatus(str, Enum):
    GOOD = "GOOD"
    DAMAGED = "DAMAGED"
    MISSING = "MISSING"
    REPAIRED = "REPAIRED"
    REPLACED = "REPLACED"


# Share of the reference (purchase) price charged per condition.
COST_RATIOS: dict[ConditionStatus, Decimal] = {
    ConditionStatus.GOOD: Decimal("0"),
    ConditionStatus.DAMAGED: Decimal("0.30"),
    ConditionStatus.REPAIRED: Decimal("0.20"),
    ConditionStatus.MISSING: Decimal("1"),
    ConditionStatus.REPLACED: Decimal("1"),
}


def parse_condition(raw: object) -> Optional[ConditionStatus]:
    """None for blank input; ValueError for an unknown status."""
    if raw is None:
        return None
    if isinstance(raw, ConditionStatus):
        return raw
    s = str(raw).strip().upper()
    if not s:
        return None
    return ConditionStatus(s)


def _round_money(v: Decimal) -> float:
    return float(v.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def default_cost(condition: object, reference_price: Optional[float]) -> Optional[float]:
    """
    Default damage/repair cost for an inspected item.

      GOOD              -> 0
      DAMAGED           -> round(ref * 0.30)
      REPAIRED          -> round(ref * 0.20)
      MISSING/REPLACED  -> ref

    Returns None when no condition is set or when a non-GOOD condition has no
    usable reference price; the operator must then enter the cost by hand.
    """
    status = parse_condition(condition)
    if status is None:
        return None
    if status is ConditionStatus.GOOD:
        return 0.0

    if reference_price is None:
        return None
    try:
        ref = Decimal(str(reference_price))
    except InvalidOperation:
        return None
    if not ref.is_finite() or ref <= 0:
        return None

    ratio = COST_RATIOS[status]
    if ratio == 1:
        return float(ref)
    return _round_money(ref * ratio)


def resolve_item_cost(
    *,
    condition: object,
    reference_price: Optional[float],
    manual_cost: Optional[float],
    current_cost: Optional[float],
    condition_changed: bool,
) -> Optional[float]:
    """
    Cost to submit with an item edit, or None to leave the stored cost alone.

    - a cost supplied with the edit is an operator override and wins
    - a condition change without a supplied cost resets to the default,
      or clears to 0 when there is no reference price to derive one from
    - any other edit (notes only) keeps the stored cost untouched
    """
    if manual_cost is not None:
        return float(manual_cost)

    status = parse_condition(condition)
    if status is ConditionStatus.GOOD:
        return 0.0

    if condition_changed:
        cost = default_cost(status, reference_price)
        return 0.0 if cost is None else cost

    if current_cost is None:
        # first assessment of an item that never had a cost
        return default_cost(status, reference_price)
    return None
