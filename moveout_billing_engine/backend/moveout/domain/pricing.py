# backend/moveout/domain/pricing.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

# Sanity bounds for live utility estimates.
MAX_ESTIMATE_USAGE = 1_000_000.0
MAX_ESTIMATE_PRICE = 100_000_000.0


def _field(tier: Any, name: str) -> Any:
    if isinstance(tier, dict):
        return tier.get(name)
    return getattr(tier, name, None)


def _to_float(v: Any) -> Optional[float]:
    if v is None:
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class TierCharge:
    tier_order: int
    quantity: float
    unit_price: float

    @property
    def amount(self) -> float:
        return float(self.quantity * self.unit_price)

    def as_dict(self) -> dict:
        return {
            "tier_order": self.tier_order,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "amount": self.amount,
        }


def sorted_tiers(tiers: Iterable[Any]) -> list[Any]:
    return sorted(list(tiers or []), key=lambda t: int(_field(t, "tier_order") or 0))


def tier_breakdown(usage: float, tiers: Iterable[Any]) -> list[TierCharge]:
    """
    Progressive (block) tariff split of `usage` across the tier table.

    Tiers are applied in tier_order. A tier without max_quantity absorbs all
    remaining usage and ends the table.
    """
    u = float(usage)
    if u < 0:
        raise ValueError("usage must be non-negative")

    out: list[TierCharge] = []
    previous_max = 0.0
    for tier in sorted_tiers(tiers):
        if previous_max >= u:
            break

        max_qty = _to_float(_field(tier, "max_quantity"))
        unit_price = _to_float(_field(tier, "unit_price")) or 0.0

        effective_max = u if max_qty is None else min(u, max_qty)
        applicable = max(0.0, effective_max - previous_max)
        # the bound only moves forward: a tier whose max sits below an earlier
        # one charges nothing and does not pull previous_max back
        if applicable > 0:
            out.append(
                TierCharge(
                    tier_order=int(_field(tier, "tier_order") or 0),
                    quantity=applicable,
                    unit_price=unit_price,
                )
            )
            previous_max = effective_max

        if max_qty is None:
            break

    return out


def calculate_price(usage: float, tiers: Iterable[Any]) -> float:
    """
    Price for `usage` under an ordered tier table; 0 when no tiers exist.

    tiers [{1, max 100, 10}, {2, unbounded, 15}] and usage 150 -> 100*10 + 50*15 = 2500
    """
    return float(sum(c.amount for c in tier_breakdown(usage, tiers)))


def estimate_usage_charge(usage: float, tiers: Iterable[Any]) -> Optional[float]:
    """
    Live estimate for a meter's usage, or None when the usage or the result is
    outside the plausible range (typo guard for the preview).
    """
    u = _to_float(usage)
    if u is None or not (0 < u < MAX_ESTIMATE_USAGE):
        return None
    price = calculate_price(u, tiers)
    if not (0 < price < MAX_ESTIMATE_PRICE):
        return None
    return price
