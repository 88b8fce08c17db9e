# backend/moveout/domain/reconciliation.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

DAMAGE_SERVICE = "ASSET_DAMAGE"
UTILITY_SERVICES = ("WATER", "ELECTRIC")
INSPECTION_REF_TYPE = "ASSET_INSPECTION"

SOURCE_INVOICE_LINES = "invoice_lines"
SOURCE_UTILITY_INVOICES = "utility_invoices"
SOURCE_ESTIMATE = "estimate"
SOURCE_NONE = "none"

# Utility sources that come from persisted invoices (polling can stop).
SETTLED_SOURCES = (SOURCE_INVOICE_LINES, SOURCE_UTILITY_INVOICES)


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _money(v: Any) -> float:
    try:
        return float(v or 0.0)
    except (TypeError, ValueError):
        return 0.0


def _service(line: Any) -> str:
    return str(_get(line, "service_code") or "").strip().upper()


def line_belongs_to_inspection(line: Any, *, inspection_id: str, marker: str) -> bool:
    """
    True when the line was produced by this inspection.

    An ASSET_INSPECTION reference decides on its own, for or against. Any other
    reference (the finance service tags utility lines WATER_ELECTRIC_INVOICE)
    says nothing about the inspection, so the description marker decides.
    """
    ref_type = str(_get(line, "external_ref_type") or "").upper()
    ref_id = _get(line, "external_ref_id")
    if ref_type == INSPECTION_REF_TYPE and ref_id:
        return str(ref_id) == str(inspection_id)
    desc = str(_get(line, "description") or "")
    return bool(marker) and marker in desc


def marked_utility_lines(lines: Iterable[Any], *, inspection_id: str, marker: str) -> list[Any]:
    return [
        ln
        for ln in (lines or [])
        if _service(ln) in UTILITY_SERVICES
        and line_belongs_to_inspection(ln, inspection_id=inspection_id, marker=marker)
    ]


def select_inspection_utility_invoices(
    invoices: Iterable[Any],
    *,
    inspection_id: str,
    marker: str,
    cycle_id: Optional[str] = None,
) -> list[Any]:
    """
    Utility invoices of the unit that carry at least one line from this
    inspection, de-duplicated by id. When a cycle is known and some invoices
    belong to it, only those are kept.
    """
    seen: set[str] = set()
    picked: list[Any] = []
    for inv in invoices or []:
        inv_id = str(_get(inv, "id") or "")
        if inv_id and inv_id in seen:
            continue
        if not marked_utility_lines(_get(inv, "lines") or [], inspection_id=inspection_id, marker=marker):
            continue
        if inv_id:
            seen.add(inv_id)
        picked.append(inv)

    if cycle_id:
        in_cycle = [inv for inv in picked if str(_get(inv, "cycle_id") or "") == str(cycle_id)]
        if in_cycle:
            return in_cycle
    return picked


@dataclass(frozen=True)
class ReconciledTotals:
    damage_total: float
    utility_total: float
    utility_source: str
    damage_source: str
    utility_invoice_ids: list[str] = field(default_factory=list)

    @property
    def total_payable(self) -> float:
        return float(self.damage_total + self.utility_total)

    @property
    def settled(self) -> bool:
        return self.utility_source in SETTLED_SOURCES

    def as_dict(self) -> dict:
        return {
            "damage_total": self.damage_total,
            "utility_total": self.utility_total,
            "total_payable": self.total_payable,
            "utility_source": self.utility_source,
            "damage_source": self.damage_source,
            "utility_invoice_ids": list(self.utility_invoice_ids),
            "settled": self.settled,
        }


def reconcile_totals(
    *,
    inspection_id: str,
    marker: str,
    damage_invoice: Any = None,
    utility_invoices: Iterable[Any] = (),
    estimates: Iterable[Optional[float]] = (),
    item_costs_total: float = 0.0,
    stored_damage_total: Optional[float] = None,
    cycle_id: Optional[str] = None,
) -> ReconciledTotals:
    """
    Combine damage and utility charges for one inspection into a single
    payable total.

    Utility sources, first non-zero wins:
      1. WATER/ELECTRIC lines of the linked invoice produced by this inspection
      2. lines from this inspection on separately fetched utility invoices
      3. live tier estimates
    Unrelated utility lines never count.
    """
    # ---- damage ----
    if damage_invoice is not None:
        lines = _get(damage_invoice, "lines") or []
        damage_total = float(sum(_money(_get(ln, "line_total")) for ln in lines if _service(ln) == DAMAGE_SERVICE))
        damage_source = SOURCE_INVOICE_LINES
    elif stored_damage_total:
        damage_total = _money(stored_damage_total)
        damage_source = "stored_total"
    elif item_costs_total:
        damage_total = _money(item_costs_total)
        damage_source = "item_costs"
    else:
        damage_total = 0.0
        damage_source = SOURCE_NONE

    # ---- utility: linked invoice ----
    if damage_invoice is not None:
        own = marked_utility_lines(_get(damage_invoice, "lines") or [], inspection_id=inspection_id, marker=marker)
        own_total = float(sum(_money(_get(ln, "line_total")) for ln in own))
        if own_total > 0:
            return ReconciledTotals(
                damage_total=damage_total,
                utility_total=own_total,
                utility_source=SOURCE_INVOICE_LINES,
                damage_source=damage_source,
                utility_invoice_ids=[str(_get(damage_invoice, "id"))],
            )

    # ---- utility: separately fetched invoices ----
    damage_invoice_id = str(_get(damage_invoice, "id") or "") if damage_invoice is not None else ""
    candidates = [
        inv for inv in (utility_invoices or []) if not damage_invoice_id or str(_get(inv, "id") or "") != damage_invoice_id
    ]
    selected = select_inspection_utility_invoices(
        candidates, inspection_id=inspection_id, marker=marker, cycle_id=cycle_id
    )
    sep_total = 0.0
    for inv in selected:
        own = marked_utility_lines(_get(inv, "lines") or [], inspection_id=inspection_id, marker=marker)
        sep_total += float(sum(_money(_get(ln, "line_total")) for ln in own))
    if sep_total > 0:
        return ReconciledTotals(
            damage_total=damage_total,
            utility_total=sep_total,
            utility_source=SOURCE_UTILITY_INVOICES,
            damage_source=damage_source,
            utility_invoice_ids=[str(_get(inv, "id")) for inv in selected],
        )

    # ---- utility: estimates ----
    est_total = float(sum(_money(e) for e in (estimates or []) if e is not None))
    if est_total > 0:
        return ReconciledTotals(
            damage_total=damage_total,
            utility_total=est_total,
            utility_source=SOURCE_ESTIMATE,
            damage_source=damage_source,
        )

    return ReconciledTotals(
        damage_total=damage_total,
        utility_total=0.0,
        utility_source=SOURCE_NONE,
        damage_source=damage_source,
    )
