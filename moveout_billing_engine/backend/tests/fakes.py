# backend/tests/fakes.py
"""In-memory stand-ins for the base and finance services."""
from __future__ import annotations

import itertools
from datetime import date
from typing import Optional

from moveout.clients.contracts import (
    AssignInspectorRequest,
    CreateInspectionRequest,
    ExportResult,
    Inspection,
    InspectionItem,
    InspectionItemUpdate,
    InspectionStatus,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    Meter,
    MeterReading,
    MeterReadingCreate,
    PricingTier,
    ReadingCycle,
)
from moveout.domain.errors import BackendRejection
from moveout.domain.pricing import calculate_price

MARKER = "Đo cùng với kiểm tra thiết bị"

_ids = itertools.count(1)


def next_id(prefix: str) -> str:
    return f"{prefix}-{next(_ids)}"


def make_item(item_id: str, *, condition: Optional[str] = None, cost: Optional[float] = None,
              purchase_price: Optional[float] = None) -> InspectionItem:
    return InspectionItem(
        id=item_id,
        asset_id=f"asset-{item_id}",
        asset_name=f"Asset {item_id}",
        condition_status=condition,
        damage_cost=cost,
        purchase_price=purchase_price,
    )


def make_inspection(
    inspection_id: str = "insp-1",
    *,
    status: InspectionStatus = InspectionStatus.IN_PROGRESS,
    inspection_date: date = date(2026, 10, 1),
    items: Optional[list[InspectionItem]] = None,
    unit_id: str = "unit-1",
    total_damage_cost: Optional[float] = None,
    invoice_id: Optional[str] = None,
) -> Inspection:
    return Inspection(
        id=inspection_id,
        contract_id=f"contract-{inspection_id}",
        unit_id=unit_id,
        inspection_date=inspection_date,
        status=status,
        items=items or [],
        total_damage_cost=total_damage_cost,
        invoice_id=invoice_id,
    )


def water_tiers() -> list[PricingTier]:
    return [
        PricingTier(service_code="WATER", tier_order=1, min_quantity=0, max_quantity=10, unit_price=5000),
        PricingTier(service_code="WATER", tier_order=2, min_quantity=10, max_quantity=None, unit_price=8000),
    ]


def electric_tiers() -> list[PricingTier]:
    return [
        PricingTier(service_code="ELECTRIC", tier_order=1, min_quantity=0, max_quantity=50, unit_price=1800),
        PricingTier(service_code="ELECTRIC", tier_order=2, min_quantity=50, max_quantity=None, unit_price=2500),
    ]


class FakeFinanceService:
    def __init__(self) -> None:
        self.invoices: dict[str, Invoice] = {}
        self.tiers: dict[str, list[PricingTier]] = {"WATER": water_tiers(), "ELECTRIC": electric_tiers()}
        self.status_updates: list[tuple[str, str]] = []
        self.fail_status_update = False

    def add_invoice(self, inv: Invoice) -> Invoice:
        self.invoices[inv.id] = inv
        return inv

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Optional[Invoice]:
        if self.fail_status_update:
            raise BackendRejection("invoice is locked", status_code=409)
        inv = self.invoices.get(invoice_id)
        if inv is None:
            raise BackendRejection("Invoice not found", status_code=404)
        inv.status = InvoiceStatus(status).value
        self.status_updates.append((invoice_id, inv.status))
        return inv.model_copy(deep=True)

    def get_active_pricing_tiers(self, service_code: str, as_of: date) -> list[PricingTier]:
        return [t.model_copy() for t in self.tiers.get(service_code, [])]

    def get_invoice(self, invoice_id: str) -> Invoice:
        inv = self.invoices.get(invoice_id)
        if inv is None:
            raise BackendRejection("Invoice not found", status_code=404)
        return inv.model_copy(deep=True)

    def list_invoices_for_admin(self, *, unit_id: Optional[str] = None, service_code: Optional[str] = None) -> list[Invoice]:
        out = []
        for inv in self.invoices.values():
            if unit_id and inv.payer_unit_id != unit_id:
                continue
            if service_code and not any(ln.service_code == service_code for ln in inv.lines):
                continue
            out.append(inv.model_copy(deep=True))
        return out


class FakeBaseService:
    """
    Knobs for eventual consistency:
      stale_reloads         reloads that still show the pre-update item after an item update
      items_after_reloads   reloads after start before the generated items appear
      auto_total            whether complete() stores the damage total itself
    """

    def __init__(self, finance: Optional[FakeFinanceService] = None) -> None:
        self.finance = finance or FakeFinanceService()
        self.inspections: dict[str, Inspection] = {}
        self.meters: dict[str, list[Meter]] = {}
        self.cycles: dict[str, list[ReadingCycle]] = {}
        self.readings: list[MeterReadingCreate] = []
        self.calls: list[tuple] = []

        self.stale_reloads = 0
        self.items_after_reloads = 0
        self.pending_items: dict[str, list[InspectionItem]] = {}
        self.auto_total = True
        self.reject_meters: set[str] = set()
        self.fail_recalculate = False
        self.export_errors: list[str] = []

        self._stale: dict[str, Inspection] = {}

    # -------------------- setup helpers --------------------

    def add(self, insp: Inspection) -> Inspection:
        self.inspections[insp.id] = insp
        return insp

    def add_meter(self, unit_id: str, meter_id: str, service_code: str, last_reading: Optional[float]) -> Meter:
        m = Meter(id=meter_id, unit_id=unit_id, meter_code=meter_id.upper(), service_code=service_code,
                  last_reading=last_reading)
        self.meters.setdefault(unit_id, []).append(m)
        return m

    def open_cycle(self, cycle_id: str = "cycle-1", status: str = "OPEN") -> ReadingCycle:
        c = ReadingCycle(id=cycle_id, name=cycle_id, status=status)
        self.cycles.setdefault(status, []).append(c)
        return c

    def count(self, name: str) -> int:
        return sum(1 for c in self.calls if c[0] == name)

    def _get(self, inspection_id: str) -> Inspection:
        insp = self.inspections.get(inspection_id)
        if insp is None:
            raise BackendRejection("Inspection not found", status_code=404)
        return insp

    # -------------------- inspections --------------------

    def create_inspection(self, req: CreateInspectionRequest) -> Inspection:
        self.calls.append(("create_inspection", req.contract_id))
        insp = Inspection(
            id=next_id("insp"),
            contract_id=req.contract_id,
            unit_id=req.unit_id,
            inspection_date=req.inspection_date,
            inspector_id=req.inspector_id,
            inspector_name=req.inspector_name,
            status=InspectionStatus.PENDING,
        )
        self.inspections[insp.id] = insp
        return insp.model_copy(deep=True)

    def assign_inspector(self, inspection_id: str, req: AssignInspectorRequest) -> Inspection:
        self.calls.append(("assign_inspector", inspection_id))
        insp = self._get(inspection_id)
        insp.inspector_id = req.inspector_id
        insp.inspector_name = req.inspector_name
        return insp.model_copy(deep=True)

    def start_inspection(self, inspection_id: str) -> Inspection:
        self.calls.append(("start_inspection", inspection_id))
        insp = self._get(inspection_id)
        if insp.status != InspectionStatus.PENDING:
            raise BackendRejection("Inspection status is not PENDING", status_code=400)
        insp.status = InspectionStatus.IN_PROGRESS
        if inspection_id in self.pending_items and self.items_after_reloads == 0:
            insp.items = self.pending_items.pop(inspection_id)
        return insp.model_copy(deep=True)

    def update_inspection_item(self, item_id: str, req: InspectionItemUpdate) -> InspectionItem:
        self.calls.append(("update_inspection_item", item_id, req.model_dump(exclude_none=True)))
        for insp in self.inspections.values():
            it = insp.item(item_id)
            if it is None:
                continue
            if insp.status == InspectionStatus.COMPLETED:
                raise BackendRejection("Inspection already completed", status_code=400)
            if self.stale_reloads:
                self._stale[insp.id] = insp.model_copy(deep=True)
            if req.condition_status is not None:
                it.condition_status = req.condition_status
            if req.notes is not None:
                it.notes = req.notes
            if req.damage_cost is not None:
                it.damage_cost = req.damage_cost
            if req.checked is not None:
                it.checked = req.checked
            return it.model_copy(deep=True)
        raise BackendRejection("Inspection item not found", status_code=404)

    def complete_inspection(self, inspection_id: str, notes: Optional[str]) -> Inspection:
        self.calls.append(("complete_inspection", inspection_id, notes))
        insp = self._get(inspection_id)
        if insp.status != InspectionStatus.IN_PROGRESS:
            raise BackendRejection("Inspection status is not IN_PROGRESS", status_code=400)
        insp.status = InspectionStatus.COMPLETED
        insp.inspector_notes = notes
        if self.auto_total:
            insp.total_damage_cost = insp.item_costs_total()
        return insp.model_copy(deep=True)

    def recalculate_damage_cost(self, inspection_id: str) -> Inspection:
        self.calls.append(("recalculate_damage_cost", inspection_id))
        if self.fail_recalculate:
            raise BackendRejection("recalculation failed", status_code=500)
        insp = self._get(inspection_id)
        insp.total_damage_cost = insp.item_costs_total()
        return insp.model_copy(deep=True)

    def generate_invoice(self, inspection_id: str) -> Inspection:
        self.calls.append(("generate_invoice", inspection_id))
        insp = self._get(inspection_id)
        if insp.invoice_id:
            raise BackendRejection("Invoice already exists for this inspection", status_code=400)
        inv = Invoice(
            id=next_id("inv"),
            status=InvoiceStatus.PUBLISHED.value,
            payer_unit_id=insp.unit_id,
            total_amount=float(insp.total_damage_cost or 0),
            lines=[
                InvoiceLine(
                    service_code="ASSET_DAMAGE",
                    description=f"Damage: {it.asset_name}",
                    line_total=float(it.cost or 0),
                    external_ref_type="ASSET_INSPECTION",
                    external_ref_id=insp.id,
                )
                for it in insp.items
                if it.has_condition and not it.is_good and (it.cost or 0) > 0
            ],
        )
        self.finance.add_invoice(inv)
        insp.invoice_id = inv.id
        return insp.model_copy(deep=True)

    def get_inspection(self, inspection_id: str) -> Optional[Inspection]:
        self.calls.append(("get_inspection", inspection_id))
        insp = self.inspections.get(inspection_id)
        if insp is None:
            return None

        if self.stale_reloads and inspection_id in self._stale:
            self.stale_reloads -= 1
            return self._stale[inspection_id].model_copy(deep=True)

        if inspection_id in self.pending_items and insp.status == InspectionStatus.IN_PROGRESS:
            if self.items_after_reloads > 0:
                self.items_after_reloads -= 1
            if self.items_after_reloads == 0:
                insp.items = self.pending_items.pop(inspection_id)
        return insp.model_copy(deep=True)

    def get_inspection_by_contract(self, contract_id: str) -> Optional[Inspection]:
        self.calls.append(("get_inspection_by_contract", contract_id))
        for insp in self.inspections.values():
            if insp.contract_id == contract_id:
                return insp.model_copy(deep=True)
        return None

    def list_inspections(self, *, inspector_id: Optional[str] = None, status: Optional[InspectionStatus] = None) -> list[Inspection]:
        out = []
        for insp in self.inspections.values():
            if inspector_id and insp.inspector_id != inspector_id:
                continue
            if status and insp.status != status:
                continue
            out.append(insp.model_copy(deep=True))
        return out

    # -------------------- meters --------------------

    def get_meters_by_unit(self, unit_id: str) -> list[Meter]:
        return [m.model_copy() for m in self.meters.get(unit_id, [])]

    def create_meter_reading(self, req: MeterReadingCreate) -> MeterReading:
        self.calls.append(("create_meter_reading", req.meter_id))
        if req.meter_id in self.reject_meters:
            raise BackendRejection("Reading already exists for this meter in cycle", status_code=400)
        self.readings.append(req)
        return MeterReading(id=next_id("reading"), **req.model_dump())

    def export_readings_by_cycle(self, cycle_id: str, unit_id: Optional[str] = None) -> ExportResult:
        self.calls.append(("export_readings_by_cycle", cycle_id, unit_id))
        created: list[str] = []
        by_service: dict[str, list[InvoiceLine]] = {}
        for r in self.readings:
            if r.cycle_id != cycle_id:
                continue
            meter = next((m for ms in self.meters.values() for m in ms if m.id == r.meter_id), None)
            if meter is None:
                continue
            usage = r.curr_index - r.prev_index
            tiers = self.finance.tiers.get(meter.normalized_service or "", [])
            by_service.setdefault(meter.normalized_service or "", []).append(
                InvoiceLine(
                    service_code=meter.normalized_service,
                    description=f"{meter.normalized_service} usage - {r.note}",
                    quantity=usage,
                    line_total=calculate_price(usage, tiers),
                    external_ref_type="WATER_ELECTRIC_INVOICE",
                    external_ref_id=cycle_id,
                )
            )
        if by_service:
            lines = [ln for lns in by_service.values() for ln in lns]
            inv = Invoice(
                id=next_id("inv"),
                status=InvoiceStatus.PUBLISHED.value,
                payer_unit_id=unit_id,
                cycle_id=cycle_id,
                total_amount=sum(ln.line_total for ln in lines),
                lines=lines,
            )
            self.finance.add_invoice(inv)
            created.append(inv.id)
        return ExportResult(
            total_readings=len(self.readings),
            invoices_created=len(created),
            invoices_skipped=0,
            invoice_ids=created,
            errors=list(self.export_errors),
        )

    def get_reading_cycles_by_status(self, status: str) -> list[ReadingCycle]:
        return list(self.cycles.get(status, []))
