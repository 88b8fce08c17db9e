# backend/moveout/clients/contracts.py
"""
Records exchanged with the upstream services and the gateway Protocols the
workflow depends on.

Wire format is camelCase JSON; Python attributes are snake_case.
"""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class InspectionStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = {InspectionStatus.COMPLETED, InspectionStatus.CANCELLED}


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    PAID = "PAID"
    VOID = "VOID"
    UNPAID = "UNPAID"


class ServiceCode(str, Enum):
    WATER = "WATER"
    ELECTRIC = "ELECTRIC"


def normalize_service_code(code: Optional[str], name: Optional[str] = None) -> Optional[str]:
    """Fold upstream spelling variants (incl. Vietnamese labels) onto WATER/ELECTRIC."""
    c = (code or "").strip().upper()
    n = (name or "").strip().lower()
    if "ELECTRIC" in c or "ĐIỆN" in c or "điện" in n:
        return ServiceCode.ELECTRIC.value
    if "WATER" in c or "NƯỚC" in c or "nước" in n:
        return ServiceCode.WATER.value
    return c or None


def _date_part(v: Any) -> Any:
    if isinstance(v, str) and "T" in v:
        return v.split("T", 1)[0]
    if isinstance(v, datetime):
        return v.date()
    return v


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# -------------------- Inspections --------------------


class InspectionItem(WireModel):
    id: str
    asset_id: Optional[str] = None
    asset_code: Optional[str] = None
    asset_name: Optional[str] = None
    asset_type: Optional[str] = None
    condition_status: Optional[str] = None
    notes: Optional[str] = None
    checked: bool = False
    checked_at: Optional[datetime] = None
    checked_by: Optional[str] = None
    damage_cost: Optional[float] = None
    repair_cost: Optional[float] = None  # legacy name of damage_cost
    purchase_price: Optional[float] = None

    @property
    def cost(self) -> Optional[float]:
        if self.damage_cost is not None:
            return float(self.damage_cost)
        if self.repair_cost is not None:
            return float(self.repair_cost)
        return None

    @property
    def has_condition(self) -> bool:
        return bool((self.condition_status or "").strip())

    @property
    def is_good(self) -> bool:
        return (self.condition_status or "").strip().upper() == "GOOD"


class Inspection(WireModel):
    id: str
    contract_id: Optional[str] = None
    unit_id: Optional[str] = None
    unit_code: Optional[str] = None
    inspection_date: Optional[date] = None
    status: InspectionStatus = InspectionStatus.PENDING
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None
    inspector_notes: Optional[str] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None
    total_damage_cost: Optional[float] = None
    invoice_id: Optional[str] = None
    items: list[InspectionItem] = Field(default_factory=list)

    norm_date = field_validator("inspection_date", mode="before")(_date_part)

    def item(self, item_id: str) -> Optional[InspectionItem]:
        for it in self.items:
            if it.id == item_id:
                return it
        return None

    def item_costs_total(self) -> float:
        """Sum of costs on non-GOOD items."""
        return float(sum((it.cost or 0.0) for it in self.items if it.has_condition and not it.is_good))


class CreateInspectionRequest(WireModel):
    contract_id: str
    unit_id: str
    inspection_date: date
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None


class AssignInspectorRequest(WireModel):
    inspector_id: str
    inspector_name: str


class InspectionItemUpdate(WireModel):
    condition_status: Optional[str] = None
    notes: Optional[str] = None
    checked: Optional[bool] = None
    checked_by: Optional[str] = None
    damage_cost: Optional[float] = None


# -------------------- Meters --------------------


class Meter(WireModel):
    id: str
    unit_id: Optional[str] = None
    building_id: Optional[str] = None
    meter_code: Optional[str] = None
    service_id: Optional[str] = None
    service_code: Optional[str] = None
    service_name: Optional[str] = None
    active: bool = True
    last_reading: Optional[float] = None
    last_reading_date: Optional[date] = None

    norm_date = field_validator("last_reading_date", mode="before")(_date_part)

    @property
    def previous_index(self) -> float:
        return float(self.last_reading) if self.last_reading is not None else 0.0

    @property
    def normalized_service(self) -> Optional[str]:
        return normalize_service_code(self.service_code, self.service_name)

    @property
    def label(self) -> str:
        return self.meter_code or self.id


class MeterReadingCreate(WireModel):
    meter_id: str
    reading_date: date
    prev_index: float
    curr_index: float
    cycle_id: Optional[str] = None
    assignment_id: Optional[str] = None
    note: Optional[str] = None


class MeterReading(WireModel):
    id: Optional[str] = None
    meter_id: str
    reading_date: Optional[date] = None
    prev_index: Optional[float] = None
    curr_index: Optional[float] = None
    cycle_id: Optional[str] = None
    assignment_id: Optional[str] = None
    note: Optional[str] = None

    norm_date = field_validator("reading_date", mode="before")(_date_part)


class ReadingCycle(WireModel):
    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    period_from: Optional[date] = None
    period_to: Optional[date] = None

    norm_dates = field_validator("period_from", "period_to", mode="before")(_date_part)


class ExportResult(WireModel):
    total_readings: int = 0
    invoices_created: int = 0
    invoices_skipped: int = 0
    invoice_ids: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    message: Optional[str] = None


# -------------------- Finance --------------------


class PricingTier(WireModel):
    id: Optional[str] = None
    service_code: str
    tier_order: int
    min_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    unit_price: Optional[float] = None
    effective_from: Optional[date] = None
    effective_until: Optional[date] = None
    active: bool = True
    description: Optional[str] = None

    norm_dates = field_validator("effective_from", "effective_until", mode="before")(_date_part)


class InvoiceLine(WireModel):
    id: Optional[str] = None
    invoice_id: Optional[str] = None
    service_code: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    unit_price: Optional[float] = None
    line_total: float = 0.0
    external_ref_type: Optional[str] = None
    external_ref_id: Optional[str] = None


class Invoice(WireModel):
    id: str
    code: Optional[str] = None
    status: Optional[str] = None
    payer_unit_id: Optional[str] = None
    cycle_id: Optional[str] = None
    total_amount: float = 0.0
    lines: list[InvoiceLine] = Field(default_factory=list)


# -------------------- Gateways --------------------


class InspectionGateway(Protocol):
    """Operations of the base (building/inspection/metering) service."""

    def create_inspection(self, req: CreateInspectionRequest) -> Inspection: ...

    def assign_inspector(self, inspection_id: str, req: AssignInspectorRequest) -> Inspection: ...

    def start_inspection(self, inspection_id: str) -> Inspection: ...

    def update_inspection_item(self, item_id: str, req: InspectionItemUpdate) -> InspectionItem: ...

    def complete_inspection(self, inspection_id: str, notes: Optional[str]) -> Inspection: ...

    def recalculate_damage_cost(self, inspection_id: str) -> Inspection: ...

    def generate_invoice(self, inspection_id: str) -> Inspection: ...

    def get_inspection(self, inspection_id: str) -> Optional[Inspection]: ...

    def get_inspection_by_contract(self, contract_id: str) -> Optional[Inspection]: ...

    def list_inspections(
        self, *, inspector_id: Optional[str] = None, status: Optional[InspectionStatus] = None
    ) -> list[Inspection]: ...

    def get_meters_by_unit(self, unit_id: str) -> list[Meter]: ...

    def create_meter_reading(self, req: MeterReadingCreate) -> MeterReading: ...

    def export_readings_by_cycle(self, cycle_id: str, unit_id: Optional[str] = None) -> ExportResult: ...

    def get_reading_cycles_by_status(self, status: str) -> list[ReadingCycle]: ...


class BillingGateway(Protocol):
    """Operations of the finance service."""

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Optional[Invoice]: ...

    def get_active_pricing_tiers(self, service_code: str, as_of: date) -> list[PricingTier]: ...

    def get_invoice(self, invoice_id: str) -> Invoice: ...

    def list_invoices_for_admin(
        self, *, unit_id: Optional[str] = None, service_code: Optional[str] = None
    ) -> list[Invoice]: ...
