# backend/moveout/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .clients.contracts import Inspection, InspectionItem, PricingTier


# -------------------- Inspections --------------------

class InspectionCreateIn(BaseModel):
    contract_id: str
    unit_id: str
    inspection_date: date
    inspector_id: Optional[str] = None
    inspector_name: Optional[str] = None


class AssignInspectorIn(BaseModel):
    inspector_id: str
    inspector_name: str


class ItemUpdateIn(BaseModel):
    condition_status: Optional[str] = None
    notes: Optional[str] = None
    # supplied only when the operator typed a cost; otherwise the default applies
    damage_cost: Optional[float] = None


class StartOut(BaseModel):
    inspection: Inspection
    items_loaded: bool
    reload_attempts: int = 0
    warnings: List[str] = Field(default_factory=list)


class ItemUpdateOut(BaseModel):
    inspection: Inspection
    item: Optional[InspectionItem] = None
    submitted_cost: Optional[float] = None
    confirmed: bool
    reload_attempts: int
    warnings: List[str] = Field(default_factory=list)


class CompleteIn(BaseModel):
    notes: Optional[str] = None
    # defaults to today
    reading_date: Optional[date] = None


class CompleteOut(BaseModel):
    inspection: Inspection
    total_damage_cost: float
    already_completed: bool = False
    billing: Optional[dict[str, Any]] = None
    billing_run_id: Optional[int] = None
    poll_scheduled: bool = False
    warnings: List[str] = Field(default_factory=list)


# -------------------- Meter readings --------------------

class MeterReadingIn(BaseModel):
    index: Optional[str] = None
    note: Optional[str] = None


class MeterReadingCheckOut(BaseModel):
    meter_id: str
    index: Optional[str] = None
    ok: bool
    error: Optional[str] = None
    message: Optional[str] = None
    previous_index: float
    usage: Optional[float] = None
    estimate: Optional[float] = None


class MeterDraftOut(BaseModel):
    meter_id: str
    meter_code: Optional[str] = None
    service_code: Optional[str] = None
    previous_index: float
    index: Optional[str] = None
    note: Optional[str] = None
    error: Optional[str] = None
    usage: Optional[float] = None
    estimate: Optional[float] = None


class MeterDraftsOut(BaseModel):
    inspection_id: str
    meters: List[MeterDraftOut]
    estimated_total: float


# -------------------- Billing --------------------

class BillingRunOut(BaseModel):
    id: int
    inspection_id: str
    unit_id: Optional[str] = None
    cycle_id: Optional[str] = None
    readings_submitted: int
    readings_failed: int
    invoices_created: int
    invoices_skipped: int
    export_errors: List[str] = Field(default_factory=list)
    damage_invoice_id: Optional[str] = None
    damage_invoice_paid: bool
    warnings: List[dict[str, Any]] = Field(default_factory=list)
    damage_total: Optional[float] = None
    utility_total: Optional[float] = None
    total_payable: Optional[float] = None
    utility_source: Optional[str] = None
    poll_attempts: int
    poll_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ReconcileOut(BaseModel):
    inspection_id: str
    totals: dict[str, Any]
    billing_run: Optional[BillingRunOut] = None


# -------------------- Pricing --------------------

class TierIn(BaseModel):
    tier_order: int
    min_quantity: Optional[float] = None
    max_quantity: Optional[float] = None
    unit_price: Optional[float] = None


class PricingPreviewIn(BaseModel):
    usage: float = Field(ge=0)
    service_code: Optional[str] = None
    # explicit table wins over the finance service lookup
    tiers: Optional[List[TierIn]] = None
    as_of: Optional[date] = None


class TierChargeOut(BaseModel):
    tier_order: int
    quantity: float
    unit_price: float
    amount: float


class PricingPreviewOut(BaseModel):
    usage: float
    service_code: Optional[str] = None
    total: float
    estimate: Optional[float] = None
    breakdown: List[TierChargeOut]
    tiers: List[PricingTier] = Field(default_factory=list)
