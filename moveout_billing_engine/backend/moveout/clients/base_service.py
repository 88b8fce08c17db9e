from __future__ import annotations

from typing import Any, Optional

import httpx

from ..config import settings
from ..domain.errors import BackendRejection
from .contracts import (
    AssignInspectorRequest,
    CreateInspectionRequest,
    ExportResult,
    Inspection,
    InspectionItem,
    InspectionItemUpdate,
    InspectionStatus,
    Meter,
    MeterReading,
    MeterReadingCreate,
    ReadingCycle,
)
from .http_client import JsonServiceClient


def _as_list(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("content", "items", "data"):
            v = data.get(key)
            if isinstance(v, list):
                return v
    return []


class BaseServiceClient:
    """Building/inspection/metering service (InspectionGateway)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.http = JsonServiceClient(
            base_url or settings.base_service_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    # -------------------- inspections --------------------

    def create_inspection(self, req: CreateInspectionRequest) -> Inspection:
        return Inspection.model_validate(self.http.post("/api/asset-inspections", json=req.to_wire()))

    def assign_inspector(self, inspection_id: str, req: AssignInspectorRequest) -> Inspection:
        data = self.http.put(f"/api/asset-inspections/{inspection_id}/assign-inspector", json=req.to_wire())
        return Inspection.model_validate(data)

    def start_inspection(self, inspection_id: str) -> Inspection:
        return Inspection.model_validate(self.http.put(f"/api/asset-inspections/{inspection_id}/start"))

    def update_inspection_item(self, item_id: str, req: InspectionItemUpdate) -> InspectionItem:
        data = self.http.put(f"/api/asset-inspections/items/{item_id}", json=req.to_wire())
        return InspectionItem.model_validate(data)

    def complete_inspection(self, inspection_id: str, notes: Optional[str]) -> Inspection:
        data = self.http.put(
            f"/api/asset-inspections/{inspection_id}/complete",
            content=notes or "",
            headers={"Content-Type": "text/plain"},
        )
        return Inspection.model_validate(data)

    def recalculate_damage_cost(self, inspection_id: str) -> Inspection:
        data = self.http.post(f"/api/asset-inspections/{inspection_id}/recalculate-damage")
        return Inspection.model_validate(data)

    def generate_invoice(self, inspection_id: str) -> Inspection:
        data = self.http.post(f"/api/asset-inspections/{inspection_id}/generate-invoice")
        return Inspection.model_validate(data)

    def get_inspection(self, inspection_id: str) -> Optional[Inspection]:
        # The backend answers 500 for some unknown ids; callers fall back to the contract lookup.
        try:
            data = self.http.get(f"/api/asset-inspections/{inspection_id}")
        except BackendRejection as e:
            if e.status_code in (404, 500):
                return None
            raise
        return Inspection.model_validate(data) if data else None

    def get_inspection_by_contract(self, contract_id: str) -> Optional[Inspection]:
        try:
            data = self.http.get(f"/api/asset-inspections/contract/{contract_id}")
        except BackendRejection as e:
            if e.not_found:
                return None
            raise
        return Inspection.model_validate(data) if data else None

    def list_inspections(
        self, *, inspector_id: Optional[str] = None, status: Optional[InspectionStatus] = None
    ) -> list[Inspection]:
        params = {"inspectorId": inspector_id, "status": status.value if status else None}
        data = self.http.get("/api/asset-inspections", params=params)
        return [Inspection.model_validate(x) for x in _as_list(data)]

    # -------------------- meters --------------------

    def get_meters_by_unit(self, unit_id: str) -> list[Meter]:
        data = self.http.get(f"/api/meters/unit/{unit_id}")
        return [Meter.model_validate(x) for x in _as_list(data)]

    def create_meter_reading(self, req: MeterReadingCreate) -> MeterReading:
        data = self.http.post("/api/meter-readings", json=req.to_wire())
        return MeterReading.model_validate(data)

    def export_readings_by_cycle(self, cycle_id: str, unit_id: Optional[str] = None) -> ExportResult:
        data = self.http.post(f"/api/meter-readings/export/cycle/{cycle_id}", params={"unitId": unit_id})
        return ExportResult.model_validate(data or {})

    def get_reading_cycles_by_status(self, status: str) -> list[ReadingCycle]:
        data = self.http.get(f"/api/reading-cycles/status/{status}")
        return [ReadingCycle.model_validate(x) for x in _as_list(data)]
