from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ..clients.contracts import Inspection, InspectionGateway, Meter
from ..domain.errors import ErrorKind, PreconditionFailed
from ..domain.meter_validation import MeterErrorKind, ReadingCheck, validate_reading
from .meter_drafts import list_drafts


@dataclass
class MeterEntry:
    meter_id: str
    index_text: Optional[str]
    note: Optional[str] = None
    error: Optional[MeterErrorKind] = None


@dataclass
class WorkflowContext:
    """
    Everything an inspection operation needs besides the gateways: who acts,
    what day it is, the unit's meters and the indices recorded so far.
    """

    inspection_id: str
    contract_id: Optional[str] = None
    today: date = field(default_factory=date.today)
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None

    inspection: Optional[Inspection] = None
    meters: list[Meter] = field(default_factory=list)
    entries: dict[str, MeterEntry] = field(default_factory=dict)

    # defaults to today
    reading_date: Optional[date] = None

    @property
    def effective_reading_date(self) -> date:
        return self.reading_date or self.today

    @property
    def unit_id(self) -> Optional[str]:
        return self.inspection.unit_id if self.inspection is not None else None

    def meter(self, meter_id: str) -> Optional[Meter]:
        for m in self.meters:
            if m.id == meter_id:
                return m
        return None

    def outstanding_errors(self) -> dict[str, MeterErrorKind]:
        return {mid: e.error for mid, e in self.entries.items() if e.error is not None}

    def checks(self) -> dict[str, ReadingCheck]:
        """Live validation of every recorded index against its meter."""
        out: dict[str, ReadingCheck] = {}
        for m in self.meters:
            entry = self.entries.get(m.id)
            if entry is None or not (entry.index_text or "").strip():
                continue
            out[m.id] = validate_reading(entry.index_text, m.last_reading)
        return out


def load_inspection(gateway: InspectionGateway, inspection_id: str, contract_id: Optional[str] = None) -> Inspection:
    insp = gateway.get_inspection(inspection_id)
    if insp is None and contract_id:
        insp = gateway.get_inspection_by_contract(contract_id)
    if insp is None:
        raise PreconditionFailed(
            ErrorKind.INSPECTION_NOT_FOUND,
            f"inspection {inspection_id} not found",
            details={"inspection_id": inspection_id},
        )
    return insp


def build_context(
    db: Session,
    gateway: InspectionGateway,
    inspection_id: str,
    *,
    contract_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    actor_name: Optional[str] = None,
    today: Optional[date] = None,
    load_meters: bool = True,
) -> WorkflowContext:
    ctx = WorkflowContext(
        inspection_id=str(inspection_id),
        contract_id=contract_id,
        today=today or date.today(),
        actor_id=actor_id,
        actor_name=actor_name,
    )
    ctx.inspection = load_inspection(gateway, ctx.inspection_id, contract_id)
    if ctx.contract_id is None:
        ctx.contract_id = ctx.inspection.contract_id

    if load_meters and ctx.inspection.unit_id:
        ctx.meters = [m for m in gateway.get_meters_by_unit(ctx.inspection.unit_id) if m.active]

    for d in list_drafts(db, ctx.inspection_id):
        err = MeterErrorKind(d.error_kind) if d.error_kind else None
        ctx.entries[d.meter_id] = MeterEntry(meter_id=d.meter_id, index_text=d.index_text, note=d.note, error=err)

    return ctx
