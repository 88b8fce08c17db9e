# backend/moveout/routers/inspections.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require_manager, require_technician
from ..clients.contracts import BillingGateway, Inspection, InspectionGateway, InspectionStatus
from ..db import get_db
from ..domain.audit import emit_audit
from ..domain.errors import WorkflowError
from ..schemas import (
    AssignInspectorIn,
    CompleteIn,
    CompleteOut,
    InspectionCreateIn,
    ItemUpdateIn,
    ItemUpdateOut,
    MeterDraftOut,
    MeterDraftsOut,
    MeterReadingCheckOut,
    MeterReadingIn,
    StartOut,
)
from ..services.billing_reconciliation import BillingReconciliationEngine
from ..services.billing_runs import POLL_SCHEDULED, record_outcome
from ..services.events_facade import wf
from ..services.inspection_lifecycle import InspectionLifecycleManager
from ..services.meter_drafts import SqlDraftStore
from ..services.workflow_context import WorkflowContext, build_context
from .deps import get_billing_gateway, get_inspection_gateway, get_poll_scheduler
from .errors import to_http

log = logging.getLogger("moveout.api.inspections")

router = APIRouter(prefix="/inspections", tags=["inspections"])


def _context(
    db: Session,
    gateway: InspectionGateway,
    inspection_id: str,
    p: Principal,
    *,
    contract_id: Optional[str] = None,
    load_meters: bool = True,
) -> WorkflowContext:
    try:
        return build_context(
            db,
            gateway,
            inspection_id,
            contract_id=contract_id,
            actor_id=p.user_id,
            actor_name=p.display_name,
            load_meters=load_meters,
        )
    except WorkflowError as e:
        raise to_http(e) from e


# -----------------------------
# Inspections
# -----------------------------
@router.post("", response_model=Inspection)
def create_inspection(
    payload: InspectionCreateIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_manager),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> Inspection:
    mgr = InspectionLifecycleManager(gateway)
    try:
        insp = mgr.create(
            contract_id=payload.contract_id,
            unit_id=payload.unit_id,
            inspection_date=payload.inspection_date,
            inspector_id=payload.inspector_id,
            inspector_name=payload.inspector_name,
        )
    except WorkflowError as e:
        raise to_http(e) from e

    emit_audit(
        db,
        actor_id=p.user_id,
        action="inspection.create",
        entity_type="inspection",
        entity_id=insp.id,
        after=payload.model_dump(mode="json"),
    )
    wf.emit(db, inspection_id=insp.id, actor_id=p.user_id, event_type="inspection.create", payload={"status": insp.status.value})
    return insp


@router.get("", response_model=list[Inspection])
def list_inspections(
    inspector_id: Optional[str] = Query(default=None),
    status: Optional[InspectionStatus] = Query(default=None),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> list[Inspection]:
    try:
        return gateway.list_inspections(inspector_id=inspector_id, status=status)
    except WorkflowError as e:
        raise to_http(e) from e


@router.get("/{inspection_id}", response_model=Inspection)
def get_inspection(
    inspection_id: str,
    contract_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> Inspection:
    ctx = _context(db, gateway, inspection_id, p, contract_id=contract_id, load_meters=False)
    return ctx.inspection


@router.put("/{inspection_id}/assign-inspector", response_model=Inspection)
def assign_inspector(
    inspection_id: str,
    payload: AssignInspectorIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_manager),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> Inspection:
    ctx = _context(db, gateway, inspection_id, p, load_meters=False)
    before = {"inspector_id": ctx.inspection.inspector_id, "inspector_name": ctx.inspection.inspector_name}
    try:
        insp = InspectionLifecycleManager(gateway).assign_inspector(ctx, payload.inspector_id, payload.inspector_name)
    except WorkflowError as e:
        raise to_http(e) from e

    emit_audit(
        db,
        actor_id=p.user_id,
        action="inspection.assign",
        entity_type="inspection",
        entity_id=inspection_id,
        before=before,
        after=payload.model_dump(),
    )
    return insp


@router.put("/{inspection_id}/start", response_model=StartOut)
def start_inspection(
    inspection_id: str,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> StartOut:
    ctx = _context(db, gateway, inspection_id, p, load_meters=False)
    try:
        out = InspectionLifecycleManager(gateway).start(ctx)
    except WorkflowError as e:
        raise to_http(e) from e

    wf.emit(
        db,
        inspection_id=inspection_id,
        actor_id=p.user_id,
        event_type="inspection.start",
        payload={"items": len(out.inspection.items), "items_loaded": out.items_loaded},
    )
    return StartOut(
        inspection=out.inspection,
        items_loaded=out.items_loaded,
        reload_attempts=out.reload_attempts,
        warnings=out.warnings,
    )


@router.put("/{inspection_id}/items/{item_id}", response_model=ItemUpdateOut)
def update_item(
    inspection_id: str,
    item_id: str,
    payload: ItemUpdateIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
) -> ItemUpdateOut:
    ctx = _context(db, gateway, inspection_id, p, load_meters=False)
    before_item = ctx.inspection.item(item_id)
    try:
        out = InspectionLifecycleManager(gateway).update_item(
            ctx,
            item_id,
            condition_status=payload.condition_status,
            notes=payload.notes,
            damage_cost=payload.damage_cost,
        )
    except WorkflowError as e:
        raise to_http(e) from e

    emit_audit(
        db,
        actor_id=p.user_id,
        action="inspection_item.update",
        entity_type="inspection_item",
        entity_id=item_id,
        before={"condition_status": before_item.condition_status, "cost": before_item.cost} if before_item else None,
        after={"condition_status": payload.condition_status, "cost": out.submitted_cost, "confirmed": out.confirmed},
    )
    return ItemUpdateOut(
        inspection=out.inspection,
        item=out.item,
        submitted_cost=out.submitted_cost,
        confirmed=out.confirmed,
        reload_attempts=out.reload_attempts,
        warnings=out.warnings,
    )


# -----------------------------
# Meter readings
# -----------------------------
@router.put("/{inspection_id}/meter-readings/{meter_id}", response_model=MeterReadingCheckOut)
def record_meter_reading(
    inspection_id: str,
    meter_id: str,
    payload: MeterReadingIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
    billing: BillingGateway = Depends(get_billing_gateway),
) -> MeterReadingCheckOut:
    ctx = _context(db, gateway, inspection_id, p)
    mgr = InspectionLifecycleManager(gateway, drafts=SqlDraftStore(db))
    try:
        chk = mgr.record_meter_reading(ctx, meter_id, payload.index, payload.note)
    except WorkflowError as e:
        raise to_http(e) from e

    estimate = None
    if chk.ok and chk.usage is not None:
        engine = BillingReconciliationEngine(gateway, billing)
        estimate = engine.estimates(ctx, engine.load_tiers(ctx.today)).get(meter_id)

    wf.emit(
        db,
        inspection_id=inspection_id,
        actor_id=p.user_id,
        event_type="meter_reading.record",
        payload={"meter_id": meter_id, "index": payload.index, "error": chk.error.value if chk.error else None},
    )
    return MeterReadingCheckOut(
        meter_id=meter_id,
        index=payload.index,
        ok=chk.ok,
        error=chk.error.value if chk.error else None,
        message=chk.message,
        previous_index=chk.previous_index,
        usage=chk.usage,
        estimate=estimate,
    )


@router.get("/{inspection_id}/meter-readings", response_model=MeterDraftsOut)
def list_meter_readings(
    inspection_id: str,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
    billing: BillingGateway = Depends(get_billing_gateway),
) -> MeterDraftsOut:
    ctx = _context(db, gateway, inspection_id, p)
    engine = BillingReconciliationEngine(gateway, billing)
    estimates = engine.estimates(ctx, engine.load_tiers(ctx.today))
    checks = ctx.checks()

    rows: list[MeterDraftOut] = []
    for m in ctx.meters:
        entry = ctx.entries.get(m.id)
        chk = checks.get(m.id)
        rows.append(
            MeterDraftOut(
                meter_id=m.id,
                meter_code=m.meter_code,
                service_code=m.normalized_service,
                previous_index=m.previous_index,
                index=entry.index_text if entry else None,
                note=entry.note if entry else None,
                error=entry.error.value if entry and entry.error else None,
                usage=chk.usage if chk else None,
                estimate=estimates.get(m.id),
            )
        )
    return MeterDraftsOut(
        inspection_id=inspection_id,
        meters=rows,
        estimated_total=float(sum(v for v in estimates.values() if v is not None)),
    )


# -----------------------------
# Completion
# -----------------------------
@router.put("/{inspection_id}/complete", response_model=CompleteOut)
def complete_inspection(
    inspection_id: str,
    payload: CompleteIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
    billing: BillingGateway = Depends(get_billing_gateway),
    schedule_poll: Callable[[int], None] = Depends(get_poll_scheduler),
) -> CompleteOut:
    ctx = _context(db, gateway, inspection_id, p)
    ctx.reading_date = payload.reading_date

    engine = BillingReconciliationEngine(gateway, billing)
    mgr = InspectionLifecycleManager(gateway, engine)
    try:
        out = mgr.complete(ctx, payload.notes)
    except WorkflowError as e:
        raise to_http(e) from e

    warnings = list(out.warnings)
    if not out.already_completed:
        emit_audit(
            db,
            actor_id=p.user_id,
            action="inspection.complete",
            entity_type="inspection",
            entity_id=inspection_id,
            after={"total_damage_cost": out.total_damage_cost, "notes": payload.notes},
        )

    run_id: Optional[int] = None
    poll_scheduled = False
    if out.billing is not None:
        run = record_outcome(db, unit_id=ctx.unit_id, outcome=out.billing)
        run_id = run.id
        wf.emit(
            db,
            inspection_id=inspection_id,
            actor_id=p.user_id,
            event_type="billing.run",
            payload={"billing_run_id": run.id, **out.billing.as_dict()},
        )
        if run.poll_status == POLL_SCHEDULED:
            try:
                schedule_poll(run.id)
                poll_scheduled = True
            except Exception as e:
                log.warning("could not schedule reconciliation polling: %s", e, extra={"billing_run_id": run.id})
                warnings.append("reconciliation polling could not be scheduled; use reconcile to refresh totals")

    return CompleteOut(
        inspection=out.inspection,
        total_damage_cost=out.total_damage_cost,
        already_completed=out.already_completed,
        billing=out.billing.as_dict() if out.billing else None,
        billing_run_id=run_id,
        poll_scheduled=poll_scheduled,
        warnings=warnings,
    )


@router.get("/{inspection_id}/events")
def list_events(
    inspection_id: str,
    prefix: Optional[str] = Query(default=None, max_length=40),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
) -> list[dict]:
    return [e.as_dict() for e in wf.list(db, inspection_id=inspection_id, prefix=prefix, limit=limit)]
