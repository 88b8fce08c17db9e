from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import Principal, require_technician
from ..clients.contracts import BillingGateway, InspectionGateway
from ..db import get_db
from ..domain.errors import WorkflowError
from ..schemas import BillingRunOut, ReconcileOut
from ..services.billing_reconciliation import BillingReconciliationEngine
from ..services.billing_runs import cancel_polling, latest_run, record_snapshot, run_as_dict
from ..services.events_facade import wf
from ..services.workflow_context import build_context
from .deps import get_billing_gateway, get_inspection_gateway
from .errors import to_http

router = APIRouter(prefix="/inspections", tags=["billing"])


@router.get("/{inspection_id}/billing", response_model=BillingRunOut)
def get_billing(
    inspection_id: str,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
) -> BillingRunOut:
    run = latest_run(db, inspection_id)
    if run is None:
        raise HTTPException(status_code=404, detail="No billing run for this inspection")
    return BillingRunOut(**run_as_dict(run))


@router.post("/{inspection_id}/billing/reconcile", response_model=ReconcileOut)
def reconcile_now(
    inspection_id: str,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
    gateway: InspectionGateway = Depends(get_inspection_gateway),
    billing: BillingGateway = Depends(get_billing_gateway),
) -> ReconcileOut:
    engine = BillingReconciliationEngine(gateway, billing)
    try:
        ctx = build_context(db, gateway, inspection_id, actor_id=p.user_id, actor_name=p.display_name)
        run = latest_run(db, inspection_id)
        cycle_id = run.cycle_id if run is not None and run.cycle_id else None
        if cycle_id is None:
            cycle = engine.find_active_cycle()
            cycle_id = cycle.id if cycle else None
        totals = engine.reconcile(ctx, ctx.inspection, cycle_id=cycle_id)
    except WorkflowError as e:
        raise to_http(e) from e

    if run is not None:
        run = record_snapshot(db, run, totals)
    wf.emit(
        db,
        inspection_id=inspection_id,
        actor_id=p.user_id,
        event_type="billing.reconcile",
        payload=totals.as_dict(),
    )
    return ReconcileOut(
        inspection_id=inspection_id,
        totals=totals.as_dict(),
        billing_run=BillingRunOut(**run_as_dict(run)) if run is not None else None,
    )


@router.delete("/{inspection_id}/billing/poll", response_model=BillingRunOut)
def cancel_billing_poll(
    inspection_id: str,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_technician),
) -> BillingRunOut:
    run = cancel_polling(db, inspection_id)
    if run is None:
        raise HTTPException(status_code=404, detail="No billing run for this inspection")
    wf.emit(
        db,
        inspection_id=inspection_id,
        actor_id=p.user_id,
        event_type="billing.poll_cancel",
        payload={"billing_run_id": run.id, "poll_status": run.poll_status},
    )
    return BillingRunOut(**run_as_dict(run))
