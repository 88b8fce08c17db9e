# backend/moveout/workers/reconcile_tasks.py
from __future__ import annotations

import logging

from ..clients.base_service import BaseServiceClient
from ..clients.contracts import BillingGateway, InspectionGateway
from ..clients.finance_service import FinanceServiceClient
from ..config import settings
from ..db import SessionLocal
from ..models import BillingRun
from ..services.billing_reconciliation import BillingReconciliationEngine
from ..services.billing_runs import POLL_SCHEDULED, poll_once
from ..services.events_facade import wf
from ..services.workflow_context import build_context
from .celery_app import celery_app

log = logging.getLogger("moveout.workers.reconcile")


def _gateways() -> tuple[InspectionGateway, BillingGateway]:
    return BaseServiceClient(), FinanceServiceClient()


@celery_app.task(bind=True, name="moveout.workers.reconcile_tasks.poll_reconciliation")
def poll_reconciliation(self, billing_run_id: int) -> dict:
    """
    One scheduled reconciliation attempt for a billing run. Re-schedules
    itself with a fixed countdown until the totals settle, the attempts are
    used up, or the run is cancelled.
    """
    db = SessionLocal()
    try:
        run = db.get(BillingRun, int(billing_run_id))
        if run is None:
            return {"ok": False, "reason": "run_not_found"}

        gateway, billing = _gateways()
        engine = BillingReconciliationEngine(gateway, billing)

        def _reconcile():
            ctx = build_context(db, gateway, run.inspection_id)
            return engine.reconcile(ctx, ctx.inspection, cycle_id=run.cycle_id)

        decision = poll_once(
            db,
            run,
            reconcile_fn=_reconcile,
            max_attempts=settings.reconcile_poll_attempts,
        )

        if decision.status != POLL_SCHEDULED:
            wf.emit(
                db,
                inspection_id=run.inspection_id,
                actor_id=None,
                event_type=f"billing.poll_{decision.status}",
                payload=decision.as_dict(),
            )

        if decision.reschedule:
            log.info("reconcile poll rescheduled", extra={"billing_run_id": run.id, "attempt": decision.attempts})
            self.apply_async(args=[int(billing_run_id)], countdown=settings.reconcile_poll_interval_seconds)

        return {"ok": True, **decision.as_dict()}
    finally:
        db.close()
