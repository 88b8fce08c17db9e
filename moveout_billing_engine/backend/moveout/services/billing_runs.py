from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import WorkflowError
from ..domain.reconciliation import ReconciledTotals
from ..models import BillingRun
from .billing_reconciliation import BillingOutcome

log = logging.getLogger("moveout.billing_runs")

POLL_SCHEDULED = "scheduled"
POLL_SETTLED = "settled"
POLL_EXHAUSTED = "exhausted"
POLL_CANCELLED = "cancelled"


def _loads(s: Optional[str], default: Any) -> Any:
    if not s:
        return default
    try:
        return json.loads(s)
    except ValueError:
        return default


def latest_run(db: Session, inspection_id: str) -> Optional[BillingRun]:
    return db.scalar(
        select(BillingRun)
        .where(BillingRun.inspection_id == str(inspection_id))
        .order_by(BillingRun.id.desc())
        .limit(1)
    )


def _apply_snapshot(run: BillingRun, totals: ReconciledTotals) -> None:
    run.damage_total = totals.damage_total
    run.utility_total = totals.utility_total
    run.total_payable = totals.total_payable
    run.utility_source = totals.utility_source
    run.snapshot_json = json.dumps(totals.as_dict(), default=str)
    run.updated_at = datetime.utcnow()


def record_outcome(db: Session, *, unit_id: Optional[str], outcome: BillingOutcome) -> BillingRun:
    now = datetime.utcnow()
    run = BillingRun(
        inspection_id=outcome.inspection_id,
        unit_id=unit_id,
        cycle_id=outcome.cycle_id,
        created_at=now,
        updated_at=now,
    )
    if outcome.readings is not None:
        run.readings_submitted = outcome.readings.submitted
        run.readings_failed = outcome.readings.failed
    if outcome.export is not None:
        run.invoices_created = outcome.export.invoices_created
        run.invoices_skipped = outcome.export.invoices_skipped
        run.export_errors_json = json.dumps(outcome.export.errors)
    if outcome.damage is not None:
        run.damage_invoice_id = outcome.damage.invoice_id
        run.damage_invoice_paid = outcome.damage.paid
    run.warnings_json = json.dumps([w.as_dict() for w in outcome.warnings])

    if outcome.totals is not None:
        _apply_snapshot(run, outcome.totals)
        run.poll_status = POLL_SETTLED if outcome.totals.settled else POLL_SCHEDULED
    else:
        run.poll_status = POLL_SCHEDULED

    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def record_snapshot(db: Session, run: BillingRun, totals: ReconciledTotals) -> BillingRun:
    _apply_snapshot(run, totals)
    if totals.settled and run.poll_status == POLL_SCHEDULED:
        run.poll_status = POLL_SETTLED
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def cancel_polling(db: Session, inspection_id: str) -> Optional[BillingRun]:
    """Flag the latest run so the next poll attempt is not scheduled."""
    run = latest_run(db, inspection_id)
    if run is None:
        return None
    if run.poll_status == POLL_SCHEDULED:
        run.poll_status = POLL_CANCELLED
        run.updated_at = datetime.utcnow()
        db.add(run)
        db.commit()
        db.refresh(run)
    return run


@dataclass(frozen=True)
class PollDecision:
    run_id: int
    status: str
    attempts: int
    reschedule: bool
    totals: Optional[ReconciledTotals] = None

    def as_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "attempts": self.attempts,
            "reschedule": self.reschedule,
            "totals": self.totals.as_dict() if self.totals else None,
        }


def poll_once(
    db: Session,
    run: BillingRun,
    *,
    reconcile_fn: Callable[[], ReconciledTotals],
    max_attempts: int,
) -> PollDecision:
    """
    One reconciliation attempt for a scheduled run.

    Stops once the utility total comes from persisted invoices, the attempts
    are used up, or the run was cancelled in the meantime.
    """
    db.refresh(run)
    if run.poll_status != POLL_SCHEDULED:
        return PollDecision(run_id=run.id, status=run.poll_status, attempts=run.poll_attempts, reschedule=False)

    totals: Optional[ReconciledTotals] = None
    try:
        totals = reconcile_fn()
    except WorkflowError as e:
        log.info("reconcile attempt failed: %s", e.message, extra={"billing_run_id": run.id, "step": "poll"})

    run.poll_attempts = int(run.poll_attempts or 0) + 1
    if totals is not None:
        _apply_snapshot(run, totals)

    # cancellation may have landed while we were talking to the services
    current_status = db.scalar(select(BillingRun.poll_status).where(BillingRun.id == run.id))
    if current_status == POLL_CANCELLED:
        run.poll_status = POLL_CANCELLED
    elif totals is not None and totals.settled:
        run.poll_status = POLL_SETTLED
    elif run.poll_attempts >= int(max_attempts):
        run.poll_status = POLL_EXHAUSTED
        log.warning("reconciliation polling exhausted", extra={"billing_run_id": run.id, "attempt": run.poll_attempts})
    run.updated_at = datetime.utcnow()

    db.add(run)
    db.commit()
    db.refresh(run)
    return PollDecision(
        run_id=run.id,
        status=run.poll_status,
        attempts=run.poll_attempts,
        reschedule=run.poll_status == POLL_SCHEDULED,
        totals=totals,
    )


def run_as_dict(run: BillingRun) -> dict:
    return {
        "id": run.id,
        "inspection_id": run.inspection_id,
        "unit_id": run.unit_id,
        "cycle_id": run.cycle_id,
        "readings_submitted": run.readings_submitted,
        "readings_failed": run.readings_failed,
        "invoices_created": run.invoices_created,
        "invoices_skipped": run.invoices_skipped,
        "export_errors": _loads(run.export_errors_json, []),
        "damage_invoice_id": run.damage_invoice_id,
        "damage_invoice_paid": bool(run.damage_invoice_paid),
        "warnings": _loads(run.warnings_json, []),
        "damage_total": run.damage_total,
        "utility_total": run.utility_total,
        "total_payable": run.total_payable,
        "utility_source": run.utility_source,
        "poll_attempts": run.poll_attempts,
        "poll_status": run.poll_status,
        "created_at": run.created_at,
        "updated_at": run.updated_at,
    }
