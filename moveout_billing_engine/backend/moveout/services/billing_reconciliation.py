from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional

from ..clients.contracts import (
    BillingGateway,
    ExportResult,
    Inspection,
    InspectionGateway,
    Invoice,
    InvoiceStatus,
    MeterReadingCreate,
    PricingTier,
    ReadingCycle,
    ServiceCode,
)
from ..config import settings
from ..domain.errors import BackendRejection
from ..domain.pricing import estimate_usage_charge
from ..domain.reconciliation import ReconciledTotals, reconcile_totals
from .fanout import failures, run_all
from .workflow_context import WorkflowContext

log = logging.getLogger("moveout.billing")

ACTIVE_CYCLE_STATUSES = ("OPEN", "IN_PROGRESS")


@dataclass(frozen=True)
class BillingWarning:
    step: str
    message: str
    counts: dict[str, int] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {"step": self.step, "message": self.message, "counts": dict(self.counts)}


@dataclass(frozen=True)
class ReadingSubmission:
    submitted: int
    failed: int
    errors: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"submitted": self.submitted, "failed": self.failed, "errors": list(self.errors)}


@dataclass(frozen=True)
class ExportSummary:
    cycle_id: str
    total_readings: int
    invoices_created: int
    invoices_skipped: int
    invoice_ids: list[str]
    errors: list[str]
    message: Optional[str] = None

    @classmethod
    def from_result(cls, cycle_id: str, r: ExportResult) -> "ExportSummary":
        return cls(
            cycle_id=cycle_id,
            total_readings=r.total_readings,
            invoices_created=r.invoices_created,
            invoices_skipped=r.invoices_skipped,
            invoice_ids=list(r.invoice_ids),
            errors=list(r.errors),
            message=r.message,
        )

    def as_dict(self) -> dict:
        return {
            "cycle_id": self.cycle_id,
            "total_readings": self.total_readings,
            "invoices_created": self.invoices_created,
            "invoices_skipped": self.invoices_skipped,
            "invoice_ids": list(self.invoice_ids),
            "errors": list(self.errors),
            "message": self.message,
        }


@dataclass(frozen=True)
class DamageInvoiceOutcome:
    inspection: Inspection
    invoice_id: Optional[str]
    recalculated: bool = False
    generated: bool = False
    paid: bool = False

    def as_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "total_damage_cost": self.inspection.total_damage_cost,
            "recalculated": self.recalculated,
            "generated": self.generated,
            "paid": self.paid,
        }


@dataclass
class BillingOutcome:
    inspection_id: str
    cycle_id: Optional[str] = None
    readings: Optional[ReadingSubmission] = None
    export: Optional[ExportSummary] = None
    damage: Optional[DamageInvoiceOutcome] = None
    totals: Optional[ReconciledTotals] = None
    warnings: list[BillingWarning] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)

    def warn(self, step: str, message: str, **counts: int) -> None:
        log.warning("billing_warning %s: %s", step, message, extra={"inspection_id": self.inspection_id, "step": step})
        self.warnings.append(BillingWarning(step=step, message=message, counts=dict(counts)))

    def as_dict(self) -> dict:
        return {
            "inspection_id": self.inspection_id,
            "cycle_id": self.cycle_id,
            "readings": self.readings.as_dict() if self.readings else None,
            "export": self.export.as_dict() if self.export else None,
            "damage": self.damage.as_dict() if self.damage else None,
            "totals": self.totals.as_dict() if self.totals else None,
            "warnings": [w.as_dict() for w in self.warnings],
            "partial": self.partial,
        }


class BillingReconciliationEngine:
    """
    Post-completion billing: meter readings -> utility invoices -> damage
    invoice -> reconciled totals. Each step can fail on its own; failures turn
    into warnings on the outcome and never undo the completion.
    """

    def __init__(
        self,
        gateway: InspectionGateway,
        billing: BillingGateway,
        *,
        marker: Optional[str] = None,
        recalc_fallback_delay: Optional[float] = None,
        post_export_settle: Optional[float] = None,
        max_workers: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway
        self.billing = billing
        self.marker = marker if marker is not None else settings.inspection_marker
        self.recalc_fallback_delay = (
            recalc_fallback_delay if recalc_fallback_delay is not None else settings.recalc_fallback_delay_seconds
        )
        self.post_export_settle = (
            post_export_settle if post_export_settle is not None else settings.post_export_settle_seconds
        )
        self.max_workers = max_workers
        self.sleep = sleep

    # -------------------- lookups --------------------

    def find_active_cycle(self) -> Optional[ReadingCycle]:
        for status in ACTIVE_CYCLE_STATUSES:
            try:
                cycles = self.gateway.get_reading_cycles_by_status(status)
            except BackendRejection as e:
                log.info("reading cycle lookup failed status=%s: %s", status, e.message)
                continue
            if cycles:
                return cycles[0]
        return None

    def load_tiers(self, as_of: date) -> dict[str, list[PricingTier]]:
        out: dict[str, list[PricingTier]] = {}
        for code in ServiceCode:
            try:
                out[code.value] = self.billing.get_active_pricing_tiers(code.value, as_of)
            except BackendRejection as e:
                log.info("pricing tiers unavailable service=%s: %s", code.value, e.message)
                out[code.value] = []
        return out

    def estimates(self, ctx: WorkflowContext, tiers: dict[str, list[PricingTier]]) -> dict[str, Optional[float]]:
        """Live tier estimate per meter with a valid recorded index."""
        out: dict[str, Optional[float]] = {}
        for meter_id, chk in ctx.checks().items():
            meter = ctx.meter(meter_id)
            if meter is None or not chk.ok or chk.usage is None:
                out[meter_id] = None
                continue
            out[meter_id] = estimate_usage_charge(chk.usage, tiers.get(meter.normalized_service or "", []))
        return out

    def fetch_utility_invoices(self, unit_id: Optional[str]) -> list[Invoice]:
        if not unit_id:
            return []
        found: list[Invoice] = []
        for code in ServiceCode:
            try:
                found.extend(self.billing.list_invoices_for_admin(unit_id=unit_id, service_code=code.value))
            except BackendRejection as e:
                log.info("utility invoice lookup failed service=%s: %s", code.value, e.message)
        if found:
            return found
        # some finance deployments ignore the serviceCode filter; scan everything for the unit
        try:
            return self.billing.list_invoices_for_admin(unit_id=unit_id)
        except BackendRejection as e:
            log.info("unit invoice lookup failed: %s", e.message)
            return []

    def _reload(self, inspection: Inspection) -> Optional[Inspection]:
        fresh = self.gateway.get_inspection(inspection.id)
        if fresh is None and inspection.contract_id:
            fresh = self.gateway.get_inspection_by_contract(inspection.contract_id)
        return fresh

    def _mark_paid(self, invoice_id: str, *, fresh: bool) -> bool:
        if not fresh:
            status = (self.billing.get_invoice(invoice_id).status or "").upper()
            if status == InvoiceStatus.PAID.value:
                return True
            if status == InvoiceStatus.VOID.value:
                return False
        self.billing.update_invoice_status(invoice_id, InvoiceStatus.PAID)
        return True

    # -------------------- steps --------------------

    def submit_meter_readings(self, ctx: WorkflowContext, cycle: Optional[ReadingCycle]) -> ReadingSubmission:
        reqs: list[MeterReadingCreate] = []
        for meter_id, chk in ctx.checks().items():
            meter = ctx.meter(meter_id)
            if meter is None or not chk.ok or chk.current_index is None:
                continue
            entry = ctx.entries.get(meter_id)
            note = self.marker
            if entry is not None and (entry.note or "").strip():
                note = f"{self.marker} - {entry.note.strip()}"
            reqs.append(
                MeterReadingCreate(
                    meter_id=meter_id,
                    reading_date=ctx.effective_reading_date,
                    prev_index=meter.previous_index,
                    curr_index=chk.current_index,
                    cycle_id=cycle.id if cycle else None,
                    note=note,
                )
            )

        results = run_all(self.gateway.create_meter_reading, reqs, max_workers=self.max_workers, label="meter_reading")
        failed = failures(results)
        errors = [
            {
                "meter_id": r.key.meter_id,
                "message": getattr(r.error, "message", str(r.error)),
                "field": getattr(getattr(r.error, "field", None), "value", None),
            }
            for r in failed
        ]
        return ReadingSubmission(submitted=len(results) - len(failed), failed=len(failed), errors=errors)

    def export_utility_invoices(self, cycle: ReadingCycle, unit_id: Optional[str]) -> ExportSummary:
        r = self.gateway.export_readings_by_cycle(cycle.id, unit_id)
        return ExportSummary.from_result(cycle.id, r)

    def settle_damage_invoice(self, inspection: Inspection, outcome: BillingOutcome) -> DamageInvoiceOutcome:
        """
        Make sure a damage invoice exists when there is damage to bill, and
        mark it PAID. Safe to call repeatedly: an inspection with a linked
        invoice is never invoiced again.
        """
        current = inspection
        recalculated = False

        stored = float(current.total_damage_cost or 0.0)
        if stored <= 0 and current.item_costs_total() > 0:
            try:
                current = self.gateway.recalculate_damage_cost(current.id)
                recalculated = True
            except BackendRejection as e:
                outcome.warn("damage_recalculate", e.message)
                self.sleep(self.recalc_fallback_delay)
                try:
                    current = self._reload(current) or current
                except BackendRejection as e2:
                    outcome.warn("damage_reload", e2.message)

        total = float(current.total_damage_cost or 0.0)
        generated = False
        if total > 0 and not current.invoice_id:
            try:
                self.gateway.generate_invoice(current.id)
                generated = True
            except BackendRejection as e:
                outcome.warn("damage_invoice", e.message)
                return DamageInvoiceOutcome(inspection=current, invoice_id=None, recalculated=recalculated)
            try:
                current = self._reload(current) or current
            except BackendRejection as e:
                outcome.warn("damage_reload", e.message)

        paid = False
        if current.invoice_id:
            try:
                paid = self._mark_paid(current.invoice_id, fresh=generated)
            except BackendRejection as e:
                outcome.warn("damage_invoice_paid", e.message)
        elif generated:
            outcome.warn("damage_invoice", "invoice generated but not yet linked to the inspection")

        return DamageInvoiceOutcome(
            inspection=current,
            invoice_id=current.invoice_id,
            recalculated=recalculated,
            generated=generated,
            paid=paid,
        )

    def reconcile(
        self,
        ctx: WorkflowContext,
        inspection: Inspection,
        *,
        cycle_id: Optional[str] = None,
        tiers: Optional[dict[str, list[PricingTier]]] = None,
    ) -> ReconciledTotals:
        damage_invoice: Optional[Invoice] = None
        if inspection.invoice_id:
            try:
                damage_invoice = self.billing.get_invoice(inspection.invoice_id)
            except BackendRejection as e:
                log.info("damage invoice fetch failed: %s", e.message, extra={"inspection_id": inspection.id})

        utility_invoices = self.fetch_utility_invoices(inspection.unit_id)
        if tiers is None:
            tiers = self.load_tiers(ctx.today)

        totals = reconcile_totals(
            inspection_id=inspection.id,
            marker=self.marker,
            damage_invoice=damage_invoice,
            utility_invoices=utility_invoices,
            estimates=list(self.estimates(ctx, tiers).values()),
            item_costs_total=inspection.item_costs_total(),
            stored_damage_total=inspection.total_damage_cost,
            cycle_id=cycle_id,
        )
        log.info(
            "reconciled total=%.2f utility_source=%s",
            totals.total_payable,
            totals.utility_source,
            extra={"inspection_id": inspection.id, "step": "reconcile"},
        )
        return totals

    # -------------------- entry points --------------------

    def run(self, ctx: WorkflowContext, inspection: Inspection) -> BillingOutcome:
        """Full pass right after a successful completion."""
        outcome = BillingOutcome(inspection_id=inspection.id)

        cycle = self.find_active_cycle()
        outcome.cycle_id = cycle.id if cycle else None

        outcome.readings = self.submit_meter_readings(ctx, cycle)
        if outcome.readings.failed:
            outcome.warn(
                "meter_readings",
                f"{outcome.readings.failed} meter reading(s) were rejected",
                submitted=outcome.readings.submitted,
                failed=outcome.readings.failed,
            )

        if cycle is None:
            if outcome.readings.submitted:
                outcome.warn("utility_export", "no active reading cycle; utility invoices were not generated")
        elif outcome.readings.submitted:
            try:
                outcome.export = self.export_utility_invoices(cycle, inspection.unit_id)
            except BackendRejection as e:
                outcome.warn("utility_export", e.message)
            else:
                if outcome.export.errors:
                    outcome.warn(
                        "utility_export",
                        f"{len(outcome.export.errors)} export error(s)",
                        created=outcome.export.invoices_created,
                        skipped=outcome.export.invoices_skipped,
                    )
                self.sleep(self.post_export_settle)

        return self._finish(ctx, inspection, outcome)

    def resume(self, ctx: WorkflowContext, inspection: Inspection) -> BillingOutcome:
        """Re-entry for an already completed inspection: damage invoice + reconcile only."""
        outcome = BillingOutcome(inspection_id=inspection.id)
        cycle = self.find_active_cycle()
        outcome.cycle_id = cycle.id if cycle else None
        return self._finish(ctx, inspection, outcome)

    def _finish(self, ctx: WorkflowContext, inspection: Inspection, outcome: BillingOutcome) -> BillingOutcome:
        outcome.damage = self.settle_damage_invoice(inspection, outcome)
        try:
            outcome.totals = self.reconcile(ctx, outcome.damage.inspection, cycle_id=outcome.cycle_id)
        except BackendRejection as e:
            outcome.warn("reconcile", e.message)
        return outcome
