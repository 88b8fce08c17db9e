from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Protocol

from ..clients.contracts import (
    AssignInspectorRequest,
    CreateInspectionRequest,
    Inspection,
    InspectionGateway,
    InspectionItem,
    InspectionItemUpdate,
    InspectionStatus,
)
from ..config import settings
from ..domain.completion_gates import assert_can_complete
from ..domain.condition_cost import ConditionStatus, parse_condition, resolve_item_cost
from ..domain.errors import ErrorKind, PreconditionFailed, ValidationFailed
from ..domain.meter_validation import ReadingCheck, validate_reading
from ..domain.retry import with_retry
from .billing_reconciliation import BillingOutcome, BillingReconciliationEngine
from .fanout import failures, run_all
from .workflow_context import MeterEntry, WorkflowContext, load_inspection

log = logging.getLogger("moveout.inspections")

COST_TOLERANCE = 0.01


class DraftStore(Protocol):
    def save(
        self,
        *,
        inspection_id: str,
        meter_id: str,
        index_text: Optional[str],
        note: Optional[str],
        error_kind: Optional[str],
    ) -> Any: ...


@dataclass(frozen=True)
class StartOutcome:
    inspection: Inspection
    items_loaded: bool
    reload_attempts: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ItemUpdateOutcome:
    inspection: Inspection
    item: Optional[InspectionItem]
    submitted_cost: Optional[float]
    confirmed: bool
    reload_attempts: int
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CompletionOutcome:
    inspection: Inspection
    total_damage_cost: float
    already_completed: bool = False
    billing: Optional[BillingOutcome] = None
    warnings: list[str] = field(default_factory=list)


def _invalid_transition(insp: Inspection, action: str) -> PreconditionFailed:
    return PreconditionFailed(
        ErrorKind.INVALID_TRANSITION,
        f"cannot {action} an inspection in status {insp.status.value}",
        details={"inspection_id": insp.id, "status": insp.status.value, "action": action},
    )


def _costs_match(a: Optional[float], b: Optional[float]) -> bool:
    # the server reports no cost as either null or 0
    return abs(float(a or 0.0) - float(b or 0.0)) <= COST_TOLERANCE


def _all_damaged_items_costed(insp: Inspection) -> bool:
    return all((it.cost or 0) > 0 for it in insp.items if it.has_condition and not it.is_good)


class InspectionLifecycleManager:
    """
    PENDING -> IN_PROGRESS -> COMPLETED state machine for a move-out
    inspection, driven against the base service.
    """

    def __init__(
        self,
        gateway: InspectionGateway,
        engine: Optional[BillingReconciliationEngine] = None,
        *,
        drafts: Optional[DraftStore] = None,
        item_reload_attempts: Optional[int] = None,
        item_reload_delay: Optional[float] = None,
        start_reload_attempts: Optional[int] = None,
        start_reload_interval: Optional[float] = None,
        max_workers: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.gateway = gateway
        self.engine = engine
        self.drafts = drafts
        self.item_reload_attempts = item_reload_attempts or settings.item_reload_attempts
        self.item_reload_delay = item_reload_delay if item_reload_delay is not None else settings.item_reload_delay_seconds
        self.start_reload_attempts = start_reload_attempts or settings.start_reload_attempts
        self.start_reload_interval = (
            start_reload_interval if start_reload_interval is not None else settings.start_reload_interval_seconds
        )
        self.max_workers = max_workers
        self.sleep = sleep

    def load(self, ctx: WorkflowContext) -> Inspection:
        insp = load_inspection(self.gateway, ctx.inspection_id, ctx.contract_id)
        ctx.inspection = insp
        return insp

    def _try_reload(self, ctx: WorkflowContext) -> Optional[Inspection]:
        insp = self.gateway.get_inspection(ctx.inspection_id)
        if insp is None and ctx.contract_id:
            insp = self.gateway.get_inspection_by_contract(ctx.contract_id)
        return insp

    # -------------------- create / assign --------------------

    def create(
        self,
        *,
        contract_id: str,
        unit_id: str,
        inspection_date: date,
        inspector_id: Optional[str] = None,
        inspector_name: Optional[str] = None,
    ) -> Inspection:
        req = CreateInspectionRequest(
            contract_id=contract_id,
            unit_id=unit_id,
            inspection_date=inspection_date,
            inspector_id=inspector_id,
            inspector_name=inspector_name,
        )
        insp = self.gateway.create_inspection(req)
        log.info("inspection created", extra={"inspection_id": insp.id})
        return insp

    def assign_inspector(self, ctx: WorkflowContext, inspector_id: str, inspector_name: str) -> Inspection:
        insp = self.load(ctx)
        if insp.status != InspectionStatus.PENDING:
            raise PreconditionFailed(
                ErrorKind.REASSIGNMENT_NOT_ALLOWED,
                f"inspector can only be assigned while PENDING (status {insp.status.value})",
                details={"inspection_id": insp.id, "status": insp.status.value},
            )
        out = self.gateway.assign_inspector(
            insp.id, AssignInspectorRequest(inspector_id=inspector_id, inspector_name=inspector_name)
        )
        ctx.inspection = out
        return out

    # -------------------- start --------------------

    def start(self, ctx: WorkflowContext) -> StartOutcome:
        insp = self.load(ctx)
        if insp.status != InspectionStatus.PENDING:
            raise _invalid_transition(insp, "start")
        if insp.inspection_date is not None and ctx.today < insp.inspection_date:
            raise PreconditionFailed(
                ErrorKind.NOT_YET_DUE,
                f"inspection is scheduled for {insp.inspection_date.isoformat()}",
                details={"inspection_date": insp.inspection_date.isoformat(), "today": ctx.today.isoformat()},
            )

        started = self.gateway.start_inspection(insp.id)
        ctx.inspection = started
        log.info("inspection started", extra={"inspection_id": insp.id, "step": "start"})
        if started.items:
            return StartOutcome(inspection=started, items_loaded=True)

        # items are generated from the unit's asset catalog after the start call returns
        res = with_retry(
            lambda: self._try_reload(ctx),
            max_attempts=self.start_reload_attempts,
            delay_seconds=self.start_reload_interval,
            accept=lambda i: i is not None and bool(i.items),
            sleep=self.sleep,
            label="start_reload",
        )
        latest = res.value or started
        ctx.inspection = latest
        warnings = [] if res.ok else ["inspection items are not available yet; reload later"]
        return StartOutcome(inspection=latest, items_loaded=res.ok, reload_attempts=res.attempts, warnings=warnings)

    # -------------------- items --------------------

    def update_item(
        self,
        ctx: WorkflowContext,
        item_id: str,
        *,
        condition_status: Optional[str],
        notes: Optional[str] = None,
        damage_cost: Optional[float] = None,
    ) -> ItemUpdateOutcome:
        try:
            condition = parse_condition(condition_status)
        except ValueError:
            raise ValidationFailed(
                ErrorKind.INVALID_CONDITION,
                f"unknown condition status {condition_status!r}",
                details={"item_id": item_id},
            )
        if condition is None:
            raise ValidationFailed(ErrorKind.CONDITION_REQUIRED, "condition status is required", details={"item_id": item_id})

        if damage_cost is not None:
            if damage_cost < 0:
                raise ValidationFailed(ErrorKind.COST_INVALID, "cost must be >= 0", details={"item_id": item_id})
            if condition is ConditionStatus.GOOD and damage_cost > 0:
                raise ValidationFailed(
                    ErrorKind.COST_INVALID, "an item in GOOD condition carries no cost", details={"item_id": item_id}
                )
            if condition is not ConditionStatus.GOOD and damage_cost == 0:
                raise ValidationFailed(
                    ErrorKind.COST_REQUIRED,
                    f"a {condition.value} item needs a cost > 0",
                    details={"item_id": item_id},
                )

        insp = self.load(ctx)
        if insp.status != InspectionStatus.IN_PROGRESS:
            raise _invalid_transition(insp, "update items of")

        item = insp.item(item_id)
        if item is None:
            raise PreconditionFailed(
                ErrorKind.ITEM_NOT_FOUND,
                f"item {item_id} does not belong to inspection {insp.id}",
                details={"item_id": item_id, "inspection_id": insp.id},
            )

        previous = parse_condition(item.condition_status) if item.has_condition else None
        cost = resolve_item_cost(
            condition=condition,
            reference_price=item.purchase_price,
            manual_cost=damage_cost,
            current_cost=item.cost,
            condition_changed=previous is not condition,
        )

        req = InspectionItemUpdate(condition_status=condition.value, notes=notes, damage_cost=cost)
        self.gateway.update_inspection_item(item_id, req)
        expected = cost if cost is not None else item.cost
        # cleared cost on a non-GOOD item: left for the operator, blocks completion
        needs_cost = cost == 0 and condition is not ConditionStatus.GOOD
        log.info("item updated", extra={"inspection_id": insp.id, "item_id": item_id, "step": "update_item"})

        def _settled(i: Optional[Inspection]) -> bool:
            if i is None:
                return False
            fresh = i.item(item_id)
            if fresh is None:
                return False
            return _costs_match(fresh.cost, expected) and (needs_cost or _all_damaged_items_costed(i))

        res = with_retry(
            lambda: self._try_reload(ctx),
            max_attempts=self.item_reload_attempts,
            delay_seconds=self.item_reload_delay,
            accept=_settled,
            sleep=self.sleep,
            label="item_reload",
        )
        latest = res.value or insp
        ctx.inspection = latest
        warnings = [] if res.ok else ["saved cost not yet reflected by the server; showing last reload"]
        if needs_cost:
            warnings.append(f"no default cost for a {condition.value} item without a purchase price; enter a cost")
        return ItemUpdateOutcome(
            inspection=latest,
            item=latest.item(item_id),
            submitted_cost=cost,
            confirmed=res.ok,
            reload_attempts=res.attempts,
            warnings=warnings,
        )

    # -------------------- meters --------------------

    def record_meter_reading(
        self,
        ctx: WorkflowContext,
        meter_id: str,
        index_text: Optional[str],
        note: Optional[str] = None,
    ) -> ReadingCheck:
        """
        Validate an index as it is typed and keep it as a draft. A failing
        check is not raised; it becomes an outstanding error that blocks
        completion until corrected.
        """
        meter = ctx.meter(meter_id)
        if meter is None:
            raise PreconditionFailed(
                ErrorKind.METER_NOT_FOUND,
                f"meter {meter_id} is not installed in this unit",
                details={"meter_id": meter_id},
            )
        insp = ctx.inspection or self.load(ctx)
        if insp.status in (InspectionStatus.COMPLETED, InspectionStatus.CANCELLED):
            raise _invalid_transition(insp, "record readings for")

        chk = validate_reading(index_text, meter.last_reading)
        ctx.entries[meter_id] = MeterEntry(meter_id=meter_id, index_text=index_text, note=note, error=chk.error)
        if self.drafts is not None:
            self.drafts.save(
                inspection_id=ctx.inspection_id,
                meter_id=meter_id,
                index_text=index_text,
                note=note,
                error_kind=chk.error.value if chk.error else None,
            )
        return chk

    # -------------------- complete --------------------

    def complete(self, ctx: WorkflowContext, notes: Optional[str] = None) -> CompletionOutcome:
        insp = self.load(ctx)

        if insp.status == InspectionStatus.CANCELLED:
            raise _invalid_transition(insp, "complete")
        if insp.status == InspectionStatus.COMPLETED:
            billing = self.engine.resume(ctx, insp) if self.engine else None
            latest = billing.damage.inspection if billing and billing.damage else insp
            return CompletionOutcome(
                inspection=latest,
                total_damage_cost=latest.item_costs_total(),
                already_completed=True,
                billing=billing,
            )
        if insp.status != InspectionStatus.IN_PROGRESS:
            raise _invalid_transition(insp, "complete")

        assert_can_complete(insp.items, ctx.meters, ctx.entries, ctx.outstanding_errors())

        warnings: list[str] = []
        checks = run_all(
            lambda it: self.gateway.update_inspection_item(
                it.id,
                InspectionItemUpdate(
                    condition_status=it.condition_status,
                    notes=it.notes,
                    checked=True,
                    checked_by=ctx.actor_id,
                    damage_cost=it.cost,
                ),
            ),
            insp.items,
            max_workers=self.max_workers,
            label="item_check",
        )
        failed = failures(checks)
        if failed:
            warnings.append(f"{len(failed)} item(s) could not be marked as checked")

        total = insp.item_costs_total()
        completed = self.gateway.complete_inspection(insp.id, notes)
        ctx.inspection = completed
        log.info(
            "inspection completed total_damage_cost=%.2f",
            total,
            extra={"inspection_id": insp.id, "step": "complete"},
        )

        billing = None
        if self.engine is not None:
            billing = self.engine.run(ctx, completed)
            if billing.damage is not None:
                completed = billing.damage.inspection
                ctx.inspection = completed

        return CompletionOutcome(inspection=completed, total_damage_cost=total, billing=billing, warnings=warnings)
