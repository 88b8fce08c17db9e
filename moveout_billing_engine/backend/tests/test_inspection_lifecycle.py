# backend/tests/test_inspection_lifecycle.py
from __future__ import annotations

from datetime import date

import pytest

from fakes import FakeBaseService, make_inspection, make_item, next_id
from moveout.clients.contracts import InspectionStatus
from moveout.domain.errors import ErrorKind, PreconditionFailed, ValidationFailed
from moveout.services.inspection_lifecycle import InspectionLifecycleManager
from moveout.services.meter_drafts import SqlDraftStore, list_drafts
from moveout.services.workflow_context import MeterEntry, WorkflowContext

TODAY = date(2026, 10, 17)


def _ctx(base: FakeBaseService, inspection_id: str = "insp-1", *, today: date = TODAY, entries=None) -> WorkflowContext:
    insp = base.inspections[inspection_id]
    ctx = WorkflowContext(
        inspection_id=inspection_id,
        contract_id=insp.contract_id,
        today=today,
        actor_id="tech-1",
        meters=base.get_meters_by_unit(insp.unit_id),
    )
    for meter_id, text in (entries or {}).items():
        ctx.entries[meter_id] = MeterEntry(meter_id=meter_id, index_text=text)
    return ctx


def _mgr(base: FakeBaseService, sleeps=None, **kw) -> InspectionLifecycleManager:
    opts = dict(
        item_reload_attempts=3,
        item_reload_delay=0.0,
        start_reload_attempts=5,
        start_reload_interval=0.0,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )
    opts.update(kw)
    return InspectionLifecycleManager(base, **opts)


# -------------------- assign / start --------------------


def test_assign_inspector_only_while_pending():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING))

    out = _mgr(base).assign_inspector(_ctx(base), "u-7", "Linh")
    assert out.inspector_id == "u-7"

    base.inspections["insp-1"].status = InspectionStatus.IN_PROGRESS
    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).assign_inspector(_ctx(base), "u-8", "Nam")
    assert ei.value.kind is ErrorKind.REASSIGNMENT_NOT_ALLOWED


def test_start_before_inspection_date_is_rejected():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING, inspection_date=date(2026, 10, 20)))

    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).start(_ctx(base, today=date(2026, 10, 19)))
    assert ei.value.kind is ErrorKind.NOT_YET_DUE
    assert base.count("start_inspection") == 0


def test_start_on_inspection_date_with_items_ready():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING, inspection_date=date(2026, 10, 20)))
    base.pending_items["insp-1"] = [make_item("i1"), make_item("i2")]

    out = _mgr(base).start(_ctx(base, today=date(2026, 10, 20)))
    assert out.inspection.status == InspectionStatus.IN_PROGRESS
    assert out.items_loaded
    assert out.reload_attempts == 0
    assert len(out.inspection.items) == 2


def test_start_polls_until_items_are_generated():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING))
    base.pending_items["insp-1"] = [make_item("i1")]
    base.items_after_reloads = 2
    sleeps: list[float] = []

    out = _mgr(base, sleeps).start(_ctx(base))
    assert out.items_loaded
    assert out.reload_attempts == 2
    assert [it.id for it in out.inspection.items] == ["i1"]
    assert sleeps == [0.0]


def test_start_gives_up_with_warning():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING))
    base.pending_items["insp-1"] = [make_item("i1")]
    base.items_after_reloads = 50

    out = _mgr(base, start_reload_attempts=3).start(_ctx(base))
    assert not out.items_loaded
    assert out.reload_attempts == 3
    assert out.warnings
    assert out.inspection.status == InspectionStatus.IN_PROGRESS


def test_start_twice_is_an_invalid_transition():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.IN_PROGRESS))
    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).start(_ctx(base))
    assert ei.value.kind is ErrorKind.INVALID_TRANSITION


# -------------------- item updates --------------------


@pytest.mark.parametrize(
    "condition,cost,kind",
    [
        (None, None, ErrorKind.CONDITION_REQUIRED),
        ("", 10.0, ErrorKind.CONDITION_REQUIRED),
        ("BROKEN", None, ErrorKind.INVALID_CONDITION),
        ("GOOD", 5.0, ErrorKind.COST_INVALID),
        ("DAMAGED", -1.0, ErrorKind.COST_INVALID),
        ("DAMAGED", 0.0, ErrorKind.COST_REQUIRED),
    ],
)
def test_item_validation_happens_before_any_call(condition, cost, kind):
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", purchase_price=1000)]))

    with pytest.raises(ValidationFailed) as ei:
        _mgr(base).update_item(_ctx(base), "i1", condition_status=condition, damage_cost=cost)
    assert ei.value.kind is kind
    assert base.calls == []


def test_item_update_requires_in_progress_and_known_item():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.PENDING, items=[make_item("i1")]))
    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).update_item(_ctx(base), "i1", condition_status="GOOD")
    assert ei.value.kind is ErrorKind.INVALID_TRANSITION

    base.inspections["insp-1"].status = InspectionStatus.IN_PROGRESS
    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).update_item(_ctx(base), "nope", condition_status="GOOD")
    assert ei.value.kind is ErrorKind.ITEM_NOT_FOUND


def test_default_cost_is_applied_and_confirmed_through_stale_reloads():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", purchase_price=1_000_000)]))
    base.stale_reloads = 2
    sleeps: list[float] = []

    out = _mgr(base, sleeps).update_item(_ctx(base), "i1", condition_status="DAMAGED")

    assert out.submitted_cost == 300_000
    assert out.confirmed
    assert out.reload_attempts == 3
    assert out.item.cost == 300_000
    assert len(sleeps) == 2


def test_unconfirmed_update_returns_last_reload_with_warning():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", purchase_price=1_000_000)]))
    base.stale_reloads = 10

    out = _mgr(base).update_item(_ctx(base), "i1", condition_status="MISSING")
    assert not out.confirmed
    assert out.reload_attempts == 3
    assert out.warnings
    assert out.item.cost is None


def test_manual_cost_survives_notes_only_edit():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", condition="DAMAGED", cost=450, purchase_price=1000)]))
    mgr = _mgr(base)

    out = mgr.update_item(_ctx(base), "i1", condition_status="DAMAGED", notes="scratched door")
    assert out.submitted_cost is None
    assert out.item.cost == 450
    assert out.item.notes == "scratched door"
    updates = [c for c in base.calls if c[0] == "update_inspection_item"]
    assert "damage_cost" not in updates[-1][2]

    out = mgr.update_item(_ctx(base), "i1", condition_status="MISSING")
    assert out.item.cost == 1000

    out = mgr.update_item(_ctx(base), "i1", condition_status="MISSING", damage_cost=700)
    assert out.item.cost == 700


def test_good_condition_zeroes_cost():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", condition="DAMAGED", cost=450, purchase_price=1000)]))
    out = _mgr(base).update_item(_ctx(base), "i1", condition_status="GOOD")
    assert out.submitted_cost == 0
    assert out.item.cost == 0


def test_condition_change_without_purchase_price_clears_stale_cost():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", condition="DAMAGED", cost=300_000, purchase_price=None)]))
    mgr = _mgr(base)

    out = mgr.update_item(_ctx(base), "i1", condition_status="REPAIRED")
    assert out.submitted_cost == 0
    assert out.confirmed
    assert out.item.condition_status == "REPAIRED"
    assert out.item.cost == 0
    assert any("enter a cost" in w for w in out.warnings)

    with pytest.raises(PreconditionFailed) as ei:
        mgr.complete(_ctx(base))
    assert ei.value.kind is ErrorKind.ITEMS_INVALID_COST
    assert base.count("complete_inspection") == 0

    out = mgr.update_item(_ctx(base), "i1", condition_status="REPAIRED", damage_cost=150_000)
    assert out.item.cost == 150_000
    assert mgr.complete(_ctx(base)).total_damage_cost == 150_000


# -------------------- meter readings --------------------


def test_record_meter_reading_keeps_draft_and_error(db):
    insp_id = next_id("insp")
    base = FakeBaseService()
    base.add(make_inspection(insp_id))
    base.add_meter("unit-1", "w", "WATER", 10)
    mgr = _mgr(base, drafts=SqlDraftStore(db))
    ctx = _ctx(base, insp_id)

    chk = mgr.record_meter_reading(ctx, "w", "9")
    assert chk.error is not None
    assert ctx.outstanding_errors() == {"w": chk.error}
    rows = list_drafts(db, insp_id)
    assert [(r.meter_id, r.index_text, r.error_kind) for r in rows] == [("w", "9", "BelowPrevious")]

    chk = mgr.record_meter_reading(ctx, "w", "12.5", note="kitchen")
    assert chk.ok and chk.usage == 2.5
    assert ctx.outstanding_errors() == {}
    rows = list_drafts(db, insp_id)
    assert len(rows) == 1
    assert rows[0].index_text == "12.5"
    assert rows[0].error_kind is None
    assert rows[0].note == "kitchen"


def test_record_meter_reading_rejects_unknown_meter_and_closed_inspection():
    base = FakeBaseService()
    base.add(make_inspection(status=InspectionStatus.COMPLETED))
    base.add_meter("unit-1", "w", "WATER", 10)
    ctx = _ctx(base)

    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).record_meter_reading(ctx, "ghost", "11")
    assert ei.value.kind is ErrorKind.METER_NOT_FOUND

    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).record_meter_reading(ctx, "w", "11")
    assert ei.value.kind is ErrorKind.INVALID_TRANSITION


# -------------------- completion --------------------


def test_damaged_item_without_cost_blocks_completion():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1", condition="DAMAGED", cost=0)]))

    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).complete(_ctx(base))
    assert ei.value.kind is ErrorKind.ITEMS_INVALID_COST
    assert ei.value.details == {"item_ids": ["i1"]}
    assert base.count("complete_inspection") == 0

    base.inspections["insp-1"].items[0].damage_cost = 1
    out = _mgr(base).complete(_ctx(base), notes="ok")
    assert out.inspection.status == InspectionStatus.COMPLETED
    assert out.total_damage_cost == 1
    assert out.billing is None


def test_completion_gates_fire_in_order():
    base = FakeBaseService()
    base.add(make_inspection(items=[make_item("i1"), make_item("i2", condition="DAMAGED")]))
    base.add_meter("unit-1", "w", "WATER", 10)
    mgr = _mgr(base)

    def kind(ctx):
        with pytest.raises(PreconditionFailed) as ei:
            mgr.complete(ctx)
        return ei.value.kind

    assert kind(_ctx(base)) is ErrorKind.ITEMS_MISSING_STATUS

    base.inspections["insp-1"].items[0].condition_status = "GOOD"
    assert kind(_ctx(base)) is ErrorKind.ITEMS_INVALID_COST

    base.inspections["insp-1"].items[1].damage_cost = 10
    assert kind(_ctx(base)) is ErrorKind.METERS_MISSING_READING

    ctx = _ctx(base)
    mgr.record_meter_reading(ctx, "w", "3")
    assert kind(ctx) is ErrorKind.METER_READING_INVALID

    assert kind(_ctx(base, entries={"w": "10"})) is ErrorKind.METERS_INVALID_READING

    mgr.record_meter_reading(ctx, "w", "12")
    out = mgr.complete(ctx)
    assert out.inspection.status == InspectionStatus.COMPLETED
    assert out.total_damage_cost == 10


def test_completion_marks_items_checked_and_keeps_costs():
    base = FakeBaseService()
    base.add(
        make_inspection(
            items=[make_item("i1", condition="DAMAGED", cost=450, purchase_price=1000), make_item("i2", condition="GOOD")]
        )
    )
    _mgr(base).complete(_ctx(base))

    sent = {c[1]: c[2] for c in base.calls if c[0] == "update_inspection_item"}
    assert sent["i1"]["checked"] is True
    assert sent["i1"]["damage_cost"] == 450
    assert sent["i1"]["checked_by"] == "tech-1"
    assert sent["i2"]["checked"] is True
    assert all(it.checked for it in base.inspections["insp-1"].items)


@pytest.mark.parametrize("status", [InspectionStatus.CANCELLED, InspectionStatus.PENDING])
def test_complete_from_wrong_status(status):
    base = FakeBaseService()
    base.add(make_inspection(status=status, items=[make_item("i1", condition="GOOD")]))
    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).complete(_ctx(base))
    assert ei.value.kind is ErrorKind.INVALID_TRANSITION


def test_unknown_inspection_falls_back_to_contract_lookup():
    base = FakeBaseService()
    base.add(make_inspection("insp-9", status=InspectionStatus.PENDING))
    ctx = WorkflowContext(inspection_id="stale-id", contract_id="contract-insp-9", today=TODAY)

    insp = _mgr(base).load(ctx)
    assert insp.id == "insp-9"

    with pytest.raises(PreconditionFailed) as ei:
        _mgr(base).load(WorkflowContext(inspection_id="stale-id", today=TODAY))
    assert ei.value.kind is ErrorKind.INSPECTION_NOT_FOUND
