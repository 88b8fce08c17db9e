# backend/tests/test_condition_cost.py
from __future__ import annotations

import pytest

from moveout.domain.condition_cost import ConditionStatus, default_cost, parse_condition, resolve_item_cost


def test_default_cost_examples():
    assert default_cost("DAMAGED", 1_000_000) == 300_000
    assert default_cost("REPAIRED", 1_000_000) == 200_000
    assert default_cost("MISSING", 1_000_000) == 1_000_000
    assert default_cost("REPLACED", 1_000_000) == 1_000_000


def test_good_is_zero_with_or_without_reference():
    assert default_cost("GOOD", 1_000_000) == 0
    assert default_cost("GOOD", None) == 0
    assert default_cost(ConditionStatus.GOOD, 0) == 0


def test_no_reference_means_manual_entry():
    assert default_cost("DAMAGED", None) is None
    assert default_cost("MISSING", 0) is None
    assert default_cost(None, 1000) is None
    assert default_cost("  ", 1000) is None


def test_rounding_is_half_up():
    # 0.3 * 5 = 1.5 -> 2 ; 0.2 * 12.5 = 2.5 -> 3
    assert default_cost("DAMAGED", 5) == 2
    assert default_cost("REPAIRED", 12.5) == 3


def test_parse_condition():
    assert parse_condition(" damaged ") is ConditionStatus.DAMAGED
    assert parse_condition("") is None
    with pytest.raises(ValueError):
        parse_condition("BROKEN")


def test_manual_cost_overrides_default():
    cost = resolve_item_cost(
        condition="DAMAGED", reference_price=1000, manual_cost=450, current_cost=300, condition_changed=True
    )
    assert cost == 450


def test_condition_change_resets_to_default():
    cost = resolve_item_cost(
        condition="MISSING", reference_price=1000, manual_cost=None, current_cost=450, condition_changed=True
    )
    assert cost == 1000


def test_condition_change_without_reference_clears_cost():
    cost = resolve_item_cost(
        condition="REPAIRED", reference_price=None, manual_cost=None, current_cost=300_000, condition_changed=True
    )
    assert cost == 0

    # a notes-only edit still leaves the stored cost alone
    cost = resolve_item_cost(
        condition="REPAIRED", reference_price=None, manual_cost=None, current_cost=300_000, condition_changed=False
    )
    assert cost is None


def test_notes_only_edit_keeps_stored_cost():
    cost = resolve_item_cost(
        condition="DAMAGED", reference_price=1000, manual_cost=None, current_cost=450, condition_changed=False
    )
    assert cost is None


def test_first_assessment_gets_default():
    cost = resolve_item_cost(
        condition="DAMAGED", reference_price=1000, manual_cost=None, current_cost=None, condition_changed=False
    )
    assert cost == 300


def test_good_always_resolves_to_zero():
    cost = resolve_item_cost(
        condition="GOOD", reference_price=1000, manual_cost=None, current_cost=450, condition_changed=False
    )
    assert cost == 0
