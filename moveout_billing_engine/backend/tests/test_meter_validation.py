# backend/tests/test_meter_validation.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pytest

from moveout.domain.meter_validation import MeterErrorKind, sweep_readings, validate_reading


@dataclass
class M:
    id: str
    last_reading: Optional[float]


def test_validator_examples_against_previous_10():
    assert validate_reading("10", 10).error is MeterErrorKind.NO_USAGE
    assert validate_reading("9", 10).error is MeterErrorKind.BELOW_PREVIOUS
    assert validate_reading("-1", 10).error is MeterErrorKind.NEGATIVE_INDEX

    ok = validate_reading("10.5", 10)
    assert ok.ok
    assert ok.usage == pytest.approx(0.5)


@pytest.mark.parametrize("text", ["", "   ", "abc", "nan", "inf", None, "1,5"])
def test_unparseable_index(text):
    chk = validate_reading(text, 0)
    assert chk.error is MeterErrorKind.INVALID_NUMBER
    assert chk.usage is None


def test_missing_previous_is_zero():
    chk = validate_reading("3", None)
    assert chk.ok
    assert chk.previous_index == 0
    assert chk.usage == 3


def test_sweep_reports_missing_and_invalid():
    meters = [M("w", 10), M("e", 100), M("x", None), M("z", None)]
    res = sweep_readings(meters, {"w": "12", "e": "100", "z": "0"})

    assert not res.ok
    assert res.missing == ["x"]
    assert res.invalid == {"e": MeterErrorKind.NO_USAGE, "z": MeterErrorKind.NO_USAGE}
    assert res.checks["w"].usage == 2


def test_sweep_accepts_objects_with_index_text():
    @dataclass
    class Entry:
        index_text: str

    res = sweep_readings([M("w", 1)], {"w": Entry("2")})
    assert res.ok
