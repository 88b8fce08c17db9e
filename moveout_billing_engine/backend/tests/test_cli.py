# backend/tests/test_cli.py
from __future__ import annotations

import json

from moveout.cli.__main__ import main


def test_price_from_tier_file(tmp_path, capsys):
    tiers = tmp_path / "water.json"
    tiers.write_text(
        json.dumps(
            {
                "tiers": [
                    {"tier_order": 1, "max_quantity": 100, "unit_price": 10},
                    {"tier_order": 2, "max_quantity": None, "unit_price": 15},
                ]
            }
        ),
        encoding="utf-8",
    )

    rc = main(["price", "--usage", "150", "--service", "water", "--tiers", str(tiers)])
    out = json.loads(capsys.readouterr().out)

    assert rc == 0
    assert out["service_code"] == "WATER"
    assert out["total"] == 2500
    assert out["estimate"] == 2500
    assert [b["quantity"] for b in out["breakdown"]] == [100, 50]


def test_negative_usage_is_rejected(capsys):
    rc = main(["price", "--usage", "-3", "--service", "WATER"])
    assert rc == 2
    assert json.loads(capsys.readouterr().out)["ok"] is False
