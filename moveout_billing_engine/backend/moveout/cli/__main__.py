# backend/moveout/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from moveout.clients.base_service import BaseServiceClient
from moveout.clients.contracts import PricingTier, normalize_service_code
from moveout.clients.finance_service import FinanceServiceClient
from moveout.db import SessionLocal
from moveout.domain.errors import WorkflowError
from moveout.domain.pricing import calculate_price, estimate_usage_charge, tier_breakdown
from moveout.services.billing_reconciliation import BillingReconciliationEngine
from moveout.services.billing_runs import latest_run, record_snapshot
from moveout.services.workflow_context import build_context


def _load_tiers(path: Optional[str], service: Optional[str], as_of: date) -> list[PricingTier]:
    if path:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        rows = raw.get("tiers", []) if isinstance(raw, dict) else raw
        return [PricingTier.model_validate({"service_code": service or "", **r}) for r in rows]
    if not service:
        raise SystemExit("--service is required when --tiers is not given")
    return FinanceServiceClient().get_active_pricing_tiers(service, as_of)


def cmd_price(args: argparse.Namespace) -> int:
    service = normalize_service_code(args.service)
    as_of = date.fromisoformat(args.as_of) if args.as_of else date.today()
    tiers = _load_tiers(args.tiers, service, as_of)

    out = {
        "service_code": service,
        "usage": args.usage,
        "total": calculate_price(args.usage, tiers),
        "estimate": estimate_usage_charge(args.usage, tiers),
        "breakdown": [c.as_dict() for c in tier_breakdown(args.usage, tiers)],
    }
    print(json.dumps(out, ensure_ascii=False, indent=2))
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    gateway = BaseServiceClient()
    engine = BillingReconciliationEngine(gateway, FinanceServiceClient())

    db = SessionLocal()
    try:
        ctx = build_context(db, gateway, args.inspection_id, contract_id=args.contract_id)
        run = latest_run(db, ctx.inspection_id)
        cycle_id = run.cycle_id if run is not None else None
        totals = engine.reconcile(ctx, ctx.inspection, cycle_id=cycle_id)
        if run is not None and not args.dry_run:
            record_snapshot(db, run, totals)
    finally:
        db.close()

    print(json.dumps({"ok": True, "inspection_id": args.inspection_id, **totals.as_dict()}, ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="moveout")
    sub = p.add_subparsers(dest="command", required=True)

    price = sub.add_parser("price", help="tiered price preview for a usage quantity")
    price.add_argument("--usage", type=float, required=True)
    price.add_argument("--service", default=None, help="WATER or ELECTRIC")
    price.add_argument("--tiers", default=None, help="JSON file with a tier list (skips the finance service)")
    price.add_argument("--as-of", default=None, help="YYYY-MM-DD, default today")
    price.set_defaults(func=cmd_price)

    rec = sub.add_parser("reconcile", help="one-shot reconciliation of an inspection's totals")
    rec.add_argument("--inspection-id", required=True)
    rec.add_argument("--contract-id", default=None)
    rec.add_argument("--dry-run", action="store_true", help="do not update the latest billing run")
    rec.set_defaults(func=cmd_reconcile)
    return p


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if getattr(args, "usage", None) is not None and args.usage < 0:
        print(json.dumps({"ok": False, "error": "usage must be non-negative"}))
        return 2
    try:
        return int(args.func(args))
    except WorkflowError as e:
        print(json.dumps({"ok": False, **e.as_dict()}, ensure_ascii=False))
        return 1


if __name__ == "__main__":
    sys.exit(main())
