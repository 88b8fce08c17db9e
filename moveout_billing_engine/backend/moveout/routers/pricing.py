from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException

from ..auth import Principal, require_technician
from ..clients.contracts import BillingGateway, PricingTier, normalize_service_code
from ..domain.errors import WorkflowError
from ..domain.pricing import calculate_price, estimate_usage_charge, tier_breakdown
from ..schemas import PricingPreviewIn, PricingPreviewOut, TierChargeOut
from .deps import get_billing_gateway
from .errors import to_http

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.post("/preview", response_model=PricingPreviewOut)
def preview_price(
    payload: PricingPreviewIn,
    p: Principal = Depends(require_technician),
    billing: BillingGateway = Depends(get_billing_gateway),
) -> PricingPreviewOut:
    service = normalize_service_code(payload.service_code)

    if payload.tiers is not None:
        tiers = [
            PricingTier(service_code=service or "", **t.model_dump())
            for t in payload.tiers
        ]
    else:
        if not service:
            raise HTTPException(status_code=422, detail="service_code or tiers required")
        try:
            tiers = billing.get_active_pricing_tiers(service, payload.as_of or date.today())
        except WorkflowError as e:
            raise to_http(e) from e

    breakdown = tier_breakdown(payload.usage, tiers)
    return PricingPreviewOut(
        usage=payload.usage,
        service_code=service,
        total=calculate_price(payload.usage, tiers),
        estimate=estimate_usage_charge(payload.usage, tiers),
        breakdown=[TierChargeOut(**c.as_dict()) for c in breakdown],
        tiers=tiers,
    )
