from __future__ import annotations

from datetime import date
from typing import Optional

import httpx

from ..config import settings
from .base_service import _as_list
from .contracts import Invoice, InvoiceStatus, PricingTier
from .http_client import JsonServiceClient


class FinanceServiceClient:
    """Invoices and pricing tiers (BillingGateway)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.http = JsonServiceClient(
            base_url or settings.finance_service_url,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus) -> Optional[Invoice]:
        data = self.http.put(f"/api/invoices/{invoice_id}/status", json={"status": InvoiceStatus(status).value})
        return Invoice.model_validate(data) if isinstance(data, dict) and data.get("id") else None

    def get_active_pricing_tiers(self, service_code: str, as_of: date) -> list[PricingTier]:
        data = self.http.get(
            f"/api/pricing-tiers/service/{service_code}/active",
            params={"date": as_of.isoformat()},
        )
        return [PricingTier.model_validate(x) for x in _as_list(data)]

    def get_invoice(self, invoice_id: str) -> Invoice:
        return Invoice.model_validate(self.http.get(f"/api/invoices/{invoice_id}"))

    def list_invoices_for_admin(
        self, *, unit_id: Optional[str] = None, service_code: Optional[str] = None
    ) -> list[Invoice]:
        data = self.http.get("/api/invoices/admin/all", params={"unitId": unit_id, "serviceCode": service_code})
        return [Invoice.model_validate(x) for x in _as_list(data)]
