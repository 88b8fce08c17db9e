from __future__ import annotations

from typing import Callable

from ..clients.base_service import BaseServiceClient
from ..clients.contracts import BillingGateway, InspectionGateway
from ..clients.finance_service import FinanceServiceClient
from ..config import settings


def get_inspection_gateway() -> InspectionGateway:
    return BaseServiceClient()


def get_billing_gateway() -> BillingGateway:
    return FinanceServiceClient()


def _schedule_with_celery(billing_run_id: int) -> None:
    from ..workers.reconcile_tasks import poll_reconciliation

    poll_reconciliation.apply_async(
        args=[int(billing_run_id)],
        countdown=settings.reconcile_poll_interval_seconds,
    )


def get_poll_scheduler() -> Callable[[int], None]:
    return _schedule_with_celery
