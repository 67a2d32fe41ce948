from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends

from ..deps import require_module
from ..services import dashboard as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/dashboard/metrics")
def api_dashboard_metrics(scope: TenantScope = Depends(require_module("dashboard"))) -> dict[str, Any]:
    return svc.dashboard_metrics(scope)


@router.get("/reports/overview")
def api_overview_report(
    start_date: date | None = None,
    end_date: date | None = None,
    scope: TenantScope = Depends(require_module("reports")),
) -> dict[str, Any]:
    return svc.overview_report(scope, start_date=start_date, end_date=end_date)
