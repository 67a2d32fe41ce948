from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..auth_models import User
from ..deps import require_super_admin
from ..services import companies as svc

router = APIRouter(prefix="/api", tags=["companies"])


class CompanyIn(BaseModel):
    name: str = Field(..., min_length=1)
    trade_name: str | None = None
    cnpj: str | None = None
    email: str = Field(..., min_length=3)
    phone: str = Field(..., min_length=1)
    cep: str | None = None
    street: str | None = None
    number: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = Field(default=None, max_length=2)
    is_active: bool = True
    trial_end_date: date | None = None
    subscription_start_date: date | None = None
    subscription_end_date: date | None = None


class CompanyUpdateIn(BaseModel):
    name: str | None = None
    trade_name: str | None = None
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    cep: str | None = None
    street: str | None = None
    number: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = Field(default=None, max_length=2)
    is_active: bool | None = None
    trial_end_date: date | None = None
    subscription_start_date: date | None = None
    subscription_end_date: date | None = None


@router.get("/companies")
def api_companies(user: User = Depends(require_super_admin)) -> list[dict]:
    return svc.list_companies()


@router.get("/companies/{company_id}")
def api_company(company_id: int, user: User = Depends(require_super_admin)) -> dict[str, Any]:
    return svc.get_company(company_id)


@router.post("/companies", status_code=status.HTTP_201_CREATED)
def api_create_company(payload: CompanyIn, user: User = Depends(require_super_admin)) -> dict[str, Any]:
    """The response carries the admin's generated password; it is not stored in clear anywhere."""
    return svc.create_company_with_admin(payload.model_dump())


@router.put("/companies/{company_id}")
def api_update_company(company_id: int, payload: CompanyUpdateIn, user: User = Depends(require_super_admin)) -> dict[str, Any]:
    return svc.update_company(company_id, payload.model_dump(exclude_unset=True))


@router.get("/saas/metrics")
def api_saas_metrics(user: User = Depends(require_super_admin)) -> dict[str, Any]:
    return svc.saas_metrics()
