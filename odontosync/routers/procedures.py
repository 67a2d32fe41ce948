from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import require_module
from ..services import procedures as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["procedures"])

procedures_scope = require_module("procedures")


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    is_active: bool = True


class CategoryUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None


class ProcedureIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    price: Decimal = Field(..., ge=0)
    duration: int = Field(30, gt=0)
    category: str = ""
    category_id: int | None = None
    is_active: bool = True


class ProcedureUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, gt=0)
    category: str | None = None
    category_id: int | None = None
    is_active: bool | None = None


@router.get("/procedure-categories")
def api_categories(scope: TenantScope = Depends(procedures_scope)) -> list[dict]:
    return svc.list_categories(scope)


@router.post("/procedure-categories", status_code=status.HTTP_201_CREATED)
def api_create_category(payload: CategoryIn, scope: TenantScope = Depends(procedures_scope)) -> dict[str, Any]:
    return svc.create_category(scope, payload.model_dump())


@router.put("/procedure-categories/{category_id}")
def api_update_category(
    category_id: int, payload: CategoryUpdateIn, scope: TenantScope = Depends(procedures_scope)
) -> dict[str, Any]:
    return svc.update_category(scope, category_id, payload.model_dump(exclude_unset=True))


@router.get("/procedures")
def api_procedures(
    search: str | None = None,
    category_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
    scope: TenantScope = Depends(procedures_scope),
) -> list[dict]:
    return svc.list_procedures(scope, search=search, category_id=category_id, limit=limit, offset=offset)


@router.get("/procedures/{procedure_id}")
def api_procedure(procedure_id: int, scope: TenantScope = Depends(procedures_scope)) -> dict[str, Any]:
    return svc.get_procedure(scope, procedure_id)


@router.post("/procedures", status_code=status.HTTP_201_CREATED)
def api_create_procedure(payload: ProcedureIn, scope: TenantScope = Depends(procedures_scope)) -> dict[str, Any]:
    return svc.create_procedure(scope, payload.model_dump())


@router.put("/procedures/{procedure_id}")
def api_update_procedure(
    procedure_id: int, payload: ProcedureUpdateIn, scope: TenantScope = Depends(procedures_scope)
) -> dict[str, Any]:
    return svc.update_procedure(scope, procedure_id, payload.model_dump(exclude_unset=True))
