from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import require_module
from ..models import ExpenseCategory, PaymentMethod, PaymentStatus
from ..services import financial as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["financial"])

financial_scope = require_module("financial")


class ReceivableIn(BaseModel):
    patient_id: int
    consultation_id: int | None = None
    appointment_id: int | None = None
    amount: Decimal = Field(..., gt=0)
    due_date: date
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    description: str | None = None
    installments: int = Field(1, ge=1)
    installment_number: int = Field(1, ge=1)
    notes: str | None = None


class ReceivableUpdateIn(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    due_date: date | None = None
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    status: PaymentStatus | None = None
    description: str | None = None
    notes: str | None = None


class SelectedProduct(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)


class FromConsultationIn(BaseModel):
    consultation_id: int
    procedure_ids: list[int] = Field(default_factory=list)
    selected_products: list[SelectedProduct] = Field(default_factory=list)
    installments: int = Field(1, ge=1, le=48)
    custom_amount: Decimal | None = None
    payment_method: PaymentMethod = PaymentMethod.PIX
    due_date: date | None = None


class PayableIn(BaseModel):
    amount: Decimal = Field(..., gt=0)
    due_date: date
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    status: PaymentStatus = PaymentStatus.PENDING
    category: ExpenseCategory
    description: str = Field(..., min_length=1)
    supplier: str | None = None
    notes: str | None = None
    account_type: Literal["clinic", "dentist"] = "clinic"
    dentist_id: int | None = None


class PayableUpdateIn(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)
    due_date: date | None = None
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None
    status: PaymentStatus | None = None
    category: ExpenseCategory | None = None
    description: str | None = None
    supplier: str | None = None
    notes: str | None = None
    account_type: Literal["clinic", "dentist"] | None = None
    dentist_id: int | None = None


def _set_fields(payload: BaseModel) -> dict[str, Any]:
    """Explicit nulls only clear the optional text/date fields."""
    keep_null = {"payment_date", "payment_method", "description", "notes", "supplier", "dentist_id"}
    return {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k in keep_null}


# =========================
# Receivables
# =========================
@router.get("/receivables")
def api_receivables(
    patient_id: int | None = None,
    status: PaymentStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    dentist_id: int | None = None,
    scope: TenantScope = Depends(financial_scope),
) -> list[dict]:
    return svc.list_receivables(
        scope, patient_id=patient_id, status=status, start_date=start_date, end_date=end_date, dentist_id=dentist_id
    )


@router.post("/receivables/from-consultation", status_code=status.HTTP_201_CREATED)
def api_from_consultation(payload: FromConsultationIn, scope: TenantScope = Depends(financial_scope)) -> list[dict]:
    return svc.create_receivables_from_consultation(
        scope,
        payload.consultation_id,
        procedure_ids=payload.procedure_ids,
        selected_products=[p.model_dump() for p in payload.selected_products],
        installments=payload.installments,
        custom_amount=payload.custom_amount,
        payment_method=payload.payment_method,
        due_date=payload.due_date,
    )


@router.get("/receivables/{receivable_id}")
def api_receivable(receivable_id: int, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    return svc.get_receivable(scope, receivable_id)


@router.post("/receivables", status_code=status.HTTP_201_CREATED)
def api_create_receivable(payload: ReceivableIn, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    return svc.create_receivable(scope, payload.model_dump())


@router.put("/receivables/{receivable_id}")
def api_update_receivable(
    receivable_id: int, payload: ReceivableUpdateIn, scope: TenantScope = Depends(financial_scope)
) -> dict[str, Any]:
    return svc.update_receivable(scope, receivable_id, _set_fields(payload))


@router.delete("/receivables/{receivable_id}")
def api_delete_receivable(receivable_id: int, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    svc.delete_receivable(scope, receivable_id)
    return {"message": "Receivable deleted"}


# =========================
# Payables
# =========================
@router.get("/payables")
def api_payables(
    status: PaymentStatus | None = None,
    category: ExpenseCategory | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    scope: TenantScope = Depends(financial_scope),
) -> list[dict]:
    return svc.list_payables(scope, status=status, category=category, start_date=start_date, end_date=end_date)


@router.get("/payables/{payable_id}")
def api_payable(payable_id: int, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    return svc.get_payable(scope, payable_id)


@router.post("/payables", status_code=status.HTTP_201_CREATED)
def api_create_payable(payload: PayableIn, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    return svc.create_payable(scope, payload.model_dump())


@router.put("/payables/{payable_id}")
def api_update_payable(
    payable_id: int, payload: PayableUpdateIn, scope: TenantScope = Depends(financial_scope)
) -> dict[str, Any]:
    return svc.update_payable(scope, payable_id, _set_fields(payload))


@router.delete("/payables/{payable_id}")
def api_delete_payable(payable_id: int, scope: TenantScope = Depends(financial_scope)) -> dict[str, Any]:
    svc.delete_payable(scope, payable_id)
    return {"message": "Payable deleted"}


# =========================
# Cash flow / metrics
# =========================
@router.get("/cash-flow")
def api_cash_flow(
    start_date: date | None = None,
    end_date: date | None = None,
    scope: TenantScope = Depends(financial_scope),
) -> dict[str, Any]:
    return svc.cash_flow(scope, start_date=start_date, end_date=end_date)


@router.get("/financial-metrics")
def api_financial_metrics(
    start_date: date | None = None,
    end_date: date | None = None,
    scope: TenantScope = Depends(financial_scope),
) -> dict[str, Any]:
    return svc.financial_metrics(scope, start_date=start_date, end_date=end_date)
