from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import require_module
from ..models import PurchaseOrderStatus, ReceivingStatus
from ..services import purchasing as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["purchases"])

purchases_scope = require_module("purchases")


class SupplierIn(BaseModel):
    name: str = Field(..., min_length=1)
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool = True


class SupplierUpdateIn(BaseModel):
    name: str | None = None
    cnpj: str | None = None
    email: str | None = None
    phone: str | None = None
    contact_person: str | None = None
    address: str | None = None
    notes: str | None = None
    is_active: bool | None = None


class OrderItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)
    notes: str | None = None


class OrderIn(BaseModel):
    supplier_id: int
    order_date: date | None = None
    expected_delivery_date: date | None = None
    status: PurchaseOrderStatus = PurchaseOrderStatus.DRAFT
    total_amount: Decimal | None = Field(default=None, ge=0)
    installments: int = Field(1, ge=1)
    notes: str | None = None
    items: list[OrderItemIn] = Field(..., min_length=1)


class OrderUpdateIn(BaseModel):
    supplier_id: int | None = None
    order_date: date | None = None
    expected_delivery_date: date | None = None
    status: PurchaseOrderStatus | None = None
    total_amount: Decimal | None = Field(default=None, ge=0)
    installments: int | None = Field(default=None, ge=1)
    notes: str | None = None
    items: list[OrderItemIn] | None = None


class ReceivedItemIn(BaseModel):
    id: int
    quantity_received: Decimal = Field(..., ge=0)
    notes: str | None = None


class ReceivingStatusIn(BaseModel):
    status: ReceivingStatus
    receiving_date: date | None = None
    items: list[ReceivedItemIn] | None = None


# =========================
# Suppliers
# =========================
@router.get("/suppliers")
def api_suppliers(scope: TenantScope = Depends(purchases_scope)) -> list[dict]:
    return svc.list_suppliers(scope)


@router.get("/suppliers/{supplier_id}")
def api_supplier(supplier_id: int, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    return svc.get_supplier(scope, supplier_id)


@router.post("/suppliers", status_code=status.HTTP_201_CREATED)
def api_create_supplier(payload: SupplierIn, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    return svc.create_supplier(scope, payload.model_dump())


@router.put("/suppliers/{supplier_id}")
def api_update_supplier(
    supplier_id: int, payload: SupplierUpdateIn, scope: TenantScope = Depends(purchases_scope)
) -> dict[str, Any]:
    return svc.update_supplier(scope, supplier_id, payload.model_dump(exclude_unset=True))


@router.delete("/suppliers/{supplier_id}")
def api_delete_supplier(supplier_id: int, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    svc.delete_supplier(scope, supplier_id)
    return {"message": "Supplier deleted"}


# =========================
# Purchase orders
# =========================
@router.get("/purchase-orders")
def api_orders(scope: TenantScope = Depends(purchases_scope)) -> list[dict]:
    return svc.list_orders(scope)


@router.get("/purchase-orders/{order_id}")
def api_order(order_id: int, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    return svc.get_order(scope, order_id)


@router.post("/purchase-orders", status_code=status.HTTP_201_CREATED)
def api_create_order(payload: OrderIn, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    data = payload.model_dump(exclude={"items"})
    return svc.create_order(scope, data, [i.model_dump() for i in payload.items])


@router.put("/purchase-orders/{order_id}")
def api_update_order(order_id: int, payload: OrderUpdateIn, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    data = payload.model_dump(exclude_unset=True, exclude={"items"})
    items = [i.model_dump() for i in payload.items] if payload.items is not None else None
    return svc.update_order(scope, order_id, data, items)


@router.delete("/purchase-orders/{order_id}")
def api_delete_order(order_id: int, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    svc.delete_order(scope, order_id)
    return {"message": "Purchase order deleted"}


# =========================
# Receivings
# =========================
@router.get("/receivings")
def api_receivings(scope: TenantScope = Depends(purchases_scope)) -> list[dict]:
    return svc.list_receivings(scope)


@router.get("/receivings/{receiving_id}")
def api_receiving(receiving_id: int, scope: TenantScope = Depends(purchases_scope)) -> dict[str, Any]:
    return svc.get_receiving(scope, receiving_id)


@router.put("/receivings/{receiving_id}/status")
def api_receiving_status(
    receiving_id: int, payload: ReceivingStatusIn, scope: TenantScope = Depends(purchases_scope)
) -> dict[str, Any]:
    items = [i.model_dump(exclude_unset=True) for i in payload.items] if payload.items is not None else None
    return svc.update_receiving_status(scope, receiving_id, payload.status, payload.receiving_date, items)
