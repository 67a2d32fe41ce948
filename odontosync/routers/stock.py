from __future__ import annotations

from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import require_module
from ..models import StockMovementType
from ..services import stock as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["stock"])

stock_scope = require_module("stock")


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    is_active: bool = True


class CategoryUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None


class ProductIn(BaseModel):
    category_id: int
    name: str = Field(..., min_length=1)
    description: str | None = None
    sku: str | None = None
    barcode: str | None = None
    unit: str = "unit"
    unit_price: Decimal = Field(..., ge=0)
    cost_price: Decimal | None = Field(default=None, ge=0)
    current_stock: Decimal = Field(Decimal("0"), ge=0)
    minimum_stock: Decimal = Field(Decimal("0"), ge=0)
    maximum_stock: Decimal | None = Field(default=None, ge=0)
    supplier: str | None = None
    location: str | None = None
    notes: str | None = None
    is_active: bool = True


class ProductUpdateIn(BaseModel):
    category_id: int | None = None
    name: str | None = None
    description: str | None = None
    sku: str | None = None
    barcode: str | None = None
    unit: str | None = None
    unit_price: Decimal | None = Field(default=None, ge=0)
    cost_price: Decimal | None = Field(default=None, ge=0)
    minimum_stock: Decimal | None = Field(default=None, ge=0)
    maximum_stock: Decimal | None = Field(default=None, ge=0)
    supplier: str | None = None
    location: str | None = None
    notes: str | None = None
    is_active: bool | None = None


class MovementIn(BaseModel):
    product_id: int
    type: StockMovementType
    quantity: Decimal = Field(..., ge=0)
    unit_cost: Decimal | None = Field(default=None, ge=0)
    reason: str | None = None
    reference: str | None = None
    notes: str | None = None


# =========================
# Categories
# =========================
@router.get("/product-categories")
def api_categories(scope: TenantScope = Depends(stock_scope)) -> list[dict]:
    return svc.list_categories(scope)


@router.get("/product-categories/{category_id}")
def api_category(category_id: int, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.get_category(scope, category_id)


@router.post("/product-categories", status_code=status.HTTP_201_CREATED)
def api_create_category(payload: CategoryIn, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.create_category(scope, payload.model_dump())


@router.put("/product-categories/{category_id}")
def api_update_category(
    category_id: int, payload: CategoryUpdateIn, scope: TenantScope = Depends(stock_scope)
) -> dict[str, Any]:
    return svc.update_category(scope, category_id, payload.model_dump(exclude_unset=True))


@router.delete("/product-categories/{category_id}")
def api_delete_category(category_id: int, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    svc.delete_category(scope, category_id)
    return {"message": "Category deleted"}


# =========================
# Products
# =========================
@router.get("/products")
def api_products(category_id: int | None = None, scope: TenantScope = Depends(stock_scope)) -> list[dict]:
    return svc.list_products(scope, category_id=category_id)


@router.get("/products/low-stock")
def api_low_stock(scope: TenantScope = Depends(stock_scope)) -> list[dict]:
    return svc.low_stock_products(scope)


@router.get("/products/{product_id}")
def api_product(product_id: int, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.get_product(scope, product_id)


@router.post("/products", status_code=status.HTTP_201_CREATED)
def api_create_product(payload: ProductIn, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.create_product(scope, payload.model_dump())


@router.put("/products/{product_id}")
def api_update_product(product_id: int, payload: ProductUpdateIn, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.update_product(scope, product_id, payload.model_dump(exclude_unset=True))


@router.delete("/products/{product_id}")
def api_delete_product(product_id: int, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    svc.delete_product(scope, product_id)
    return {"message": "Product deleted"}


# =========================
# Movements
# =========================
@router.get("/stock-movements")
def api_movements(product_id: int | None = None, scope: TenantScope = Depends(stock_scope)) -> list[dict]:
    return svc.list_movements(scope, product_id=product_id)


@router.post("/stock-movements", status_code=status.HTTP_201_CREATED)
def api_create_movement(payload: MovementIn, scope: TenantScope = Depends(stock_scope)) -> dict[str, Any]:
    return svc.create_movement(scope, payload.model_dump())
