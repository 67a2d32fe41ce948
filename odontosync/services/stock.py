from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from ..db import db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Product, ProductCategory, StockMovement, StockMovementType
from ..tenancy import TenantScope

log = logging.getLogger(__name__)

_PRODUCT_FIELDS = (
    "category_id", "name", "description", "sku", "barcode", "unit",
    "unit_price", "cost_price", "current_stock", "minimum_stock", "maximum_stock",
    "supplier", "location", "notes", "is_active",
)


def _product_flat(p: Product, category: ProductCategory | None) -> dict[str, Any]:
    out = row_to_dict(p)
    out["category"] = {"id": category.id, "name": category.name} if category else None
    out["low_stock"] = p.current_stock <= p.minimum_stock
    return out


def _get_category(s, scope: TenantScope, category_id: int) -> ProductCategory:
    c = s.get(ProductCategory, category_id)
    if not scope.owns(c):
        raise NotFoundError("Product category not found")
    return c


def _get_product(s, scope: TenantScope, product_id: int) -> Product:
    p = s.get(Product, product_id)
    if not scope.owns(p):
        raise NotFoundError("Product not found")
    return p


def apply_movement(
    s,
    product: Product,
    movement_type: StockMovementType,
    quantity: Decimal,
    created_by: int | None = None,
    unit_cost: Decimal | None = None,
    reason: str | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    in: adds, out: subtracts, adjustment: sets the stock to quantity.
    Shared by the stock endpoints and the consultation write-off.
    """
    quantity = Decimal(quantity)
    if quantity < 0 or (quantity == 0 and movement_type != StockMovementType.ADJUSTMENT):
        raise ValidationError("Quantity must be positive")

    if movement_type == StockMovementType.IN:
        product.current_stock = product.current_stock + quantity
    elif movement_type == StockMovementType.OUT:
        product.current_stock = product.current_stock - quantity
    else:
        product.current_stock = quantity
    product.updated_at = utcnow()

    m = StockMovement(
        company_id=product.company_id,
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=(unit_cost * quantity) if unit_cost is not None else None,
        reason=reason,
        reference=reference,
        notes=notes,
        created_by=created_by,
    )
    s.add(m)
    return m


# =========================
# Categories
# =========================
def list_categories(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(ProductCategory), ProductCategory).order_by(ProductCategory.name)
        return [row_to_dict(c) for c in s.scalars(q)]


def get_category(scope: TenantScope, category_id: int) -> dict[str, Any]:
    with db_session() as s:
        return row_to_dict(_get_category(s, scope, category_id))


def create_category(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        c = ProductCategory(
            company_id=company_id,
            name=data["name"],
            description=data.get("description"),
            is_active=data.get("is_active", True),
            created_by=scope.user_id,
        )
        s.add(c)
        s.flush()
        return row_to_dict(c)


def update_category(scope: TenantScope, category_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        c = _get_category(s, scope, category_id)
        for k in ("name", "description", "is_active"):
            if k in data:
                setattr(c, k, data[k])
        c.updated_at = utcnow()
        s.flush()
        return row_to_dict(c)


def delete_category(scope: TenantScope, category_id: int) -> None:
    with db_session() as s:
        c = _get_category(s, scope, category_id)
        if s.execute(select(Product.id).where(Product.category_id == c.id).limit(1)).first():
            raise ConflictError("Category still has products")
        s.delete(c)


# =========================
# Products
# =========================
def list_products(scope: TenantScope, category_id: int | None = None) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(Product, ProductCategory).outerjoin(ProductCategory, ProductCategory.id == Product.category_id),
            Product,
        )
        if category_id is not None:
            q = q.where(Product.category_id == category_id)
        return [_product_flat(p, c) for p, c in s.execute(q.order_by(Product.name)).all()]


def low_stock_products(scope: TenantScope) -> list[dict]:
    """Active products with current stock at or below the minimum."""
    with db_session() as s:
        q = scope.filter(
            select(Product, ProductCategory)
            .outerjoin(ProductCategory, ProductCategory.id == Product.category_id)
            .where(Product.is_active.is_(True), Product.current_stock <= Product.minimum_stock),
            Product,
        )
        return [_product_flat(p, c) for p, c in s.execute(q.order_by(Product.name)).all()]


def get_product(scope: TenantScope, product_id: int) -> dict[str, Any]:
    with db_session() as s:
        p = _get_product(s, scope, product_id)
        return _product_flat(p, s.get(ProductCategory, p.category_id))


def create_product(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        c = _get_category(s, scope, data["category_id"])
        p = Product(
            company_id=company_id,
            created_by=scope.user_id,
            **{k: v for k, v in data.items() if k in _PRODUCT_FIELDS and v is not None},
        )
        s.add(p)
        s.flush()
        return _product_flat(p, c)


def update_product(scope: TenantScope, product_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = _get_product(s, scope, product_id)
        if data.get("category_id") is not None:
            _get_category(s, scope, data["category_id"])
        for k, v in data.items():
            if k in _PRODUCT_FIELDS:
                setattr(p, k, v)
        p.updated_at = utcnow()
        s.flush()
        return _product_flat(p, s.get(ProductCategory, p.category_id))


def delete_product(scope: TenantScope, product_id: int) -> None:
    """Products with movements are deactivated instead of removed."""
    with db_session() as s:
        p = _get_product(s, scope, product_id)
        if s.execute(select(StockMovement.id).where(StockMovement.product_id == p.id).limit(1)).first():
            p.is_active = False
            p.updated_at = utcnow()
            return
        s.delete(p)


# =========================
# Movements
# =========================
def list_movements(scope: TenantScope, product_id: int | None = None) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(StockMovement, Product.name).join(Product, Product.id == StockMovement.product_id),
            StockMovement,
        )
        if product_id is not None:
            q = q.where(StockMovement.product_id == product_id)
        out = []
        for m, product_name in s.execute(q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())).all():
            d = row_to_dict(m)
            d["product_name"] = product_name
            out.append(d)
        return out


def create_movement(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    scope.require_company()
    with db_session() as s:
        p = _get_product(s, scope, data["product_id"])
        m = apply_movement(
            s,
            p,
            data["type"],
            data["quantity"],
            created_by=scope.user_id,
            unit_cost=data.get("unit_cost"),
            reason=data.get("reason"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        s.flush()
        log.info("stock %s of %s for product %s, now %s", m.type.value, m.quantity, p.id, p.current_stock)
        out = row_to_dict(m)
        out["product_name"] = p.name
        out["current_stock"] = p.current_stock
        return out
