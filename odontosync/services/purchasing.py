from __future__ import annotations

import logging
import re
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from ..db import clinic_today, db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Receiving,
    ReceivingItem,
    ReceivingStatus,
    Supplier,
)
from ..tenancy import TenantScope
from .financial import money

log = logging.getLogger(__name__)

_SUPPLIER_FIELDS = ("name", "cnpj", "email", "phone", "contact_person", "address", "notes", "is_active")
_ORDER_FIELDS = ("supplier_id", "order_date", "expected_delivery_date", "status", "notes")


# =========================
# Numbering
# =========================
def next_document_number(existing: list[str], prefix: str, year: int) -> str:
    """
    <prefix>-<year>-<4 digit sequence>: max sequence of the year + 1.
    Numbers that do not match the pattern are ignored.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-{year}-(\d{{4}})$")
    seqs = [int(m.group(1)) for m in (pattern.match(n or "") for n in existing) if m]
    return f"{prefix}-{year}-{(max(seqs) if seqs else 0) + 1:04d}"


def _next_order_number(s, company_id: int, year: int) -> str:
    existing = list(
        s.scalars(
            select(PurchaseOrder.order_number).where(
                PurchaseOrder.company_id == company_id, PurchaseOrder.order_number.like(f"PO-{year}-%")
            )
        )
    )
    return next_document_number(existing, "PO", year)


def _next_receiving_number(s, company_id: int, year: int) -> str:
    existing = list(
        s.scalars(
            select(Receiving.receiving_number).where(
                Receiving.company_id == company_id, Receiving.receiving_number.like(f"REC-{year}-%")
            )
        )
    )
    return next_document_number(existing, "REC", year)


# =========================
# Suppliers
# =========================
def _get_supplier(s, scope: TenantScope, supplier_id: int) -> Supplier:
    sup = s.get(Supplier, supplier_id)
    if not scope.owns(sup):
        raise NotFoundError("Supplier not found")
    return sup


def list_suppliers(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(Supplier), Supplier).order_by(Supplier.name)
        return [row_to_dict(x) for x in s.scalars(q)]


def get_supplier(scope: TenantScope, supplier_id: int) -> dict[str, Any]:
    with db_session() as s:
        return row_to_dict(_get_supplier(s, scope, supplier_id))


def create_supplier(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        sup = Supplier(
            company_id=company_id,
            created_by=scope.user_id,
            **{k: v for k, v in data.items() if k in _SUPPLIER_FIELDS},
        )
        s.add(sup)
        s.flush()
        return row_to_dict(sup)


def update_supplier(scope: TenantScope, supplier_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        sup = _get_supplier(s, scope, supplier_id)
        for k, v in data.items():
            if k in _SUPPLIER_FIELDS:
                setattr(sup, k, v)
        sup.updated_at = utcnow()
        s.flush()
        return row_to_dict(sup)


def delete_supplier(scope: TenantScope, supplier_id: int) -> None:
    with db_session() as s:
        sup = _get_supplier(s, scope, supplier_id)
        if s.execute(select(PurchaseOrder.id).where(PurchaseOrder.supplier_id == sup.id).limit(1)).first():
            raise ConflictError("Supplier has purchase orders")
        s.delete(sup)


# =========================
# Purchase orders
# =========================
def _order_flat(o: PurchaseOrder, supplier: Supplier | None) -> dict[str, Any]:
    out = row_to_dict(o)
    out["supplier"] = {"id": supplier.id, "name": supplier.name} if supplier else None
    out["items"] = [row_to_dict(i) for i in o.items]
    return out


def _get_order(s, scope: TenantScope, order_id: int) -> PurchaseOrder:
    o = s.get(PurchaseOrder, order_id)
    if not scope.owns(o):
        raise NotFoundError("Purchase order not found")
    return o


def _build_items(items: list[dict[str, Any]]) -> list[PurchaseOrderItem]:
    if not items:
        raise ValidationError("A purchase order needs at least one item")
    out = []
    for it in items:
        qty = Decimal(str(it["quantity"]))
        price = Decimal(str(it["unit_price"]))
        out.append(
            PurchaseOrderItem(
                description=it["description"],
                quantity=qty,
                unit_price=money(price),
                total_price=money(qty * price),
                notes=it.get("notes"),
            )
        )
    return out


def _installment_amount(total: Decimal, installments: int) -> Decimal | None:
    if installments and installments > 1:
        return money(total / installments)
    return None


def list_orders(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(PurchaseOrder, Supplier).join(Supplier, Supplier.id == PurchaseOrder.supplier_id), PurchaseOrder
        )
        rows = s.execute(q.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())).all()
        return [_order_flat(o, sup) for o, sup in rows]


def get_order(scope: TenantScope, order_id: int) -> dict[str, Any]:
    with db_session() as s:
        o = _get_order(s, scope, order_id)
        return _order_flat(o, s.get(Supplier, o.supplier_id))


def create_order(scope: TenantScope, data: dict[str, Any], items: list[dict[str, Any]]) -> dict[str, Any]:
    """
    Use case: place a purchase order.
    - number PO-<year>-NNNN, sequential per company and year
    - total = sum of the items unless given
    - a pending receiving REC-<year>-NNNN mirrors the items
    """
    company_id = scope.require_company()
    with db_session() as s:
        supplier = _get_supplier(s, scope, data["supplier_id"])
        year = clinic_today().year

        order_items = _build_items(items)
        total = data.get("total_amount")
        total = money(total) if total is not None else money(sum((i.total_price for i in order_items), Decimal("0")))
        installments = data.get("installments") or 1

        o = PurchaseOrder(
            company_id=company_id,
            order_number=_next_order_number(s, company_id, year),
            order_date=data.get("order_date") or clinic_today(),
            total_amount=total,
            installments=installments,
            installment_amount=_installment_amount(total, installments),
            created_by=scope.user_id,
            items=order_items,
            **{k: v for k, v in data.items() if k in _ORDER_FIELDS and k != "order_date" and v is not None},
        )
        s.add(o)
        s.flush()

        rec = Receiving(
            company_id=company_id,
            purchase_order_id=o.id,
            supplier_id=supplier.id,
            receiving_number=_next_receiving_number(s, company_id, year),
            status=ReceivingStatus.PENDING,
            total_amount=total,
            created_by=scope.user_id,
            items=[
                ReceivingItem(
                    purchase_order_item_id=i.id,
                    description=i.description,
                    quantity_ordered=i.quantity,
                    quantity_received=Decimal("0"),
                    unit_price=i.unit_price,
                    total_price=i.total_price,
                )
                for i in o.items
            ],
        )
        s.add(rec)
        s.flush()
        log.info("purchase order %s created with receiving %s", o.order_number, rec.receiving_number)
        return _order_flat(o, supplier)


def update_order(
    scope: TenantScope, order_id: int, data: dict[str, Any], items: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    """Items, when given, replace the current ones."""
    with db_session() as s:
        o = _get_order(s, scope, order_id)
        if data.get("supplier_id") is not None:
            _get_supplier(s, scope, data["supplier_id"])

        for k, v in data.items():
            if k in _ORDER_FIELDS and v is not None:
                setattr(o, k, v)

        if items is not None:
            o.items.clear()
            s.flush()
            o.items.extend(_build_items(items))

        if data.get("total_amount") is not None:
            o.total_amount = money(data["total_amount"])
        elif items is not None:
            o.total_amount = money(sum((i.total_price for i in o.items), Decimal("0")))
        if data.get("installments") is not None:
            o.installments = data["installments"]
        o.installment_amount = _installment_amount(o.total_amount, o.installments)
        o.updated_at = utcnow()
        s.flush()
        return _order_flat(o, s.get(Supplier, o.supplier_id))


def delete_order(scope: TenantScope, order_id: int) -> None:
    """Removes the order with its items, its receivings and their items."""
    with db_session() as s:
        o = _get_order(s, scope, order_id)
        s.delete(o)
        log.info("purchase order %s deleted", o.order_number)


# =========================
# Receivings
# =========================
def _receiving_flat(r: Receiving, supplier: Supplier | None, order: PurchaseOrder | None) -> dict[str, Any]:
    out = row_to_dict(r)
    out["supplier"] = {"id": supplier.id, "name": supplier.name} if supplier else None
    out["purchase_order"] = (
        {"id": order.id, "order_number": order.order_number, "status": order.status.value} if order else None
    )
    out["items"] = [row_to_dict(i) for i in r.items]
    return out


def _get_receiving(s, scope: TenantScope, receiving_id: int) -> Receiving:
    r = s.get(Receiving, receiving_id)
    if not scope.owns(r):
        raise NotFoundError("Receiving not found")
    return r


def list_receivings(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(Receiving, Supplier, PurchaseOrder)
            .join(Supplier, Supplier.id == Receiving.supplier_id)
            .join(PurchaseOrder, PurchaseOrder.id == Receiving.purchase_order_id),
            Receiving,
        )
        rows = s.execute(q.order_by(Receiving.created_at.desc(), Receiving.id.desc())).all()
        return [_receiving_flat(*r) for r in rows]


def get_receiving(scope: TenantScope, receiving_id: int) -> dict[str, Any]:
    with db_session() as s:
        r = _get_receiving(s, scope, receiving_id)
        return _receiving_flat(r, s.get(Supplier, r.supplier_id), s.get(PurchaseOrder, r.purchase_order_id))


def update_receiving_status(
    scope: TenantScope,
    receiving_id: int,
    status: ReceivingStatus,
    receiving_date: date | None = None,
    items: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """
    Record what arrived:
    - items carry the received quantity per receiving item
    - partial / received is propagated to the purchase order
    """
    with db_session() as s:
        r = _get_receiving(s, scope, receiving_id)
        by_id = {i.id: i for i in r.items}

        for it in items or []:
            ri = by_id.get(it["id"])
            if ri is None:
                raise NotFoundError(f"Receiving item {it['id']} not found")
            ri.quantity_received = Decimal(str(it["quantity_received"]))
            ri.total_price = money(ri.quantity_received * ri.unit_price)
            if "notes" in it:
                ri.notes = it["notes"]

        r.status = status
        if receiving_date is not None:
            r.receiving_date = receiving_date
        elif status == ReceivingStatus.RECEIVED and r.receiving_date is None:
            r.receiving_date = clinic_today()
        r.updated_at = utcnow()

        order = s.get(PurchaseOrder, r.purchase_order_id)
        if status == ReceivingStatus.RECEIVED:
            order.status = PurchaseOrderStatus.RECEIVED
        elif status == ReceivingStatus.PARTIAL:
            order.status = PurchaseOrderStatus.PARTIAL
        order.updated_at = utcnow()
        s.flush()

        log.info("receiving %s is now %s", r.receiving_number, status.value)
        return _receiving_flat(r, s.get(Supplier, r.supplier_id), order)
