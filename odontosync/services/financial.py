from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy import delete, func, or_, select

from ..db import clinic_today, db_session, row_to_dict, utcnow
from ..errors import NotFoundError, ValidationError
from ..models import (
    Appointment,
    CashFlowEntry,
    CashFlowType,
    Consultation,
    ConsultationProduct,
    Patient,
    Payable,
    PaymentMethod,
    PaymentStatus,
    Procedure,
    Product,
    Receivable,
    StockMovementType,
)
from ..tenancy import TenantScope
from .stock import apply_movement

log = logging.getLogger(__name__)

CENT = Decimal("0.01")

_RECEIVABLE_FIELDS = (
    "patient_id", "consultation_id", "appointment_id", "amount", "due_date", "payment_date",
    "payment_method", "status", "description", "installments", "installment_number", "notes",
)
_PAYABLE_FIELDS = (
    "amount", "due_date", "payment_date", "payment_method", "status", "category",
    "description", "supplier", "notes", "account_type", "dentist_id",
)


# =========================
# Helpers
# =========================
def money(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def add_months(d: date, months: int) -> date:
    """Same day N months later, clamped to the end of shorter months."""
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def split_installments(total: Decimal, installments: int) -> list[Decimal]:
    """Equal parts rounded to cents; the rounding remainder goes on the last one."""
    if installments < 1:
        raise ValidationError("Installments must be at least 1")
    total = money(total)
    part = (total / installments).quantize(CENT, rounding=ROUND_HALF_UP)
    parts = [part] * (installments - 1)
    parts.append(total - part * (installments - 1))
    return parts


def _add_cash_flow_for_receivable(s, r: Receivable) -> None:
    s.add(
        CashFlowEntry(
            company_id=r.company_id,
            type=CashFlowType.INCOME,
            receivable_id=r.id,
            amount=money(r.amount),
            date=r.payment_date,
            description=f"Payment received: {r.description or ''}".strip(),
            category="receivable",
        )
    )


def _add_cash_flow_for_payable(s, p: Payable) -> None:
    s.add(
        CashFlowEntry(
            company_id=p.company_id,
            type=CashFlowType.EXPENSE,
            payable_id=p.id,
            amount=-money(p.amount),
            date=p.payment_date,
            description=f"Payment made: {p.description}",
            category="payable",
        )
    )


def _own_receivables_filter(q, user_id: int):
    return (
        q.outerjoin(Consultation, Consultation.id == Receivable.consultation_id)
        .outerjoin(Appointment, Appointment.id == Receivable.appointment_id)
        .where(or_(Consultation.dentist_id == user_id, Appointment.dentist_id == user_id))
    )


def own_receivable_ids(user_id: int):
    """Receivables of the dentist's consultations or appointments."""
    return _own_receivables_filter(select(Receivable.id), user_id).correlate(None)


def _own_cash_flow_filter(q, user_id: int):
    own_payables = select(Payable.id).where(Payable.dentist_id == user_id)
    return q.where(
        or_(
            CashFlowEntry.receivable_id.in_(own_receivable_ids(user_id)),
            CashFlowEntry.payable_id.in_(own_payables),
        )
    )


def _receivable_flat(r: Receivable, patient_name: str | None) -> dict[str, Any]:
    out = row_to_dict(r)
    out["patient_name"] = patient_name
    return out


def _get_receivable(s, scope: TenantScope, receivable_id: int) -> Receivable:
    r = s.get(Receivable, receivable_id)
    if not scope.owns(r):
        raise NotFoundError("Receivable not found")
    return r


def _get_payable(s, scope: TenantScope, payable_id: int) -> Payable:
    p = s.get(Payable, payable_id)
    if not scope.owns(p):
        raise NotFoundError("Payable not found")
    return p


# =========================
# Receivables
# =========================
def list_receivables(
    scope: TenantScope,
    patient_id: int | None = None,
    status: PaymentStatus | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    dentist_id: int | None = None,
) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(Receivable, Patient.name).join(Patient, Patient.id == Receivable.patient_id), Receivable
        )
        if patient_id:
            q = q.where(Receivable.patient_id == patient_id)
        if status:
            q = q.where(Receivable.status == status)
        if start_date:
            q = q.where(Receivable.due_date >= start_date)
        if end_date:
            q = q.where(Receivable.due_date <= end_date)
        if scope.own_only:
            q = _own_receivables_filter(q, scope.user_id)
        elif dentist_id:
            q = _own_receivables_filter(q, dentist_id)
        rows = s.execute(q.order_by(Receivable.due_date.asc(), Receivable.id.asc())).all()
        return [_receivable_flat(r, name) for r, name in rows]


def get_receivable(scope: TenantScope, receivable_id: int) -> dict[str, Any]:
    with db_session() as s:
        r = _get_receivable(s, scope, receivable_id)
        patient = s.get(Patient, r.patient_id)
        return _receivable_flat(r, patient.name if patient else None)


def create_receivable(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    """A receivable created already paid goes straight into the cash flow."""
    company_id = scope.require_company()
    with db_session() as s:
        patient = s.get(Patient, data["patient_id"])
        if not patient or patient.company_id != company_id:
            raise NotFoundError("Patient not found")

        r = Receivable(company_id=company_id, **{k: v for k, v in data.items() if k in _RECEIVABLE_FIELDS})
        r.amount = money(r.amount)
        if r.status == PaymentStatus.PAID and r.payment_date is None:
            r.payment_date = clinic_today()
        s.add(r)
        s.flush()

        if r.status == PaymentStatus.PAID:
            _add_cash_flow_for_receivable(s, r)
        return _receivable_flat(r, patient.name)


def update_receivable(scope: TenantScope, receivable_id: int, data: dict[str, Any]) -> dict[str, Any]:
    """Moving to paid adds exactly one income entry, dated at the payment date."""
    with db_session() as s:
        r = _get_receivable(s, scope, receivable_id)
        was_paid = r.status == PaymentStatus.PAID

        for k, v in data.items():
            if k in _RECEIVABLE_FIELDS:
                setattr(r, k, v)
        if "amount" in data:
            r.amount = money(r.amount)
        if r.status == PaymentStatus.PAID and r.payment_date is None:
            r.payment_date = clinic_today()
        r.updated_at = utcnow()
        s.flush()

        if r.status == PaymentStatus.PAID and not was_paid:
            _add_cash_flow_for_receivable(s, r)
            log.info("receivable %s paid on %s", r.id, r.payment_date)

        patient = s.get(Patient, r.patient_id)
        return _receivable_flat(r, patient.name if patient else None)


def delete_receivable(scope: TenantScope, receivable_id: int) -> None:
    with db_session() as s:
        r = _get_receivable(s, scope, receivable_id)
        s.execute(delete(CashFlowEntry).where(CashFlowEntry.receivable_id == r.id))
        for child in s.scalars(select(Receivable).where(Receivable.parent_receivable_id == r.id)):
            child.parent_receivable_id = None
        s.flush()
        s.delete(r)


def create_receivables_from_consultation(
    scope: TenantScope,
    consultation_id: int,
    procedure_ids: Iterable[int] = (),
    selected_products: Iterable[dict[str, Any]] = (),
    installments: int = 1,
    custom_amount: Decimal | None = None,
    payment_method: PaymentMethod = PaymentMethod.PIX,
    due_date: date | None = None,
) -> list[dict]:
    """
    Bill a consultation:
    - total = custom_amount, or the sum of the selected procedure prices
    - N monthly installments from due_date (today by default); the first is
      the parent of the others
    - selected products leave the stock and are recorded on the consultation
    """
    company_id = scope.require_company()
    with db_session() as s:
        c = s.get(Consultation, consultation_id)
        if not c or c.company_id != company_id:
            raise NotFoundError("Consultation not found")

        if custom_amount is not None:
            total = money(custom_amount)
            if total <= 0:
                raise ValidationError("Invalid custom amount")
        else:
            ids = list(procedure_ids)
            prices = s.scalars(
                select(Procedure.price).where(Procedure.id.in_(ids), Procedure.company_id == company_id)
            ) if ids else []
            total = money(sum((Decimal(p) for p in prices), Decimal("0")))
            if total <= 0:
                raise ValidationError("No valid procedure selected and no custom amount given")

        first_due = due_date or clinic_today()
        parts = split_installments(total, installments)

        created: list[Receivable] = []
        for i, amount in enumerate(parts, start=1):
            r = Receivable(
                company_id=company_id,
                patient_id=c.patient_id,
                consultation_id=c.id,
                appointment_id=c.appointment_id,
                amount=amount,
                due_date=add_months(first_due, i - 1),
                status=PaymentStatus.PENDING,
                payment_method=payment_method,
                description=f"Consultation #{c.attendance_number} - Installment {i}/{installments}",
                installments=installments,
                installment_number=i,
                parent_receivable_id=created[0].id if created else None,
            )
            s.add(r)
            s.flush()
            created.append(r)

        for item in selected_products:
            product = s.get(Product, item["product_id"])
            if not product or product.company_id != company_id:
                raise NotFoundError("Product not found")
            quantity = Decimal(str(item["quantity"]))
            apply_movement(
                s,
                product,
                StockMovementType.OUT,
                quantity,
                created_by=scope.user_id,
                reason="Used in consultation",
                reference=f"Consultation #{c.attendance_number}",
            )
            s.add(
                ConsultationProduct(
                    consultation_id=c.id,
                    product_id=product.id,
                    quantity=quantity,
                    unit_price=product.unit_price,
                    total_price=money(product.unit_price * quantity),
                )
            )

        s.flush()
        log.info("consultation %s billed in %d installments, total %s", c.id, installments, total)
        patient = s.get(Patient, c.patient_id)
        return [_receivable_flat(r, patient.name if patient else None) for r in created]


# =========================
# Payables
# =========================
def list_payables(
    scope: TenantScope,
    status: PaymentStatus | None = None,
    category: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(Payable), Payable)
        if status:
            q = q.where(Payable.status == status)
        if category:
            q = q.where(Payable.category == category)
        if start_date:
            q = q.where(Payable.due_date >= start_date)
        if end_date:
            q = q.where(Payable.due_date <= end_date)
        if scope.own_only:
            q = q.where(Payable.dentist_id == scope.user_id)
        return [row_to_dict(p) for p in s.scalars(q.order_by(Payable.due_date.asc(), Payable.id.asc()))]


def get_payable(scope: TenantScope, payable_id: int) -> dict[str, Any]:
    with db_session() as s:
        return row_to_dict(_get_payable(s, scope, payable_id))


def create_payable(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        p = Payable(
            company_id=company_id,
            created_by=scope.user_id,
            **{k: v for k, v in data.items() if k in _PAYABLE_FIELDS},
        )
        p.amount = money(p.amount)
        if p.status == PaymentStatus.PAID and p.payment_date is None:
            p.payment_date = clinic_today()
        s.add(p)
        s.flush()

        if p.status == PaymentStatus.PAID:
            _add_cash_flow_for_payable(s, p)
        return row_to_dict(p)


def update_payable(scope: TenantScope, payable_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = _get_payable(s, scope, payable_id)
        was_paid = p.status == PaymentStatus.PAID

        for k, v in data.items():
            if k in _PAYABLE_FIELDS:
                setattr(p, k, v)
        if "amount" in data:
            p.amount = money(p.amount)
        if p.status == PaymentStatus.PAID and p.payment_date is None:
            p.payment_date = clinic_today()
        p.updated_at = utcnow()
        s.flush()

        if p.status == PaymentStatus.PAID and not was_paid:
            _add_cash_flow_for_payable(s, p)
            log.info("payable %s paid on %s", p.id, p.payment_date)
        return row_to_dict(p)


def delete_payable(scope: TenantScope, payable_id: int) -> None:
    with db_session() as s:
        p = _get_payable(s, scope, payable_id)
        s.execute(delete(CashFlowEntry).where(CashFlowEntry.payable_id == p.id))
        s.delete(p)


# =========================
# Cash flow / metrics
# =========================
def _balance(s, scope: TenantScope) -> Decimal:
    q = scope.filter(select(func.coalesce(func.sum(CashFlowEntry.amount), 0)), CashFlowEntry)
    if scope.own_only:
        q = _own_cash_flow_filter(q, scope.user_id)
    return money(s.execute(q).scalar_one())


def cash_flow(scope: TenantScope, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
    """Entries (newest first) plus the current balance (sum of every entry)."""
    with db_session() as s:
        q = scope.filter(select(CashFlowEntry), CashFlowEntry)
        if scope.own_only:
            q = _own_cash_flow_filter(q, scope.user_id)
        if start_date:
            q = q.where(CashFlowEntry.date >= start_date)
        if end_date:
            q = q.where(CashFlowEntry.date <= end_date)
        q = q.order_by(CashFlowEntry.date.desc(), CashFlowEntry.created_at.desc(), CashFlowEntry.id.desc())
        return {
            "entries": [row_to_dict(e) for e in s.scalars(q)],
            "current_balance": _balance(s, scope),
        }


def financial_metrics(scope: TenantScope, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
    with db_session() as s:
        def total(model, *conds, dated: bool = True) -> Decimal:
            q = scope.filter(select(func.coalesce(func.sum(model.amount), 0)), model)
            if scope.own_only and model is Receivable:
                q = q.where(Receivable.id.in_(own_receivable_ids(scope.user_id)))
            elif scope.own_only:
                q = q.where(Payable.dentist_id == scope.user_id)
            if conds:
                q = q.where(*conds)
            if dated and start_date:
                q = q.where(model.due_date >= start_date)
            if dated and end_date:
                q = q.where(model.due_date <= end_date)
            return money(s.execute(q).scalar_one())

        return {
            "total_receivables": total(Receivable),
            "total_payables": total(Payable),
            "total_received": total(Receivable, Receivable.status == PaymentStatus.PAID, dated=False),
            "total_paid": total(Payable, Payable.status == PaymentStatus.PAID, dated=False),
            "pending_receivables": total(Receivable, Receivable.status == PaymentStatus.PENDING, dated=False),
            "pending_payables": total(Payable, Payable.status == PaymentStatus.PENDING, dated=False),
            "current_balance": _balance(s, scope),
        }
