from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, func, select, update

from ..auth_models import User
from ..db import db_session, row_to_dict, utcnow
from ..errors import NotFoundError
from ..models import (
    Appointment,
    AppointmentStatus,
    CashFlowEntry,
    Consultation,
    ConsultationProduct,
    Patient,
    Receivable,
)
from ..tenancy import TenantScope

log = logging.getLogger(__name__)

_CONSULTATION_FIELDS = (
    "patient_id", "dentist_id", "appointment_id", "date",
    "procedures", "clinical_notes", "observations", "status",
)


def _flat(c: Consultation, patient: Patient, dentist: User) -> dict[str, Any]:
    out = row_to_dict(c)
    out["patient"] = {"id": patient.id, "name": patient.name, "cpf": patient.cpf}
    out["dentist"] = {"id": dentist.id, "name": dentist.name}
    return out


def _joined():
    return (
        select(Consultation, Patient, User)
        .join(Patient, Patient.id == Consultation.patient_id)
        .join(User, User.id == Consultation.dentist_id)
    )


def _get_scoped(s, scope: TenantScope, consultation_id: int) -> Consultation:
    c = s.get(Consultation, consultation_id)
    if not scope.owns(c) or (scope.own_only and c.dentist_id != scope.user_id):
        raise NotFoundError("Consultation not found")
    return c


def _check_refs(s, company_id: int, data: dict[str, Any]) -> None:
    if "patient_id" in data:
        p = s.get(Patient, data["patient_id"])
        if not p or p.company_id != company_id:
            raise NotFoundError("Patient not found")
    if "dentist_id" in data:
        d = s.get(User, data["dentist_id"])
        if not d or d.company_id != company_id:
            raise NotFoundError("Dentist not found")
    if data.get("appointment_id") is not None:
        a = s.get(Appointment, data["appointment_id"])
        if not a or a.company_id != company_id:
            raise NotFoundError("Appointment not found")


def next_attendance_number(s, company_id: int) -> int:
    current = s.execute(
        select(func.max(Consultation.attendance_number)).where(Consultation.company_id == company_id)
    ).scalar_one()
    return (current or 0) + 1


# =========================
# Queries
# =========================
def list_consultations(
    scope: TenantScope,
    patient_id: int | None = None,
    dentist_id: int | None = None,
    status: AppointmentStatus | None = None,
) -> list[dict]:
    with db_session() as s:
        q = scope.filter(_joined(), Consultation)
        if patient_id:
            q = q.where(Consultation.patient_id == patient_id)
        if scope.own_only:
            q = q.where(Consultation.dentist_id == scope.user_id)
        elif dentist_id:
            q = q.where(Consultation.dentist_id == dentist_id)
        if status:
            q = q.where(Consultation.status == status)
        rows = s.execute(q.order_by(Consultation.date.desc(), Consultation.id.desc())).all()
        return [_flat(*r) for r in rows]


def get_consultation(scope: TenantScope, consultation_id: int) -> dict[str, Any]:
    with db_session() as s:
        _get_scoped(s, scope, consultation_id)
        out = _flat(*s.execute(_joined().where(Consultation.id == consultation_id)).one())
        out["products"] = [
            row_to_dict(p)
            for p in s.scalars(
                select(ConsultationProduct).where(ConsultationProduct.consultation_id == consultation_id)
            )
        ]
        return out


# =========================
# Changes
# =========================
def create_consultation(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    """attendance_number is always assigned here: max of the company + 1."""
    company_id = scope.require_company()
    with db_session() as s:
        _check_refs(s, company_id, data)
        c = Consultation(
            company_id=company_id,
            attendance_number=next_attendance_number(s, company_id),
            procedures=list(data.get("procedures") or []),
            **{k: v for k, v in data.items() if k in _CONSULTATION_FIELDS and k != "procedures"},
        )
        s.add(c)
        s.flush()
        log.info("consultation #%s created in company %s", c.attendance_number, company_id)
        return _flat(*s.execute(_joined().where(Consultation.id == c.id)).one())


def update_consultation(scope: TenantScope, consultation_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        c = _get_scoped(s, scope, consultation_id)
        _check_refs(s, c.company_id, data)
        for k, v in data.items():
            if k in _CONSULTATION_FIELDS:
                setattr(c, k, list(v) if k == "procedures" else v)
        c.updated_at = utcnow()
        s.flush()
        return _flat(*s.execute(_joined().where(Consultation.id == c.id)).one())


def delete_consultation(scope: TenantScope, consultation_id: int) -> None:
    """
    Removes the consultation together with:
    - its receivables (and their cash-flow entries)
    - its consumed products
    - the appointment it came from, so it does not show up again
      among the appointments without consultation
    """
    with db_session() as s:
        c = _get_scoped(s, scope, consultation_id)
        appointment_id = c.appointment_id

        receivable_ids = list(s.scalars(select(Receivable.id).where(Receivable.consultation_id == c.id)))
        if receivable_ids:
            s.execute(delete(CashFlowEntry).where(CashFlowEntry.receivable_id.in_(receivable_ids)))
            s.execute(
                update(Receivable)
                .where(Receivable.parent_receivable_id.in_(receivable_ids))
                .values(parent_receivable_id=None)
            )
            s.execute(delete(Receivable).where(Receivable.id.in_(receivable_ids)))

        s.delete(c)
        s.flush()

        if appointment_id is not None:
            s.execute(
                update(Receivable).where(Receivable.appointment_id == appointment_id).values(appointment_id=None)
            )
            s.execute(
                update(Consultation).where(Consultation.appointment_id == appointment_id).values(appointment_id=None)
            )
            s.execute(delete(Appointment).where(Appointment.id == appointment_id))
        log.info("consultation %s deleted", consultation_id)
