from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable

from sqlalchemy import and_, delete, exists, select, update

from ..auth_models import User
from ..db import db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError
from ..models import Appointment, AppointmentStatus, Consultation, Patient, Procedure, Receivable
from ..tenancy import TenantScope

log = logging.getLogger(__name__)

_APPOINTMENT_FIELDS = ("patient_id", "dentist_id", "procedure_id", "scheduled_date", "status", "notes")


# =========================
# Helper / DTO
# =========================
@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    procedure_name: str


@dataclass(frozen=True)
class Availability:
    available: bool
    message: str = ""


def conflict_message(slot: Slot) -> str:
    return (
        f"Time conflict: an appointment already exists from {slot.start.strftime('%H:%M')} "
        f"to {slot.end.strftime('%H:%M')} ({slot.procedure_name})."
    )


def find_conflict(start: datetime, end: datetime, slots: Iterable[Slot]) -> Slot | None:
    """
    Half-open overlap [start, end): a slot that ends exactly when the new one
    starts (or starts exactly when it ends) is not a conflict.
    """
    for slot in slots:
        if start < slot.end and end > slot.start:
            return slot
    return None


def _busy_slots(s, company_id: int, dentist_id: int, exclude_id: int | None = None) -> list[Slot]:
    q = (
        select(Appointment.scheduled_date, Procedure.duration, Procedure.name)
        .join(Procedure, Procedure.id == Appointment.procedure_id)
        .where(
            and_(
                Appointment.company_id == company_id,
                Appointment.dentist_id == dentist_id,
                Appointment.status != AppointmentStatus.CANCELLED,
            )
        )
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)

    return [
        Slot(start=r.scheduled_date, end=r.scheduled_date + timedelta(minutes=r.duration), procedure_name=r.name)
        for r in s.execute(q).all()
    ]


def _check_slot(
    s, company_id: int, dentist_id: int, procedure_id: int, start: datetime, exclude_id: int | None = None
) -> Availability:
    proc = s.get(Procedure, procedure_id)
    if not proc or proc.company_id != company_id:
        raise NotFoundError("Procedure not found")
    end = start + timedelta(minutes=proc.duration)
    hit = find_conflict(start, end, _busy_slots(s, company_id, dentist_id, exclude_id))
    if hit:
        return Availability(False, conflict_message(hit))
    return Availability(True)


def _check_refs(s, company_id: int, data: dict[str, Any]) -> None:
    if "patient_id" in data:
        p = s.get(Patient, data["patient_id"])
        if not p or p.company_id != company_id:
            raise NotFoundError("Patient not found")
    if "dentist_id" in data:
        d = s.get(User, data["dentist_id"])
        if not d or d.company_id != company_id:
            raise NotFoundError("Dentist not found")


def _appointment_flat(a: Appointment, patient: Patient, dentist: User, proc: Procedure) -> dict[str, Any]:
    out = row_to_dict(a)
    out["end_date"] = a.scheduled_date + timedelta(minutes=proc.duration)
    out["patient"] = {"id": patient.id, "name": patient.name, "phone": patient.phone}
    out["dentist"] = {"id": dentist.id, "name": dentist.name}
    out["procedure"] = {"id": proc.id, "name": proc.name, "duration": proc.duration, "price": proc.price}
    return out


def _joined():
    return (
        select(Appointment, Patient, User, Procedure)
        .join(Patient, Patient.id == Appointment.patient_id)
        .join(User, User.id == Appointment.dentist_id)
        .join(Procedure, Procedure.id == Appointment.procedure_id)
    )


def _get_scoped(s, scope: TenantScope, appointment_id: int) -> Appointment:
    a = s.get(Appointment, appointment_id)
    if not scope.owns(a) or (scope.own_only and a.dentist_id != scope.user_id):
        raise NotFoundError("Appointment not found")
    return a


# =========================
# Queries
# =========================
def list_appointments(
    scope: TenantScope,
    day: date | None = None,
    dentist_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    """Non-cancelled appointments, ordered by start."""
    with db_session() as s:
        q = scope.filter(_joined(), Appointment).where(Appointment.status != AppointmentStatus.CANCELLED)
        if day:
            start = datetime.combine(day, time.min)
            q = q.where(Appointment.scheduled_date >= start, Appointment.scheduled_date < start + timedelta(days=1))
        if start_date and end_date:
            q = q.where(
                Appointment.scheduled_date >= datetime.combine(start_date, time.min),
                Appointment.scheduled_date < datetime.combine(end_date, time.min) + timedelta(days=1),
            )
        if scope.own_only:
            q = q.where(Appointment.dentist_id == scope.user_id)
        elif dentist_id:
            q = q.where(Appointment.dentist_id == dentist_id)

        rows = s.execute(q.order_by(Appointment.scheduled_date.asc())).all()
        return [_appointment_flat(*r) for r in rows]


def get_appointment(scope: TenantScope, appointment_id: int) -> dict[str, Any]:
    with db_session() as s:
        _get_scoped(s, scope, appointment_id)
        row = s.execute(_joined().where(Appointment.id == appointment_id)).one()
        return _appointment_flat(*row)


def appointments_without_consultation(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        has_consultation = exists().where(Consultation.appointment_id == Appointment.id)
        q = scope.filter(_joined(), Appointment).where(
            Appointment.status != AppointmentStatus.CANCELLED, ~has_consultation
        )
        if scope.own_only:
            q = q.where(Appointment.dentist_id == scope.user_id)
        rows = s.execute(q.order_by(Appointment.scheduled_date.desc())).all()
        return [_appointment_flat(*r) for r in rows]


def check_availability(
    scope: TenantScope, dentist_id: int, scheduled_date: datetime, procedure_id: int, exclude_id: int | None = None
) -> Availability:
    company_id = scope.require_company()
    with db_session() as s:
        return _check_slot(s, company_id, dentist_id, procedure_id, scheduled_date, exclude_id)


# =========================
# Booking
# =========================
def create_appointment(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    """
    Book a slot:
    - validates patient, dentist and procedure in the company
    - end = start + procedure duration
    - refuses overlaps with the dentist's non-cancelled appointments (409)
    """
    company_id = scope.require_company()
    with db_session() as s:
        _check_refs(s, company_id, data)
        status = data.get("status") or AppointmentStatus.SCHEDULED
        check = _check_slot(s, company_id, data["dentist_id"], data["procedure_id"], data["scheduled_date"])
        if not check.available and status != AppointmentStatus.CANCELLED:
            raise ConflictError(check.message)

        a = Appointment(
            company_id=company_id,
            patient_id=data["patient_id"],
            dentist_id=data["dentist_id"],
            procedure_id=data["procedure_id"],
            scheduled_date=data["scheduled_date"],
            status=status,
            notes=data.get("notes"),
        )
        s.add(a)
        s.flush()
        log.info("appointment %s booked for dentist %s at %s", a.id, a.dentist_id, a.scheduled_date)
        row = s.execute(_joined().where(Appointment.id == a.id)).one()
        return _appointment_flat(*row)


def update_appointment(scope: TenantScope, appointment_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        a = _get_scoped(s, scope, appointment_id)
        _check_refs(s, a.company_id, data)

        moves = any(k in data for k in ("scheduled_date", "dentist_id", "procedure_id"))
        reactivated = a.status == AppointmentStatus.CANCELLED
        status = data.get("status", a.status)
        if (moves or reactivated) and status != AppointmentStatus.CANCELLED:
            check = _check_slot(
                s,
                a.company_id,
                data.get("dentist_id", a.dentist_id),
                data.get("procedure_id", a.procedure_id),
                data.get("scheduled_date", a.scheduled_date),
                exclude_id=a.id,
            )
            if not check.available:
                raise ConflictError(check.message)

        for k, v in data.items():
            if k in _APPOINTMENT_FIELDS:
                setattr(a, k, v)
        a.updated_at = utcnow()
        s.flush()
        row = s.execute(_joined().where(Appointment.id == a.id)).one()
        return _appointment_flat(*row)


def cleanup_cancelled(company_id: int | None = None) -> int:
    """Hard-delete cancelled appointments (all companies when company_id is None)."""
    with db_session() as s:
        q = select(Appointment.id).where(Appointment.status == AppointmentStatus.CANCELLED)
        if company_id is not None:
            q = q.where(Appointment.company_id == company_id)
        ids = list(s.scalars(q))
        if not ids:
            return 0

        s.execute(update(Consultation).where(Consultation.appointment_id.in_(ids)).values(appointment_id=None))
        s.execute(update(Receivable).where(Receivable.appointment_id.in_(ids)).values(appointment_id=None))
        s.execute(delete(Appointment).where(Appointment.id.in_(ids)))
        log.info("removed %d cancelled appointments", len(ids))
        return len(ids)
