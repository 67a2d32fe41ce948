from __future__ import annotations

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, or_, select

from ..db import clinic_today, db_session
from ..models import (
    Appointment,
    AppointmentStatus,
    Consultation,
    Patient,
    Payable,
    PaymentStatus,
    Receivable,
)
from ..tenancy import TenantScope
from .financial import money, own_receivable_ids


def _month_bounds(today: date) -> tuple[date, date]:
    first = today.replace(day=1)
    nxt = (first + timedelta(days=32)).replace(day=1)
    return first, nxt


def dashboard_metrics(scope: TenantScope, today: date | None = None) -> dict[str, Any]:
    """
    - today's appointments (every status except cancelled)
    - active patients
    - this month's revenue (receivables paid this month)
    - pending receivables

    With data scope 'own' the appointment and money figures only count the
    user's own work.
    """
    today = today or clinic_today()
    day_start = datetime.combine(today, time.min)
    month_start, month_end = _month_bounds(today)

    with db_session() as s:
        appts = scope.filter(select(func.count(Appointment.id)), Appointment).where(
            Appointment.scheduled_date >= day_start,
            Appointment.scheduled_date < day_start + timedelta(days=1),
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if scope.own_only:
            appts = appts.where(Appointment.dentist_id == scope.user_id)

        patients = scope.filter(select(func.count(Patient.id)), Patient).where(Patient.is_active.is_(True))

        revenue = scope.filter(select(func.coalesce(func.sum(Receivable.amount), 0)), Receivable).where(
            Receivable.status == PaymentStatus.PAID,
            Receivable.payment_date >= month_start,
            Receivable.payment_date < month_end,
        )
        pending = scope.filter(select(func.coalesce(func.sum(Receivable.amount), 0)), Receivable).where(
            Receivable.status == PaymentStatus.PENDING
        )
        if scope.own_only:
            mine = Receivable.id.in_(own_receivable_ids(scope.user_id))
            revenue = revenue.where(mine)
            pending = pending.where(mine)

        return {
            "today_appointments": s.execute(appts).scalar_one(),
            "active_patients": s.execute(patients).scalar_one(),
            "monthly_revenue": money(s.execute(revenue).scalar_one()),
            "pending_payments": money(s.execute(pending).scalar_one()),
        }


def overview_report(scope: TenantScope, start_date: date | None = None, end_date: date | None = None) -> dict[str, Any]:
    """
    Period overview. With data scope 'own' the appointment, consultation and
    revenue figures only count the user's own work and expenses are hidden.
    """
    with db_session() as s:
        appts = scope.filter(select(Appointment.status), Appointment)
        consults = scope.filter(select(func.count(Consultation.id)), Consultation)
        recs = scope.filter(select(Receivable.status, Receivable.amount), Receivable)
        pays = scope.filter(select(Payable.status, Payable.amount), Payable)

        if start_date:
            start = datetime.combine(start_date, time.min)
            appts = appts.where(Appointment.scheduled_date >= start)
            consults = consults.where(Consultation.date >= start)
            recs = recs.where(Receivable.due_date >= start_date)
            pays = pays.where(Payable.due_date >= start_date)
        if end_date:
            end = datetime.combine(end_date, time.min) + timedelta(days=1)
            appts = appts.where(Appointment.scheduled_date < end)
            consults = consults.where(Consultation.date < end)
            recs = recs.where(Receivable.due_date <= end_date)
            pays = pays.where(Payable.due_date <= end_date)

        if scope.own_only:
            appts = appts.where(Appointment.dentist_id == scope.user_id)
            consults = consults.where(Consultation.dentist_id == scope.user_id)
            recs = (
                recs.outerjoin(Consultation, Consultation.id == Receivable.consultation_id)
                .outerjoin(Appointment, Appointment.id == Receivable.appointment_id)
                .where(or_(Consultation.dentist_id == scope.user_id, Appointment.dentist_id == scope.user_id))
            )

        statuses = [r.status for r in s.execute(appts).all()]
        by_status = {st.value: sum(1 for x in statuses if x == st) for st in AppointmentStatus}

        def total(rows, status: PaymentStatus) -> Decimal:
            return money(sum((Decimal(str(r.amount)) for r in rows if r.status == status), Decimal("0")))

        rec_rows = s.execute(recs).all()
        pay_rows = [] if scope.own_only else s.execute(pays).all()

        active = scope.filter(select(Patient.created_at), Patient).where(Patient.is_active.is_(True))
        created = [r.created_at for r in s.execute(active).all()]
        new_patients = sum(
            1 for c in created
            if (not start_date or c.date() >= start_date) and (not end_date or c.date() <= end_date)
        )

        stats = {
            "total_appointments": len(statuses),
            "scheduled_appointments": by_status["scheduled"],
            "in_progress_appointments": by_status["in_progress"],
            "completed_appointments": by_status["completed"],
            "cancelled_appointments": by_status["cancelled"],
            "total_consultations": s.execute(consults).scalar_one(),
            "total_revenue": total(rec_rows, PaymentStatus.PAID),
            "pending_revenue": total(rec_rows, PaymentStatus.PENDING),
            "total_expenses": total(pay_rows, PaymentStatus.PAID),
            "pending_expenses": total(pay_rows, PaymentStatus.PENDING),
            "total_patients": len(created),
            "new_patients": new_patients,
        }
        return {
            "period": {"start_date": start_date, "end_date": end_date},
            "statistics": stats,
            "appointments_by_status": by_status,
        }
