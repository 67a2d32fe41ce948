from __future__ import annotations

import logging
import time as _time
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from sqlalchemy import select

from ..config import TIMEZONE, WHATSAPP_INSTANCE
from ..db import db_session
from ..models import Appointment, AppointmentStatus, Company, Patient
from . import whatsapp

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reminder:
    appointment_id: int
    company_id: int
    patient_name: str
    phone: str
    scheduled_date: datetime
    instance: str = WHATSAPP_INSTANCE


@dataclass(frozen=True)
class ReminderRun:
    day: date
    found: int
    sent: int
    failed: int


def reminder_message(patient_name: str, when: datetime) -> str:
    return (
        f"Hello {patient_name}, this is a reminder that you have an appointment "
        f"tomorrow at {when.strftime('%H:%M')}."
    )


def tomorrow(tz: str = TIMEZONE) -> date:
    return datetime.now(ZoneInfo(tz)).date() + timedelta(days=1)


def due_reminders(day: date) -> list[Reminder]:
    """
    Scheduled appointments of the day, every company, patients with a phone.
    Each reminder goes out through its clinic's own instance when it has one.
    """
    start = datetime.combine(day, time.min)
    with db_session() as s:
        rows = s.execute(
            select(
                Appointment.id,
                Appointment.company_id,
                Appointment.scheduled_date,
                Patient.name,
                Patient.phone,
                Company.whatsapp_instance_id,
            )
            .join(Patient, Patient.id == Appointment.patient_id)
            .join(Company, Company.id == Appointment.company_id)
            .where(
                Appointment.scheduled_date >= start,
                Appointment.scheduled_date < start + timedelta(days=1),
                Appointment.status == AppointmentStatus.SCHEDULED,
            )
            .order_by(Appointment.company_id, Appointment.scheduled_date)
        ).all()
        return [
            Reminder(r.id, r.company_id, r.name, r.phone, r.scheduled_date, r.whatsapp_instance_id or WHATSAPP_INSTANCE)
            for r in rows
            if r.phone and r.phone.strip()
        ]


def send_daily_reminders(
    day: date | None = None,
    sender: Callable[[str, str, str], bool] = whatsapp.send_text,
    delay_seconds: float = 1.0,
) -> ReminderRun:
    """
    Send tomorrow's reminders. A failed message is logged and the run goes on.
    Meant to be started once a day by an external scheduler (see the CLI).
    """
    day = day or tomorrow()
    reminders = due_reminders(day)
    sent = failed = 0

    for i, rem in enumerate(reminders):
        try:
            ok = sender(rem.phone, reminder_message(rem.patient_name, rem.scheduled_date), rem.instance)
        except Exception:
            log.exception("reminder for appointment %s raised", rem.appointment_id)
            ok = False

        if ok:
            sent += 1
        else:
            failed += 1
            log.warning("reminder for appointment %s not delivered", rem.appointment_id)

        if delay_seconds and i < len(reminders) - 1:
            _time.sleep(delay_seconds)

    log.info("reminders for %s: %d found, %d sent, %d failed", day, len(reminders), sent, failed)
    return ReminderRun(day=day, found=len(reminders), sent=sent, failed=failed)
