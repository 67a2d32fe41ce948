from __future__ import annotations

from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator

from ..config import TIMEZONE
from ..deps import require_module
from ..models import AppointmentStatus
from ..services import scheduling as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["schedule"])

schedule_scope = require_module("schedule")


def clinic_local(dt: datetime | None) -> datetime | None:
    """Appointments are stored as naive clinic-local times."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(ZoneInfo(TIMEZONE)).replace(tzinfo=None)


class _ClinicTime(BaseModel):
    @field_validator("scheduled_date", check_fields=False)
    @classmethod
    def _to_clinic_local(cls, v: datetime | None) -> datetime | None:
        return clinic_local(v)


class AppointmentIn(_ClinicTime):
    patient_id: int
    dentist_id: int
    procedure_id: int
    scheduled_date: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None


class AppointmentUpdateIn(_ClinicTime):
    patient_id: int | None = None
    dentist_id: int | None = None
    procedure_id: int | None = None
    scheduled_date: datetime | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None


class AvailabilityIn(_ClinicTime):
    dentist_id: int
    procedure_id: int
    scheduled_date: datetime
    exclude_id: int | None = None


@router.get("/appointments")
def api_appointments(
    day: date | None = Query(default=None, alias="date"),
    dentist_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    scope: TenantScope = Depends(schedule_scope),
) -> list[dict]:
    return svc.list_appointments(scope, day=day, dentist_id=dentist_id, start_date=start_date, end_date=end_date)


@router.post("/appointments/check-availability")
def api_check_availability(payload: AvailabilityIn, scope: TenantScope = Depends(schedule_scope)) -> dict[str, Any]:
    res = svc.check_availability(
        scope, payload.dentist_id, payload.scheduled_date, payload.procedure_id, exclude_id=payload.exclude_id
    )
    return {"available": res.available, "conflict_message": res.message or None}


@router.delete("/appointments/cancelled")
def api_cleanup_cancelled(scope: TenantScope = Depends(schedule_scope)) -> dict[str, Any]:
    count = svc.cleanup_cancelled(scope.require_company())
    return {"message": f"{count} cancelled appointments removed", "count": count}


@router.get("/appointments-without-consultation")
def api_without_consultation(scope: TenantScope = Depends(schedule_scope)) -> list[dict]:
    return svc.appointments_without_consultation(scope)


@router.get("/appointments/{appointment_id}")
def api_appointment(appointment_id: int, scope: TenantScope = Depends(schedule_scope)) -> dict[str, Any]:
    return svc.get_appointment(scope, appointment_id)


@router.post("/appointments", status_code=status.HTTP_201_CREATED)
def api_create_appointment(payload: AppointmentIn, scope: TenantScope = Depends(schedule_scope)) -> dict[str, Any]:
    return svc.create_appointment(scope, payload.model_dump())


@router.put("/appointments/{appointment_id}")
def api_update_appointment(
    appointment_id: int, payload: AppointmentUpdateIn, scope: TenantScope = Depends(schedule_scope)
) -> dict[str, Any]:
    data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None or k == "notes"}
    return svc.update_appointment(scope, appointment_id, data)
