from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator

from ..deps import require_module
from ..models import AppointmentStatus
from ..services import consultations as svc
from ..tenancy import TenantScope
from .appointments import clinic_local

router = APIRouter(prefix="/api", tags=["consultations"])

consultations_scope = require_module("consultations")


class ConsultationIn(BaseModel):
    patient_id: int
    dentist_id: int
    appointment_id: int | None = None
    date: datetime
    procedures: list[str] = Field(default_factory=list)
    clinical_notes: str | None = None
    observations: str | None = None
    status: AppointmentStatus = AppointmentStatus.COMPLETED

    @field_validator("procedures", mode="before")
    @classmethod
    def _as_list(cls, v: Any) -> Any:
        # a single procedure name is accepted too
        if isinstance(v, str):
            return [v]
        return v or []

    @field_validator("date")
    @classmethod
    def _to_clinic_local(cls, v: datetime) -> datetime:
        return clinic_local(v)


class ConsultationUpdateIn(BaseModel):
    patient_id: int | None = None
    dentist_id: int | None = None
    appointment_id: int | None = None
    date: datetime | None = None
    procedures: list[str] | None = None
    clinical_notes: str | None = None
    observations: str | None = None
    status: AppointmentStatus | None = None

    @field_validator("date")
    @classmethod
    def _to_clinic_local(cls, v: datetime | None) -> datetime | None:
        return clinic_local(v)


@router.get("/consultations")
def api_consultations(
    patient_id: int | None = None,
    dentist_id: int | None = None,
    status: AppointmentStatus | None = None,
    scope: TenantScope = Depends(consultations_scope),
) -> list[dict]:
    return svc.list_consultations(scope, patient_id=patient_id, dentist_id=dentist_id, status=status)


@router.get("/consultations/{consultation_id}")
def api_consultation(consultation_id: int, scope: TenantScope = Depends(consultations_scope)) -> dict[str, Any]:
    return svc.get_consultation(scope, consultation_id)


@router.post("/consultations", status_code=status.HTTP_201_CREATED)
def api_create_consultation(payload: ConsultationIn, scope: TenantScope = Depends(consultations_scope)) -> dict[str, Any]:
    return svc.create_consultation(scope, payload.model_dump())


@router.put("/consultations/{consultation_id}")
def api_update_consultation(
    consultation_id: int, payload: ConsultationUpdateIn, scope: TenantScope = Depends(consultations_scope)
) -> dict[str, Any]:
    return svc.update_consultation(scope, consultation_id, payload.model_dump(exclude_unset=True))


@router.delete("/consultations/{consultation_id}")
def api_delete_consultation(consultation_id: int, scope: TenantScope = Depends(consultations_scope)) -> dict[str, Any]:
    svc.delete_consultation(scope, consultation_id)
    return {"message": "Consultation deleted"}
