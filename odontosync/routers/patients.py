from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import require_module
from ..models import ToothCondition
from ..services import patients as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["patients"])

patients_scope = require_module("patients")


class PatientIn(BaseModel):
    name: str = Field(..., min_length=1)
    cpf: str = Field(..., min_length=11, max_length=14)
    birth_date: date
    phone: str = Field(..., min_length=1)
    email: str | None = None
    cep: str | None = None
    street: str | None = None
    number: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = Field(default=None, max_length=2)
    is_active: bool = True
    clinical_notes: str | None = None


class PatientUpdateIn(BaseModel):
    name: str | None = None
    cpf: str | None = Field(default=None, min_length=11, max_length=14)
    birth_date: date | None = None
    phone: str | None = None
    email: str | None = None
    cep: str | None = None
    street: str | None = None
    number: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = Field(default=None, max_length=2)
    is_active: bool | None = None
    clinical_notes: str | None = None


class AnamneseIn(BaseModel):
    patient_id: int
    medical_treatment: bool = False
    medications: str | None = None
    allergies: str | None = None
    previous_dental_treatment: bool = False
    pain_complaint: str | None = None
    additional_questions: dict[str, Any] | None = None


class AnamneseUpdateIn(BaseModel):
    medical_treatment: bool | None = None
    medications: str | None = None
    allergies: str | None = None
    previous_dental_treatment: bool | None = None
    pain_complaint: str | None = None
    additional_questions: dict[str, Any] | None = None


class ToothIn(BaseModel):
    condition: ToothCondition = ToothCondition.HEALTHY
    notes: str | None = None
    treatment_date: date | None = None


# =========================
# Patients
# =========================
@router.get("/patients")
def api_patients(
    search: str | None = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    scope: TenantScope = Depends(patients_scope),
) -> list[dict]:
    return svc.list_patients(scope, search=search, limit=limit, offset=offset)


@router.get("/patients/{patient_id}")
def api_patient(patient_id: int, scope: TenantScope = Depends(patients_scope)) -> dict[str, Any]:
    return svc.get_patient(scope, patient_id)


@router.post("/patients", status_code=status.HTTP_201_CREATED)
def api_create_patient(payload: PatientIn, scope: TenantScope = Depends(patients_scope)) -> dict[str, Any]:
    return svc.create_patient(scope, payload.model_dump())


@router.put("/patients/{patient_id}")
def api_update_patient(
    patient_id: int, payload: PatientUpdateIn, scope: TenantScope = Depends(patients_scope)
) -> dict[str, Any]:
    return svc.update_patient(scope, patient_id, payload.model_dump(exclude_unset=True))


# =========================
# Anamnese
# =========================
@router.get("/anamnese/{patient_id}")
def api_anamnese(patient_id: int, scope: TenantScope = Depends(patients_scope)) -> dict[str, Any] | None:
    return svc.get_anamnese(scope, patient_id)


@router.post("/anamnese", status_code=status.HTTP_201_CREATED)
def api_create_anamnese(payload: AnamneseIn, scope: TenantScope = Depends(patients_scope)) -> dict[str, Any]:
    return svc.create_anamnese(scope, payload.model_dump())


@router.put("/anamnese/{anamnese_id}")
def api_update_anamnese(
    anamnese_id: int, payload: AnamneseUpdateIn, scope: TenantScope = Depends(patients_scope)
) -> dict[str, Any]:
    return svc.update_anamnese(scope, anamnese_id, payload.model_dump(exclude_unset=True))


# =========================
# Dental chart
# =========================
@router.get("/dental-chart/{patient_id}")
def api_dental_chart(patient_id: int, scope: TenantScope = Depends(patients_scope)) -> list[dict]:
    return svc.get_dental_chart(scope, patient_id)


@router.put("/dental-chart/{patient_id}/{tooth_number}")
def api_update_tooth(
    patient_id: int, tooth_number: str, payload: ToothIn, scope: TenantScope = Depends(patients_scope)
) -> dict[str, Any]:
    return svc.update_tooth(scope, patient_id, tooth_number, payload.model_dump())
