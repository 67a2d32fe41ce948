from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select

from ..db import db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError
from ..models import Anamnese, DentalChartEntry, Patient, ToothCondition
from ..tenancy import TenantScope

_PATIENT_FIELDS = (
    "name", "cpf", "birth_date", "phone", "email",
    "cep", "street", "number", "neighborhood", "city", "state",
    "is_active", "clinical_notes",
)
_ANAMNESE_FIELDS = (
    "medical_treatment", "medications", "allergies",
    "previous_dental_treatment", "pain_complaint", "additional_questions",
)


def _get_patient(s, scope: TenantScope, patient_id: int) -> Patient:
    p = s.get(Patient, patient_id)
    if not scope.owns(p):
        raise NotFoundError("Patient not found")
    return p


def _cpf_taken(s, company_id: int, cpf: str, exclude_id: int | None = None) -> bool:
    q = select(Patient.id).where(Patient.company_id == company_id, Patient.cpf == cpf)
    if exclude_id is not None:
        q = q.where(Patient.id != exclude_id)
    return s.execute(q).first() is not None


# =========================
# Patients
# =========================
def list_patients(scope: TenantScope, search: str | None = None, limit: int = 50, offset: int = 0) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(Patient), Patient)
        if search:
            like = f"%{search.strip()}%"
            q = q.where(or_(Patient.name.ilike(like), Patient.cpf.ilike(like), Patient.phone.ilike(like)))
        q = q.order_by(Patient.name).limit(limit).offset(offset)
        return [row_to_dict(p) for p in s.scalars(q)]


def get_patient(scope: TenantScope, patient_id: int) -> dict[str, Any]:
    with db_session() as s:
        return row_to_dict(_get_patient(s, scope, patient_id))


def create_patient(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        if _cpf_taken(s, company_id, data["cpf"]):
            raise ConflictError("A patient with this CPF already exists")
        p = Patient(company_id=company_id, **{k: v for k, v in data.items() if k in _PATIENT_FIELDS})
        s.add(p)
        s.flush()
        return row_to_dict(p)


def update_patient(scope: TenantScope, patient_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = _get_patient(s, scope, patient_id)
        cpf = data.get("cpf")
        if cpf and cpf != p.cpf and _cpf_taken(s, p.company_id, cpf, exclude_id=p.id):
            raise ConflictError("A patient with this CPF already exists")
        for k, v in data.items():
            if k in _PATIENT_FIELDS:
                setattr(p, k, v)
        p.updated_at = utcnow()
        s.flush()
        return row_to_dict(p)


# =========================
# Anamnese
# =========================
def get_anamnese(scope: TenantScope, patient_id: int) -> dict[str, Any] | None:
    with db_session() as s:
        _get_patient(s, scope, patient_id)
        a = s.execute(select(Anamnese).where(Anamnese.patient_id == patient_id)).scalar_one_or_none()
        return row_to_dict(a) if a else None


def create_anamnese(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = _get_patient(s, scope, data["patient_id"])
        if s.execute(select(Anamnese.id).where(Anamnese.patient_id == p.id)).first():
            raise ConflictError("This patient already has an anamnese")
        a = Anamnese(
            company_id=p.company_id,
            patient_id=p.id,
            **{k: v for k, v in data.items() if k in _ANAMNESE_FIELDS},
        )
        s.add(a)
        s.flush()
        return row_to_dict(a)


def update_anamnese(scope: TenantScope, anamnese_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        a = s.get(Anamnese, anamnese_id)
        if not scope.owns(a):
            raise NotFoundError("Anamnese not found")
        for k, v in data.items():
            if k in _ANAMNESE_FIELDS:
                setattr(a, k, v)
        a.updated_at = utcnow()
        s.flush()
        return row_to_dict(a)


# =========================
# Dental chart
# =========================
def get_dental_chart(scope: TenantScope, patient_id: int) -> list[dict]:
    """Whole tooth history, newest first."""
    with db_session() as s:
        _get_patient(s, scope, patient_id)
        q = (
            select(DentalChartEntry)
            .where(DentalChartEntry.patient_id == patient_id)
            .order_by(DentalChartEntry.created_at.desc(), DentalChartEntry.id.desc())
        )
        return [row_to_dict(e) for e in s.scalars(q)]


def update_tooth(scope: TenantScope, patient_id: int, tooth_number: str, data: dict[str, Any]) -> dict[str, Any]:
    """Append a new record for the tooth; older ones stay as history."""
    with db_session() as s:
        p = _get_patient(s, scope, patient_id)
        e = DentalChartEntry(
            company_id=p.company_id,
            patient_id=p.id,
            tooth_number=tooth_number,
            condition=data.get("condition") or ToothCondition.HEALTHY,
            notes=data.get("notes"),
            treatment_date=data.get("treatment_date"),
        )
        s.add(e)
        s.flush()
        return row_to_dict(e)
