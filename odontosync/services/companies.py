from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

from sqlalchemy import func, select

from ..auth_models import User, UserProfile
from ..auth_security import hash_password
from ..db import clinic_today, db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError
from ..models import Company, Patient
from ..permissions import MODULES, is_super_admin

log = logging.getLogger(__name__)

ADMIN_PROFILE_NAME = "Administrador"

_COMPANY_FIELDS = (
    "name", "trade_name", "cnpj", "email", "phone",
    "cep", "street", "number", "neighborhood", "city", "state",
    "is_active", "trial_end_date", "subscription_start_date", "subscription_end_date",
)


def _company_dict(c: Company) -> dict[str, Any]:
    out = row_to_dict(c)
    out.pop("whatsapp_qr_code", None)
    return out


def admin_password_for(company_name: str) -> str:
    """First 10 lowercase alphanumerics of the name + '123'."""
    slug = re.sub(r"[^a-z0-9]", "", company_name.lower())[:10]
    return f"{slug}123"


# =========================
# Companies
# =========================
def list_companies() -> list[dict]:
    with db_session() as s:
        return [_company_dict(c) for c in s.scalars(select(Company).order_by(Company.name))]


def get_company(company_id: int) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Company, company_id)
        if not c:
            raise NotFoundError("Company not found")
        return _company_dict(c)


def create_company_with_admin(data: dict[str, Any]) -> dict[str, Any]:
    """
    Create a tenant together with:
    - the 'Administrador' profile (all modules)
    - an admin user admin_<email local part>_c<id> that must change
      the generated password at first login

    The generated password is only returned here.
    """
    with db_session() as s:
        cnpj = data.get("cnpj")
        if cnpj and s.execute(select(Company.id).where(Company.cnpj == cnpj)).first():
            raise ConflictError("A company with this CNPJ already exists")

        company = Company(**{k: v for k, v in data.items() if k in _COMPANY_FIELDS})
        s.add(company)
        s.flush()

        s.add(
            UserProfile(
                company_id=company.id,
                name=ADMIN_PROFILE_NAME,
                description="Administrative profile with full access",
                modules=list(MODULES),
                is_active=True,
            )
        )

        password = admin_password_for(company.name)
        local_part = company.email.split("@")[0]
        admin = User(
            username=f"admin_{local_part}_c{company.id}",
            password_hash=hash_password(password),
            name=ADMIN_PROFILE_NAME,
            email=company.email,
            role=ADMIN_PROFILE_NAME,
            company_id=company.id,
            is_active=True,
            force_password_change=True,
            data_scope="all",
        )
        s.add(admin)
        s.flush()

        log.info("company %s created with admin user %s", company.id, admin.username)
        return {
            "company": _company_dict(company),
            "admin_user": {
                "id": admin.id,
                "username": admin.username,
                "email": admin.email,
                "role": admin.role,
                "generated_password": password,
            },
        }


def update_company(company_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(Company, company_id)
        if not c:
            raise NotFoundError("Company not found")

        cnpj = data.get("cnpj")
        if cnpj and cnpj != c.cnpj:
            if s.execute(select(Company.id).where(Company.cnpj == cnpj, Company.id != company_id)).first():
                raise ConflictError("A company with this CNPJ already exists")

        for k, v in data.items():
            if k in _COMPANY_FIELDS:
                setattr(c, k, v)
        c.updated_at = utcnow()
        s.flush()
        return _company_dict(c)


# =========================
# SaaS metrics
# =========================
def saas_metrics(today: date | None = None) -> dict[str, Any]:
    """Overview of the tenants for the system administrator."""
    today = today or clinic_today()
    with db_session() as s:
        companies = list(s.scalars(select(Company)))
        users = s.execute(
            select(func.count(User.id)).where(User.company_id.is_not(None))
        ).scalar_one()
        patients = s.execute(select(func.count(Patient.id))).scalar_one()

        in_trial = sum(1 for c in companies if c.trial_end_date and c.trial_end_date >= today)
        subscribed = sum(
            1 for c in companies
            if c.subscription_end_date and c.subscription_end_date >= today
        )
        return {
            "total_companies": len(companies),
            "active_companies": sum(1 for c in companies if c.is_active),
            "inactive_companies": sum(1 for c in companies if not c.is_active),
            "companies_in_trial": in_trial,
            "active_subscriptions": subscribed,
            "total_users": users,
            "total_patients": patients,
        }


def user_company_info(user: User) -> dict[str, Any]:
    """Company of the logged user plus the system-admin flag."""
    company = None
    if user.company_id is not None:
        with db_session() as s:
            c = s.get(Company, user.company_id)
            company = _company_dict(c) if c else None
    return {
        "company": company,
        "is_system_admin": is_super_admin(user.role, user.company_id),
    }
