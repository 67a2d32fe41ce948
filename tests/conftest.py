"""Test fixtures"""
import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import select

# Throwaway SQLite file, set before odontosync.config is imported
_TMP_DIR = tempfile.mkdtemp(prefix="odontosync-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_TMP_DIR) / 'test.sqlite'}"
os.environ["SEED_ON_STARTUP"] = "0"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["EVOLUTION_API_URL"] = ""
os.environ["STATIC_DIR"] = str(Path(_TMP_DIR) / "public")

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from fastapi.testclient import TestClient  # noqa: E402

from odontosync import auth_models, models  # noqa: E402,F401
from odontosync.api_main import app  # noqa: E402
from odontosync.auth_models import User  # noqa: E402
from odontosync.auth_security import create_access_token, hash_password  # noqa: E402
from odontosync.db import Base, db_session, engine  # noqa: E402
from odontosync.models import Company  # noqa: E402
from odontosync.seed import seed_base  # noqa: E402

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(autouse=True)
def _reset_db():
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(name="client")
def client_fixture():
    with TestClient(app) as c:
        yield c


def auth_headers(user_id: int, company_id: int | None = None) -> dict:
    headers = {"Authorization": f"Bearer {create_access_token(subject=str(user_id))}"}
    if company_id is not None:
        headers["X-Company-Id"] = str(company_id)
    return headers


@pytest.fixture(name="make_company")
def make_company_fixture():
    def _make(name: str = "Sorriso Clinic", email: str = "contact@sorriso.com") -> int:
        with db_session() as s:
            c = Company(name=name, email=email, phone="11999990000")
            s.add(c)
            s.flush()
            return c.id

    return _make


@pytest.fixture(name="make_user")
def make_user_fixture():
    def _make(
        username: str,
        company_id: int | None,
        role: str = "Administrador",
        password: str = DEFAULT_PASSWORD,
        force_password_change: bool = False,
        data_scope: str = "all",
        email: str | None = None,
        is_active: bool = True,
    ) -> int:
        with db_session() as s:
            u = User(
                username=username,
                password_hash=hash_password(password),
                name=username.title(),
                email=email or f"{username}@example.com",
                role=role,
                company_id=company_id,
                is_active=is_active,
                force_password_change=force_password_change,
                data_scope=data_scope,
            )
            s.add(u)
            s.flush()
            return u.id

    return _make


@pytest.fixture(name="super_admin")
def super_admin_fixture():
    seed_base(username="root", password="root123", email="root@odontosync.com")
    with db_session() as s:
        user_id = s.execute(select(User.id).where(User.username == "root")).scalar_one()
    return SimpleNamespace(id=user_id, headers=auth_headers(user_id))


@pytest.fixture(name="clinic")
def clinic_fixture(client, make_company, make_user):
    """
    A company with its admin, a dentist, a patient and a 30 minute procedure.
    """
    company_id = make_company()
    admin_id = make_user("clinicadmin", company_id)
    dentist_id = make_user("drsmile", company_id, role="dentist")
    headers = auth_headers(admin_id)

    patient = client.post(
        "/api/patients",
        json={"name": "Maria Silva", "cpf": "12345678901", "birth_date": "1985-04-12", "phone": "11988887777"},
        headers=headers,
    ).json()
    procedure = client.post(
        "/api/procedures",
        json={"name": "Cleaning", "price": "150.00", "duration": 30},
        headers=headers,
    ).json()

    return SimpleNamespace(
        company_id=company_id,
        admin_id=admin_id,
        dentist_id=dentist_id,
        headers=headers,
        patient_id=patient["id"],
        procedure_id=procedure["id"],
    )
