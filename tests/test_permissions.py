from odontosync.permissions import (
    MODULES,
    accessible_modules,
    data_scope,
    find_profile_modules,
    has_access,
    is_super_admin,
)

from conftest import auth_headers


# =========================
# Rules
# =========================
def test_super_admin_is_admin_without_company():
    assert is_super_admin("admin", None)
    assert not is_super_admin("admin", 3)
    assert not is_super_admin("dentist", None)


def test_system_modules_only_for_super_admin():
    assert has_access({"role": "admin", "company_id": None}, "companies")
    assert not has_access({"role": "Administrador", "company_id": 1}, "companies")
    assert not has_access({"role": "dentist", "company_id": 1}, "saas-management", ["saas-management"])


def test_admin_roles_get_every_clinic_module():
    user = {"role": "Administrador", "company_id": 1}
    assert accessible_modules(user) == list(MODULES)


def test_profile_modules_win_over_legacy_role():
    user = {"role": "reception", "company_id": 1}
    assert has_access(user, "financial")
    assert not has_access(user, "financial", ["dashboard", "stock"])
    assert has_access(user, "stock", ["dashboard", "stock"])


def test_unknown_role_defaults_to_dashboard():
    user = {"role": "intern", "company_id": 1}
    assert accessible_modules(user) == ["dashboard"]


def test_no_user_no_access():
    assert not has_access(None, "dashboard")
    assert accessible_modules(None) == []


def test_find_profile_modules_skips_inactive():
    profiles = [
        {"name": "reception", "modules": ["stock"], "is_active": False},
        {"name": "dentist", "modules": ["schedule"], "is_active": True},
    ]
    assert find_profile_modules("reception", profiles) is None
    assert find_profile_modules("dentist", profiles) == ["schedule"]


def test_find_profile_modules_ignores_case():
    profiles = [{"name": "Recepção ", "modules": ["schedule"]}, {"name": "Dentist", "modules": ["patients"]}]
    assert find_profile_modules("dentist", profiles) == ["patients"]
    assert find_profile_modules("recepção", profiles) == ["schedule"]
    assert find_profile_modules(None, profiles) is None


def test_data_scope_admin_always_all():
    assert data_scope({"role": "admin", "data_scope": "own"}) == "all"
    assert data_scope({"role": "dentist", "data_scope": "own"}) == "own"
    assert data_scope({"role": "dentist"}) == "all"


# =========================
# Enforcement on the API
# =========================
def test_module_denied_is_403(client, make_company, make_user):
    user_id = make_user("recep", make_company(), role="reception")
    r = client.get("/api/products", headers=auth_headers(user_id))
    assert r.status_code == 403
    assert r.json()["message"] == "Access denied to module: stock"


def test_company_profile_changes_module_access(client, clinic, make_user):
    recep_id = make_user("recep", clinic.company_id, role="reception")
    headers = auth_headers(recep_id)
    assert client.get("/api/patients", headers=headers).status_code == 200

    r = client.post(
        "/api/user-profiles",
        json={"name": "reception", "modules": ["dashboard", "stock"]},
        headers=clinic.headers,
    )
    assert r.status_code == 201

    assert client.get("/api/patients", headers=headers).status_code == 403
    assert client.get("/api/products", headers=headers).status_code == 200


def test_profile_with_unknown_module_rejected(client, clinic):
    r = client.post(
        "/api/user-profiles",
        json={"name": "weird", "modules": ["rocket-science"]},
        headers=clinic.headers,
    )
    assert r.status_code == 400


def test_tenant_admin_cannot_manage_companies(client, clinic):
    assert client.get("/api/companies", headers=clinic.headers).status_code == 403


def test_dentists_list_open_to_any_user(client, clinic, make_user):
    recep_id = make_user("recep", clinic.company_id, role="reception")
    r = client.get("/api/users/dentists", headers=auth_headers(recep_id))
    assert r.status_code == 200
    assert [d["name"] for d in r.json()] == ["Drsmile"]
    assert all("password_hash" not in d for d in r.json())


def test_super_admin_writes_need_company_header(client, clinic, super_admin):
    payload = {"name": "Joao", "cpf": "98765432100", "birth_date": "1990-01-01", "phone": "11977776666"}

    r = client.post("/api/patients", json=payload, headers=super_admin.headers)
    assert r.status_code == 400

    headers = dict(super_admin.headers, **{"X-Company-Id": str(clinic.company_id)})
    r = client.post("/api/patients", json=payload, headers=headers)
    assert r.status_code == 201
    assert r.json()["company_id"] == clinic.company_id


def test_super_admin_unknown_company_header_is_404(client, super_admin):
    headers = dict(super_admin.headers, **{"X-Company-Id": "999"})
    assert client.get("/api/patients", headers=headers).status_code == 404


def test_super_admin_reads_span_companies(client, clinic, make_company, make_user, super_admin):
    other_id = make_company(name="Other", email="x@other.com")
    other_admin = make_user("otheradmin", other_id)
    client.post(
        "/api/patients",
        json={"name": "Pedro", "cpf": "11122233344", "birth_date": "1970-02-02", "phone": "1100000000"},
        headers=auth_headers(other_admin),
    )

    r = client.get("/api/patients", headers=super_admin.headers)
    assert {p["name"] for p in r.json()} == {"Maria Silva", "Pedro"}


def test_tenant_admin_cannot_create_user_elsewhere(client, clinic, make_company):
    other_id = make_company(name="Other", email="x@other.com")
    r = client.post(
        "/api/users",
        json={
            "username": "intruder",
            "password": "secret123",
            "name": "Intruder",
            "email": "intruder@x.com",
            "company_id": other_id,
        },
        headers=clinic.headers,
    )
    assert r.status_code == 403
    assert r.json()["message"] == "Cannot create users for another company"
