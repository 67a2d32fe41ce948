"""
Login, token checks and password changes.
"""
from odontosync.auth_security import create_access_token, decode_token

from conftest import DEFAULT_PASSWORD, auth_headers


def test_login_with_username_returns_token_and_user(client, make_company, make_user):
    company_id = make_company()
    make_user("ana", company_id, role="reception")

    r = client.post("/api/auth/login", json={"username": "ana", "password": DEFAULT_PASSWORD})
    assert r.status_code == 200
    body = r.json()
    assert body["user"]["username"] == "ana"
    assert body["user"]["company_id"] == company_id
    assert body["force_password_change"] is False

    payload = decode_token(body["token"])
    assert payload["username"] == "ana"
    assert payload["company_id"] == company_id


def test_login_with_email(client, make_company, make_user):
    company_id = make_company()
    make_user("bruno", company_id, email="bruno@clinic.com")

    r = client.post("/api/auth/login", json={"email": "bruno@clinic.com", "password": DEFAULT_PASSWORD})
    assert r.status_code == 200
    assert r.json()["user"]["username"] == "bruno"


def test_login_wrong_password_is_401(client, make_company, make_user):
    make_user("carla", make_company())
    r = client.post("/api/auth/login", json={"username": "carla", "password": "nope"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid credentials"


def test_inactive_user_cannot_login(client, make_company, make_user):
    make_user("dora", make_company(), is_active=False)
    r = client.post("/api/auth/login", json={"username": "dora", "password": DEFAULT_PASSWORD})
    assert r.status_code == 401


def test_login_requires_username_or_email(client):
    r = client.post("/api/auth/login", json={"password": "x"})
    assert r.status_code == 422
    assert r.json()["message"] == "Invalid request"


def test_missing_token_is_401(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "Access token required"


def test_expired_token_is_401(client, make_company, make_user):
    user_id = make_user("eva", make_company())
    token = create_access_token(subject=str(user_id), expires_minutes=-1)
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired token"


def test_garbage_token_is_401(client):
    r = client.get("/api/patients", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_me(client, make_company, make_user):
    user_id = make_user("fabio", make_company(), role="dentist", data_scope="own")
    r = client.get("/api/auth/me", headers=auth_headers(user_id))
    assert r.status_code == 200
    assert r.json()["role"] == "dentist"
    assert r.json()["data_scope"] == "own"


def test_change_password(client, make_company, make_user):
    user_id = make_user("gabi", make_company())
    headers = auth_headers(user_id)

    bad = client.post(
        "/api/auth/change-password",
        json={"current_password": "wrong", "new_password": "newpass1"},
        headers=headers,
    )
    assert bad.status_code == 400

    short = client.post(
        "/api/auth/change-password",
        json={"current_password": DEFAULT_PASSWORD, "new_password": "123"},
        headers=headers,
    )
    assert short.status_code == 400

    ok = client.post(
        "/api/auth/change-password",
        json={"current_password": DEFAULT_PASSWORD, "new_password": "newpass1"},
        headers=headers,
    )
    assert ok.status_code == 200

    r = client.post("/api/auth/login", json={"username": "gabi", "password": "newpass1"})
    assert r.status_code == 200


def test_forced_change_blocks_modules_until_done(client, make_company, make_user):
    user_id = make_user("hugo", make_company(), force_password_change=True)
    headers = auth_headers(user_id)

    blocked = client.get("/api/patients", headers=headers)
    assert blocked.status_code == 403
    assert blocked.json()["message"] == "Password change required"

    # profile and company info stay reachable
    assert client.get("/api/auth/me", headers=headers).status_code == 200
    assert client.get("/api/user/company", headers=headers).status_code == 200

    r = client.post("/api/auth/force-change-password", json={"new_password": "brandnew"}, headers=headers)
    assert r.status_code == 200

    assert client.get("/api/patients", headers=headers).status_code == 200
    login = client.post("/api/auth/login", json={"username": "hugo", "password": "brandnew"})
    assert login.json()["force_password_change"] is False


def test_user_company(client, make_company, make_user, super_admin):
    company_id = make_company(name="Dente Feliz")
    user_id = make_user("iris", company_id)

    r = client.get("/api/user/company", headers=auth_headers(user_id))
    assert r.json()["company"]["name"] == "Dente Feliz"
    assert r.json()["is_system_admin"] is False

    r = client.get("/api/user/company", headers=super_admin.headers)
    assert r.json()["company"] is None
    assert r.json()["is_system_admin"] is True
