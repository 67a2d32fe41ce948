"""
Client package against the real app (TestClient as transport).
"""
import time

import pytest

from odontosync.auth_security import create_access_token
from odontosync.client import (
    ApiClient,
    ApiError,
    AuthenticationRequired,
    ClientPermissions,
    SessionStore,
    TokenCleanup,
    check_and_clean_expired_token,
    jwt_is_expired,
    jwt_payload,
)

from conftest import DEFAULT_PASSWORD


# =========================
# Session / token cleanup
# =========================
def test_jwt_payload_and_expiry():
    token = create_access_token(subject="7", extra={"role": "dentist"}, expires_minutes=10)
    payload = jwt_payload(token)
    assert payload["sub"] == "7"
    assert payload["role"] == "dentist"
    assert jwt_is_expired(token) is False
    assert jwt_is_expired(token, now=payload["exp"] + 1) is True
    # exp itself is still valid
    assert jwt_is_expired(token, now=payload["exp"]) is False


def test_unreadable_token():
    assert jwt_payload("abc") is None
    assert jwt_payload("a.!!!.c") is None
    assert jwt_is_expired("abc") is True


def test_cleanup_removes_expired_session():
    store = SessionStore()
    store.save(create_access_token(subject="1", expires_minutes=-1), {"id": 1}, True)
    logged_out = []

    assert check_and_clean_expired_token(store, on_logout=lambda: logged_out.append(True)) is True
    assert store.token is None
    assert store.user is None
    assert store.force_password_change is False
    assert logged_out == [True]


def test_cleanup_removes_garbage_token():
    store = SessionStore({"token": "garbage", "user": {"id": 1}})
    assert check_and_clean_expired_token(store) is True
    assert store.backend == {}


def test_cleanup_keeps_valid_session():
    store = SessionStore()
    store.save(create_access_token(subject="1"), {"id": 1})
    assert check_and_clean_expired_token(store, on_logout=pytest.fail) is False
    assert store.is_authenticated


def test_cleanup_without_token_does_nothing():
    assert check_and_clean_expired_token(SessionStore(), on_logout=pytest.fail) is False


def test_token_cleanup_checks_immediately_and_periodically():
    store = SessionStore()
    store.save(create_access_token(subject="1", expires_minutes=-1), {"id": 1})
    events = []

    poller = TokenCleanup(store, on_logout=lambda: events.append("logout"), interval=0.05)
    poller.start()
    try:
        assert events == ["logout"]
        assert poller.running

        store.save(create_access_token(subject="1", expires_minutes=-1), {"id": 1})
        deadline = time.time() + 2
        while len(events) < 2 and time.time() < deadline:
            time.sleep(0.02)
        assert events == ["logout", "logout"]
        assert store.token is None
    finally:
        poller.stop(timeout=1)
    assert not poller.running


# =========================
# ApiClient
# =========================
@pytest.fixture
def api(client):
    return ApiClient("http://testserver", SessionStore(), http=client)


def test_login_stores_session(api, make_company, make_user):
    make_user("ana", make_company(), role="reception")
    data = api.login("ana", DEFAULT_PASSWORD)

    assert api.session.token == data["token"]
    assert api.session.user["username"] == "ana"
    assert api.me()["username"] == "ana"


def test_login_by_email(api, make_company, make_user):
    make_user("bia", make_company(), email="bia@clinic.com")
    api.login("bia@clinic.com", DEFAULT_PASSWORD)
    assert api.session.user["username"] == "bia"


def test_failed_login_raises(api, make_company, make_user):
    make_user("ana", make_company())
    with pytest.raises(AuthenticationRequired) as exc:
        api.login("ana", "wrong")
    assert exc.value.message == "Invalid credentials"
    assert not api.session.is_authenticated


def test_forbidden_clears_session(api, make_company, make_user):
    make_user("recep", make_company(), role="reception")
    api.login("recep", DEFAULT_PASSWORD)

    with pytest.raises(AuthenticationRequired) as exc:
        api.get("/api/products")
    assert exc.value.status_code == 403
    assert not api.session.is_authenticated


def test_expired_token_clears_session(api, make_company, make_user):
    user_id = make_user("ana", make_company())
    api.session.save(create_access_token(subject=str(user_id), expires_minutes=-1), {"id": user_id})

    with pytest.raises(AuthenticationRequired):
        api.get("/api/patients")
    assert api.session.token is None


def test_other_errors_carry_message(api, clinic):
    api.login("clinicadmin", DEFAULT_PASSWORD)
    with pytest.raises(ApiError) as exc:
        api.get("/api/patients/999")
    assert not isinstance(exc.value, AuthenticationRequired)
    assert exc.value.status_code == 404
    assert exc.value.message == "Patient not found"
    assert api.session.is_authenticated


def test_force_change_password_clears_flag(api, make_company, make_user):
    make_user("new", make_company(), force_password_change=True)
    api.login("new", DEFAULT_PASSWORD)
    assert api.session.force_password_change is True

    api.force_change_password("fresh-pass")
    assert api.session.force_password_change is False
    assert api.get("/api/patients") == []


# =========================
# ClientPermissions
# =========================
def test_permissions_follow_company_profile(api, clinic, make_user):
    admin_api = ApiClient("http://testserver", SessionStore(), http=api.http)
    admin_api.login("clinicadmin", DEFAULT_PASSWORD)
    admin_api.post("/api/user-profiles", {"name": "reception", "modules": ["dashboard", "schedule"]})

    make_user("recep", clinic.company_id, role="reception")
    api.login("recep", DEFAULT_PASSWORD)
    perms = ClientPermissions(api).load()

    assert perms.company["id"] == clinic.company_id
    assert perms.is_system_admin is False
    assert perms.accessible_modules() == ["dashboard", "schedule"]
    assert not perms.has_access("financial")


def test_permissions_super_admin(api, super_admin):
    api.login("root", "root123")
    perms = ClientPermissions(api).load()
    assert perms.is_system_admin is True
    assert perms.has_access("companies")
    assert perms.has_access("saas-management")


def test_permissions_tenant_admin_has_no_system_modules(api, clinic):
    api.login("clinicadmin", DEFAULT_PASSWORD)
    perms = ClientPermissions(api).load()
    assert perms.has_access("settings")
    assert not perms.has_access("companies")
