"""
Streamlit front end, logged-out paths only (no API calls).
"""
from pathlib import Path

from streamlit.testing.v1 import AppTest

from odontosync.auth_security import create_access_token
from odontosync.client import SessionStore, check_and_clean_expired_token, jwt_payload
from odontosync.client.session import CLEANUP_INTERVAL_SECONDS

APP = str(Path(__file__).resolve().parents[1] / "streamlit_app.py")


def test_expired_token_back_to_login_form():
    at = AppTest.from_file(APP, default_timeout=30)
    at.session_state["token"] = create_access_token(subject="1", expires_minutes=-1)
    at.session_state["user"] = {"id": 1, "name": "Dr Smile", "role": "dentist"}
    at.run()

    assert not at.exception
    assert "token" not in at.session_state
    assert "Session expired. Please log in again." in [e.value for e in at.error]
    assert "Log in from the sidebar to use the system." in [i.value for i in at.info]
    assert [b.label for b in at.button] == ["Login"]


def test_idle_session_expires_on_a_later_check():
    # what the sidebar fragment does every CLEANUP_INTERVAL_SECONDS
    assert CLEANUP_INTERVAL_SECONDS == 30
    store = SessionStore()
    token = create_access_token(subject="1", expires_minutes=1)
    store.save(token, {"id": 1})
    logged_out = []

    assert check_and_clean_expired_token(store, on_logout=lambda: logged_out.append(True)) is False
    later = jwt_payload(token)["exp"] + 1
    assert check_and_clean_expired_token(store, on_logout=lambda: logged_out.append(True), now=later) is True
    assert logged_out == [True]
    assert not store.is_authenticated
