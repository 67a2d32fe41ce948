from __future__ import annotations

import logging
from typing import Any

import requests

from .. import config
from .session import SessionStore

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationRequired(ApiError):
    """401/403 from the API: the session has been cleared, the user must log in again."""


def _message(resp: Any) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {resp.status_code}"


class ApiClient:
    """
    Bearer client for the OdontoSync API.

    `http` is anything with a requests-style `.request(...)`: a
    `requests.Session` by default, a FastAPI `TestClient` in tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        session: SessionStore | None = None,
        http: Any = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = (base_url or config.API_BASE).rstrip("/")
        self.session = session if session is not None else SessionStore()
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout
        self.company_id: int | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        if self.company_id is not None:
            headers["X-Company-Id"] = str(self.company_id)
        return headers

    def request(self, method: str, path: str, payload: dict | None = None, params: dict | None = None) -> Any:
        resp = self.http.request(
            method,
            f"{self.base_url}{path}",
            headers=self._headers(),
            json=payload,
            params=params,
            timeout=self.timeout,
        )

        if resp.status_code in (401, 403):
            message = _message(resp)
            # a failed login is not a session to throw away
            if self.session.token:
                log.info("%s %s -> %s, clearing session", method, path, resp.status_code)
                self.session.clear()
            raise AuthenticationRequired(message, resp.status_code)

        if resp.status_code >= 400:
            raise ApiError(_message(resp), resp.status_code)

        if not resp.content:
            return None
        return resp.json()

    def get(self, path: str, params: dict | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, payload: dict | None = None) -> Any:
        return self.request("POST", path, payload=payload)

    def put(self, path: str, payload: dict | None = None) -> Any:
        return self.request("PUT", path, payload=payload)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    # =========================
    # Auth
    # =========================
    def login(self, login: str, password: str) -> dict:
        field = "email" if "@" in login else "username"
        data = self.post("/api/auth/login", {field: login.strip(), "password": password})
        self.session.save(data["token"], data["user"], bool(data.get("force_password_change")))
        return data

    def logout(self) -> None:
        self.session.clear()
        self.company_id = None

    def me(self) -> dict:
        return self.get("/api/auth/me")

    def change_password(self, current_password: str, new_password: str) -> dict:
        return self.post(
            "/api/auth/change-password",
            {"current_password": current_password, "new_password": new_password},
        )

    def force_change_password(self, new_password: str) -> dict:
        data = self.post("/api/auth/force-change-password", {"new_password": new_password})
        self.session.set_force_password_change(False)
        return data
