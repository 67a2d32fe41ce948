"""
Client-side session: the stored token plus the expiry watchdog.

The payload is read without verifying the signature; the API stays the
authority, the client only needs `exp` to drop a dead session early.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, MutableMapping

log = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 30.0

TOKEN_KEY = "token"
USER_KEY = "user"
FORCE_CHANGE_KEY = "force_password_change"


# =========================
# JWT helpers (no signature check)
# =========================
def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict | None:
    """Decoded payload, or None when the token is not a readable JWT."""
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return None
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    return payload if isinstance(payload, dict) else None


def jwt_is_expired(token: str, now: float | None = None) -> bool:
    """True when `exp` lies in the past. Tokens without a numeric exp never expire here."""
    payload = jwt_payload(token)
    if payload is None:
        return True
    try:
        exp = float(payload["exp"])
    except (KeyError, TypeError, ValueError):
        return False
    current = time.time() if now is None else now
    return exp < current


# =========================
# Store
# =========================
@dataclass
class SessionStore:
    """
    Token, user and the forced-change flag.

    `backend` is any mutable mapping: a dict in tests and scripts,
    `st.session_state` in the Streamlit UI.
    """

    backend: MutableMapping[str, Any] = field(default_factory=dict)

    @property
    def token(self) -> str | None:
        return self.backend.get(TOKEN_KEY)

    @property
    def user(self) -> dict | None:
        return self.backend.get(USER_KEY)

    @property
    def force_password_change(self) -> bool:
        return bool(self.backend.get(FORCE_CHANGE_KEY, False))

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def save(self, token: str, user: dict, force_password_change: bool = False) -> None:
        self.backend[TOKEN_KEY] = token
        self.backend[USER_KEY] = user
        self.backend[FORCE_CHANGE_KEY] = force_password_change

    def set_force_password_change(self, value: bool) -> None:
        self.backend[FORCE_CHANGE_KEY] = value

    def clear(self) -> None:
        for key in (TOKEN_KEY, USER_KEY, FORCE_CHANGE_KEY):
            self.backend.pop(key, None)


def check_and_clean_expired_token(
    store: SessionStore,
    on_logout: Callable[[], None] | None = None,
    now: float | None = None,
) -> bool:
    """
    Clear the store when its token is expired or unreadable.
    Returns True when a cleanup happened (and on_logout was called).
    """
    token = store.token
    if not token:
        return False

    if jwt_payload(token) is None:
        log.info("Invalid token format, cleaning up session")
    elif jwt_is_expired(token, now=now):
        log.info("Token expired, cleaning up session")
    else:
        return False

    store.clear()
    if on_logout is not None:
        on_logout()
    return True


class TokenCleanup:
    """Checks the store right away, then every `interval` seconds until stopped."""

    def __init__(
        self,
        store: SessionStore,
        on_logout: Callable[[], None] | None = None,
        interval: float = CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self.store = store
        self.on_logout = on_logout
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def check(self) -> bool:
        return check_and_clean_expired_token(self.store, self.on_logout)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.check()
            except Exception:
                log.exception("token cleanup check failed")

    def start(self) -> "TokenCleanup":
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self.check()
        self._thread = threading.Thread(target=self._run, name="token-cleanup", daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
