"""
WhatsApp messages through an Evolution API instance.

Each clinic owns one instance (``odontosync_<company id>_<name>``); the
global WHATSAPP_INSTANCE is only used for clinics that never set one up.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import requests

from ..config import EVOLUTION_API_KEY, EVOLUTION_API_URL, WHATSAPP_INSTANCE

log = logging.getLogger(__name__)

TIMEOUT = 15

# Evolution connection states -> our company status
_STATES = {"open": "connected", "connecting": "qrcode", "close": "disconnected"}


def format_phone(phone: str) -> str:
    """Digits only, with the Brazilian country code (55) in front."""
    digits = re.sub(r"\D", "", phone or "")
    if digits and not digits.startswith("55"):
        digits = "55" + digits
    return digits


def is_configured() -> bool:
    return bool(EVOLUTION_API_URL and EVOLUTION_API_KEY)


def instance_name(company_id: int, company_name: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9]", "_", company_name).lower()
    return f"odontosync_{company_id}_{clean}"


def _url(path: str) -> str:
    return f"{EVOLUTION_API_URL.rstrip('/')}{path}"


def _headers() -> dict[str, str]:
    return {"Content-Type": "application/json", "apikey": EVOLUTION_API_KEY}


def _json(r) -> dict[str, Any]:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _qr_from(data: dict[str, Any]) -> str | None:
    return data.get("base64") or (data.get("qrcode") or {}).get("base64")


# =========================
# Instances
# =========================
def create_instance(name: str, session: requests.Session | None = None) -> dict[str, Any] | None:
    """
    POST /instance/create with a QR code. When the instance already exists
    the current QR code is returned instead; None when neither works.
    """
    if not is_configured():
        log.warning("Evolution API not configured, instance %s not created", name)
        return None

    http = session or requests
    try:
        r = http.post(
            _url("/instance/create"),
            headers=_headers(),
            json={"instanceName": name, "qrcode": True, "integration": "WHATSAPP-BAILEYS"},
            timeout=TIMEOUT,
        )
    except requests.RequestException as e:
        log.error("creating WhatsApp instance %s failed: %s", name, e)
        return None

    if r.ok:
        data = _json(r)
        qr = _qr_from(data) or fetch_qr_code(name, session=session)
        log.info("WhatsApp instance %s created", name)
        return {"instance": name, "qr_code": qr}

    log.warning("instance %s not created (HTTP %s), looking for an existing one", name, r.status_code)
    qr = fetch_qr_code(name, session=session)
    if qr:
        return {"instance": name, "qr_code": qr}
    return None


def fetch_qr_code(name: str, session: requests.Session | None = None) -> str | None:
    """GET /instance/connect/<name>: base64 QR code of a pending connection."""
    if not is_configured():
        return None

    http = session or requests
    try:
        r = http.get(_url(f"/instance/connect/{name}"), headers=_headers(), timeout=TIMEOUT)
    except requests.RequestException as e:
        log.error("QR code for %s failed: %s", name, e)
        return None

    if not r.ok:
        log.error("QR code for %s failed: HTTP %s %s", name, r.status_code, r.text[:200])
        return None
    return _qr_from(_json(r))


def instance_status(name: str, session: requests.Session | None = None) -> str:
    """'connected', 'qrcode' or 'disconnected' (also on any error)."""
    if not is_configured():
        return "disconnected"

    http = session or requests
    try:
        r = http.get(_url(f"/instance/connectionState/{name}"), headers=_headers(), timeout=TIMEOUT)
    except requests.RequestException as e:
        log.error("status of %s failed: %s", name, e)
        return "disconnected"

    if not r.ok:
        return "disconnected"
    state = (_json(r).get("instance") or {}).get("state")
    return _STATES.get(state, "disconnected")


# =========================
# Messages
# =========================
def send_text(phone: str, message: str, instance: str = WHATSAPP_INSTANCE, session: requests.Session | None = None) -> bool:
    """
    POST /message/sendText/<instance>. Returns False (and logs) on any failure,
    the caller decides whether to go on.
    """
    if not is_configured():
        log.warning("Evolution API not configured, message to %s not sent", phone)
        return False

    number = format_phone(phone)
    if not number:
        return False

    http = session or requests
    try:
        r = http.post(
            _url(f"/message/sendText/{instance}"),
            headers=_headers(),
            json={"number": number, "text": message},
            timeout=TIMEOUT,
        )
    except requests.RequestException as e:
        log.error("WhatsApp send to %s failed: %s", number, e)
        return False

    if not r.ok:
        log.error("WhatsApp send to %s failed: HTTP %s %s", number, r.status_code, r.text[:200])
        return False
    return True
