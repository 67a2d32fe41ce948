from __future__ import annotations

import logging
from typing import Any

import requests

from ..db import db_session, utcnow
from ..errors import ExternalServiceError, NotFoundError, ValidationError
from ..models import Company
from . import whatsapp

log = logging.getLogger(__name__)


def _company(s, company_id: int) -> Company:
    c = s.get(Company, company_id)
    if not c:
        raise NotFoundError("Company not found")
    return c


def _instance_of(c: Company) -> str:
    if not c.whatsapp_instance_id:
        raise ValidationError("WhatsApp is not set up for this company")
    return c.whatsapp_instance_id


def _status_dict(c: Company) -> dict[str, Any]:
    return {
        "status": c.whatsapp_status,
        "instance_id": c.whatsapp_instance_id,
        "qr_code": c.whatsapp_qr_code,
        "connected_at": c.whatsapp_connected_at,
    }


def whatsapp_status(company_id: int, session: requests.Session | None = None) -> dict[str, Any]:
    """
    Stored status, refreshed from Evolution when the clinic has an instance.
    A connected instance drops its QR code and records the connection time.
    """
    with db_session() as s:
        c = _company(s, company_id)
        if c.whatsapp_instance_id:
            state = whatsapp.instance_status(c.whatsapp_instance_id, session=session)
            if state == "connected":
                if c.whatsapp_status != "connected":
                    c.whatsapp_connected_at = utcnow()
                c.whatsapp_qr_code = None
            c.whatsapp_status = state
        return _status_dict(c)


def setup_whatsapp(company_id: int, session: requests.Session | None = None) -> dict[str, Any]:
    with db_session() as s:
        c = _company(s, company_id)
        name = c.whatsapp_instance_id or whatsapp.instance_name(c.id, c.name)
        created = whatsapp.create_instance(name, session=session)
        if created is None:
            raise ExternalServiceError("Could not create the WhatsApp instance")

        c.whatsapp_instance_id = name
        c.whatsapp_qr_code = created.get("qr_code")
        c.whatsapp_status = "qrcode"
        c.whatsapp_connected_at = None
        log.info("WhatsApp instance %s set up for company %s", name, c.id)
        return _status_dict(c)


def refresh_qr_code(company_id: int, session: requests.Session | None = None) -> dict[str, Any]:
    with db_session() as s:
        c = _company(s, company_id)
        qr = whatsapp.fetch_qr_code(_instance_of(c), session=session)
        if not qr:
            raise ExternalServiceError("Could not fetch a new QR code")
        c.whatsapp_qr_code = qr
        c.whatsapp_status = "qrcode"
        return _status_dict(c)


def send_test_message(company_id: int, phone: str, message: str, session: requests.Session | None = None) -> None:
    with db_session() as s:
        instance = _instance_of(_company(s, company_id))
    if not whatsapp.send_text(phone, message, instance=instance, session=session):
        raise ExternalServiceError("Message not sent")
