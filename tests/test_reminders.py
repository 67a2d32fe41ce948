from datetime import date, datetime

import requests

from odontosync.db import db_session
from odontosync.models import Company
from odontosync.services import reminders, whatsapp


def _book(client, clinic, when, status="scheduled"):
    return client.post(
        "/api/appointments",
        json={
            "patient_id": clinic.patient_id,
            "dentist_id": clinic.dentist_id,
            "procedure_id": clinic.procedure_id,
            "scheduled_date": when,
            "status": status,
        },
        headers=clinic.headers,
    ).json()


def test_format_phone():
    assert whatsapp.format_phone("(11) 98888-7777") == "5511988887777"
    assert whatsapp.format_phone("5511988887777") == "5511988887777"
    assert whatsapp.format_phone("") == ""


def test_reminder_message():
    msg = reminders.reminder_message("Maria", datetime(2026, 3, 11, 14, 30))
    assert msg == "Hello Maria, this is a reminder that you have an appointment tomorrow at 14:30."


def test_due_reminders_only_scheduled_of_the_day(client, clinic):
    _book(client, clinic, "2026-03-11T09:00:00")
    _book(client, clinic, "2026-03-11T11:00:00", status="cancelled")
    _book(client, clinic, "2026-03-12T09:00:00")

    due = reminders.due_reminders(date(2026, 3, 11))
    assert len(due) == 1
    assert due[0].patient_name == "Maria Silva"
    assert due[0].phone == "11988887777"


def test_send_daily_reminders_counts_failures(client, clinic, make_user):
    other = make_user("drtwo", clinic.company_id, role="dentist")
    _book(client, clinic, "2026-03-11T09:00:00")
    client.post(
        "/api/appointments",
        json={
            "patient_id": clinic.patient_id,
            "dentist_id": other,
            "procedure_id": clinic.procedure_id,
            "scheduled_date": "2026-03-11T10:00:00",
        },
        headers=clinic.headers,
    )

    calls = []

    def flaky_sender(phone, message, instance):
        calls.append((phone, message, instance))
        if len(calls) == 2:
            raise RuntimeError("gateway down")
        return True

    run = reminders.send_daily_reminders(day=date(2026, 3, 11), sender=flaky_sender, delay_seconds=0)
    assert (run.found, run.sent, run.failed) == (2, 1, 1)
    assert len(calls) == 2
    assert calls[0][1].endswith("at 09:00.")
    assert calls[0][2] == whatsapp.WHATSAPP_INSTANCE


def test_send_text_not_configured(monkeypatch):
    monkeypatch.setattr(whatsapp, "EVOLUTION_API_URL", "")
    assert whatsapp.send_text("11988887777", "hi") is False


class _FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code
        self.ok = status_code < 400
        self.text = "error" if status_code >= 400 else "{}"


class _FakeSession:
    def __init__(self, status_code=200, error=None):
        self.status_code = status_code
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return _FakeResponse(self.status_code)


def test_send_text_posts_to_evolution(monkeypatch):
    monkeypatch.setattr(whatsapp, "EVOLUTION_API_URL", "https://evo.example.com/")
    monkeypatch.setattr(whatsapp, "EVOLUTION_API_KEY", "k3y")
    http = _FakeSession()

    assert whatsapp.send_text("(11) 98888-7777", "hello", instance="clinic", session=http) is True
    url, kwargs = http.calls[0]
    assert url == "https://evo.example.com/message/sendText/clinic"
    assert kwargs["headers"]["apikey"] == "k3y"
    assert kwargs["json"] == {"number": "5511988887777", "text": "hello"}


def test_send_text_failures_return_false(monkeypatch):
    monkeypatch.setattr(whatsapp, "EVOLUTION_API_URL", "https://evo.example.com")
    monkeypatch.setattr(whatsapp, "EVOLUTION_API_KEY", "k3y")

    assert whatsapp.send_text("11988887777", "x", session=_FakeSession(status_code=500)) is False
    down = _FakeSession(error=requests.ConnectionError("refused"))
    assert whatsapp.send_text("11988887777", "x", session=down) is False


def test_reminders_go_through_the_clinic_instance(client, clinic):
    with db_session() as s:
        s.get(Company, clinic.company_id).whatsapp_instance_id = "odontosync_1_clinic"
    _book(client, clinic, "2026-03-11T09:00:00")

    used = []
    run = reminders.send_daily_reminders(
        day=date(2026, 3, 11), sender=lambda phone, msg, instance: used.append(instance) or True, delay_seconds=0
    )
    assert run.sent == 1
    assert used == ["odontosync_1_clinic"]
