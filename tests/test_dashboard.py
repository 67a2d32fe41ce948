from datetime import datetime, time

from odontosync.db import clinic_today

from conftest import auth_headers


def _book(client, clinic, when, dentist_id=None, status="scheduled"):
    return client.post(
        "/api/appointments",
        json={
            "patient_id": clinic.patient_id,
            "dentist_id": dentist_id or clinic.dentist_id,
            "procedure_id": clinic.procedure_id,
            "scheduled_date": when.isoformat(),
            "status": status,
        },
        headers=clinic.headers,
    ).json()


def test_dashboard_metrics(client, clinic):
    today = clinic_today()
    _book(client, clinic, datetime.combine(today, time(10, 0)))
    _book(client, clinic, datetime.combine(today, time(11, 0)), status="cancelled")
    client.post(
        "/api/receivables",
        json={"patient_id": clinic.patient_id, "amount": "120.00", "due_date": today.isoformat(), "status": "paid"},
        headers=clinic.headers,
    )
    client.post(
        "/api/receivables",
        json={"patient_id": clinic.patient_id, "amount": "40.00", "due_date": today.isoformat()},
        headers=clinic.headers,
    )

    m = client.get("/api/dashboard/metrics", headers=clinic.headers).json()
    assert m["today_appointments"] == 1
    assert m["active_patients"] == 1
    assert m["monthly_revenue"] == 120
    assert m["pending_payments"] == 40


def test_overview_report(client, clinic):
    _book(client, clinic, datetime(2026, 3, 10, 9, 0))
    _book(client, clinic, datetime(2026, 3, 11, 9, 0), status="completed")
    _book(client, clinic, datetime(2026, 4, 1, 9, 0))
    client.post(
        "/api/payables",
        json={"amount": "70.00", "due_date": "2026-03-15", "category": "rent", "description": "Rent", "status": "paid"},
        headers=clinic.headers,
    )

    r = client.get(
        "/api/reports/overview", params={"start_date": "2026-03-01", "end_date": "2026-03-31"}, headers=clinic.headers
    )
    assert r.status_code == 200
    body = r.json()
    assert body["period"] == {"start_date": "2026-03-01", "end_date": "2026-03-31"}
    stats = body["statistics"]
    assert stats["total_appointments"] == 2
    assert stats["completed_appointments"] == 1
    assert stats["total_expenses"] == 70
    assert body["appointments_by_status"]["scheduled"] == 1


def test_own_scope_report_hides_expenses(client, clinic, make_user):
    own = make_user("drown", clinic.company_id, role="dentist", data_scope="own")
    _book(client, clinic, datetime(2026, 3, 10, 9, 0))
    _book(client, clinic, datetime(2026, 3, 10, 9, 0), dentist_id=own)
    client.post(
        "/api/payables",
        json={"amount": "70.00", "due_date": "2026-03-15", "category": "rent", "description": "Rent", "status": "paid"},
        headers=clinic.headers,
    )

    stats = client.get("/api/reports/overview", headers=auth_headers(own)).json()["statistics"]
    assert stats["total_appointments"] == 1
    assert stats["total_expenses"] == 0


def test_own_scope_dashboard_counts_only_own_money(client, clinic, make_user):
    own = make_user("drown", clinic.company_id, role="dentist", data_scope="own")
    today = clinic_today()
    mine = _book(client, clinic, datetime.combine(today, time(10, 0)), dentist_id=own)
    _book(client, clinic, datetime.combine(today, time(10, 0)))

    def receivable(amount, status="pending", appointment_id=None):
        client.post(
            "/api/receivables",
            json={
                "patient_id": clinic.patient_id,
                "appointment_id": appointment_id,
                "amount": amount,
                "due_date": today.isoformat(),
                "status": status,
            },
            headers=clinic.headers,
        )

    receivable("120.00", status="paid", appointment_id=mine["id"])
    receivable("500.00", status="paid")
    receivable("70.00")

    m = client.get("/api/dashboard/metrics", headers=auth_headers(own)).json()
    assert m["today_appointments"] == 1
    assert m["monthly_revenue"] == 120
    assert m["pending_payments"] == 0

    # the clinic admin still sees everything
    m = client.get("/api/dashboard/metrics", headers=clinic.headers).json()
    assert m["monthly_revenue"] == 620
    assert m["pending_payments"] == 70
