from datetime import datetime

from odontosync.services.scheduling import Slot, conflict_message, find_conflict

from conftest import auth_headers


def _slot(h1, m1, h2, m2, name="Cleaning"):
    return Slot(datetime(2026, 3, 10, h1, m1), datetime(2026, 3, 10, h2, m2), name)


def _book(client, clinic, when, **extra):
    payload = {
        "patient_id": clinic.patient_id,
        "dentist_id": clinic.dentist_id,
        "procedure_id": clinic.procedure_id,
        "scheduled_date": when,
    }
    payload.update(extra)
    return client.post("/api/appointments", json=payload, headers=clinic.headers)


# =========================
# Overlap rule
# =========================
def test_touching_slots_do_not_conflict():
    busy = [_slot(9, 0, 9, 30)]
    assert find_conflict(datetime(2026, 3, 10, 9, 30), datetime(2026, 3, 10, 10, 0), busy) is None
    assert find_conflict(datetime(2026, 3, 10, 8, 30), datetime(2026, 3, 10, 9, 0), busy) is None


def test_overlapping_slot_is_returned():
    busy = [_slot(8, 0, 8, 30), _slot(9, 0, 9, 30, "Extraction")]
    hit = find_conflict(datetime(2026, 3, 10, 9, 15), datetime(2026, 3, 10, 9, 45), busy)
    assert hit.procedure_name == "Extraction"


def test_conflict_message_format():
    assert conflict_message(_slot(9, 0, 9, 30)) == (
        "Time conflict: an appointment already exists from 09:00 to 09:30 (Cleaning)."
    )


# =========================
# API
# =========================
def test_book_and_list(client, clinic):
    r = _book(client, clinic, "2026-03-10T09:00:00")
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "scheduled"
    assert body["end_date"] == "2026-03-10T09:30:00"
    assert body["patient"]["name"] == "Maria Silva"

    listed = client.get("/api/appointments", params={"date": "2026-03-10"}, headers=clinic.headers).json()
    assert [a["id"] for a in listed] == [body["id"]]
    assert client.get("/api/appointments", params={"date": "2026-03-11"}, headers=clinic.headers).json() == []


def test_overlap_is_409_with_message(client, clinic):
    assert _book(client, clinic, "2026-03-10T09:00:00").status_code == 201

    r = _book(client, clinic, "2026-03-10T09:15:00")
    assert r.status_code == 409
    assert r.json()["message"] == "Time conflict: an appointment already exists from 09:00 to 09:30 (Cleaning)."

    # back to back is fine
    assert _book(client, clinic, "2026-03-10T09:30:00").status_code == 201


def test_other_dentist_same_time_is_fine(client, clinic, make_user):
    other = make_user("drother", clinic.company_id, role="dentist")
    assert _book(client, clinic, "2026-03-10T09:00:00").status_code == 201
    assert _book(client, clinic, "2026-03-10T09:00:00", dentist_id=other).status_code == 201


def test_cancelled_appointments_free_the_slot(client, clinic):
    first = _book(client, clinic, "2026-03-10T09:00:00").json()
    r = client.put(f"/api/appointments/{first['id']}", json={"status": "cancelled"}, headers=clinic.headers)
    assert r.status_code == 200

    assert _book(client, clinic, "2026-03-10T09:00:00").status_code == 201
    listed = client.get("/api/appointments", params={"date": "2026-03-10"}, headers=clinic.headers).json()
    assert all(a["status"] != "cancelled" for a in listed)


def test_reactivating_into_a_taken_slot_is_409(client, clinic):
    first = _book(client, clinic, "2026-03-10T09:00:00", status="cancelled").json()
    assert _book(client, clinic, "2026-03-10T09:00:00").status_code == 201

    r = client.put(f"/api/appointments/{first['id']}", json={"status": "scheduled"}, headers=clinic.headers)
    assert r.status_code == 409
    listed = client.get("/api/appointments", params={"date": "2026-03-10"}, headers=clinic.headers).json()
    assert len(listed) == 1


def test_reactivating_into_a_free_slot(client, clinic):
    first = _book(client, clinic, "2026-03-10T09:00:00", status="cancelled").json()
    r = client.put(f"/api/appointments/{first['id']}", json={"status": "scheduled"}, headers=clinic.headers)
    assert r.status_code == 200
    assert r.json()["status"] == "scheduled"


def test_update_does_not_conflict_with_itself(client, clinic):
    a = _book(client, clinic, "2026-03-10T09:00:00").json()
    r = client.put(
        f"/api/appointments/{a['id']}", json={"scheduled_date": "2026-03-10T09:10:00"}, headers=clinic.headers
    )
    assert r.status_code == 200
    assert r.json()["scheduled_date"] == "2026-03-10T09:10:00"


def test_update_into_busy_slot_is_409(client, clinic):
    _book(client, clinic, "2026-03-10T09:00:00")
    b = _book(client, clinic, "2026-03-10T10:00:00").json()
    r = client.put(
        f"/api/appointments/{b['id']}", json={"scheduled_date": "2026-03-10T09:20:00"}, headers=clinic.headers
    )
    assert r.status_code == 409


def test_check_availability(client, clinic):
    _book(client, clinic, "2026-03-10T09:00:00")
    payload = {"dentist_id": clinic.dentist_id, "procedure_id": clinic.procedure_id}

    busy = client.post(
        "/api/appointments/check-availability",
        json=dict(payload, scheduled_date="2026-03-10T08:45:00"),
        headers=clinic.headers,
    ).json()
    assert busy["available"] is False
    assert "09:00 to 09:30" in busy["conflict_message"]

    free = client.post(
        "/api/appointments/check-availability",
        json=dict(payload, scheduled_date="2026-03-10T08:30:00"),
        headers=clinic.headers,
    ).json()
    assert free == {"available": True, "conflict_message": None}


def test_tz_aware_input_is_stored_as_clinic_time(client, clinic):
    # 12:00 UTC is 09:00 in Sao Paulo
    r = _book(client, clinic, "2026-03-10T12:00:00Z")
    assert r.json()["scheduled_date"] == "2026-03-10T09:00:00"


def test_own_scope_dentist_sees_only_own(client, clinic, make_user):
    own = make_user("drown", clinic.company_id, role="dentist", data_scope="own")
    _book(client, clinic, "2026-03-10T09:00:00")
    mine = _book(client, clinic, "2026-03-10T11:00:00", dentist_id=own).json()

    listed = client.get("/api/appointments", headers=auth_headers(own)).json()
    assert [a["id"] for a in listed] == [mine["id"]]


def test_cleanup_cancelled(client, clinic):
    a = _book(client, clinic, "2026-03-10T09:00:00").json()
    _book(client, clinic, "2026-03-10T10:00:00")
    client.put(f"/api/appointments/{a['id']}", json={"status": "cancelled"}, headers=clinic.headers)

    r = client.delete("/api/appointments/cancelled", headers=clinic.headers)
    assert r.status_code == 200
    assert r.json()["count"] == 1
    assert client.get(f"/api/appointments/{a['id']}", headers=clinic.headers).status_code == 404


def test_without_consultation(client, clinic):
    a = _book(client, clinic, "2026-03-10T09:00:00").json()
    b = _book(client, clinic, "2026-03-10T10:00:00").json()
    client.post(
        "/api/consultations",
        json={
            "patient_id": clinic.patient_id,
            "dentist_id": clinic.dentist_id,
            "appointment_id": a["id"],
            "date": "2026-03-10T09:00:00",
        },
        headers=clinic.headers,
    )
    r = client.get("/api/appointments-without-consultation", headers=clinic.headers)
    assert [x["id"] for x in r.json()] == [b["id"]]
