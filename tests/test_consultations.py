from conftest import auth_headers


def _consultation(client, clinic, dentist_id=None, **extra):
    payload = {
        "patient_id": clinic.patient_id,
        "dentist_id": dentist_id or clinic.dentist_id,
        "date": "2026-03-10T09:00:00",
        "procedures": "Cleaning",
    }
    payload.update(extra)
    return client.post("/api/consultations", json=payload, headers=clinic.headers)


def test_create_defaults(client, clinic):
    r = _consultation(client, clinic)
    assert r.status_code == 201
    c = r.json()
    assert c["status"] == "completed"
    assert c["procedures"] == ["Cleaning"]
    assert c["patient"]["name"] == "Maria Silva"
    assert c["attendance_number"] == 1


def test_update_consultation(client, clinic):
    c = _consultation(client, clinic).json()
    r = client.put(
        f"/api/consultations/{c['id']}",
        json={
            "clinical_notes": "Mild gingivitis",
            "procedures": ["Cleaning", "Fluoride"],
            "status": "in_progress",
            "date": "2026-03-10T12:30:00Z",
        },
        headers=clinic.headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["clinical_notes"] == "Mild gingivitis"
    assert body["procedures"] == ["Cleaning", "Fluoride"]
    assert body["status"] == "in_progress"
    # stored in clinic-local time (America/Sao_Paulo, UTC-3)
    assert body["date"] == "2026-03-10T09:30:00"
    # untouched fields survive
    assert body["attendance_number"] == c["attendance_number"]
    assert body["dentist"]["id"] == clinic.dentist_id

    fetched = client.get(f"/api/consultations/{c['id']}", headers=clinic.headers).json()
    assert fetched["clinical_notes"] == "Mild gingivitis"


def test_update_with_foreign_patient_is_404(client, clinic):
    c = _consultation(client, clinic).json()
    r = client.put(f"/api/consultations/{c['id']}", json={"patient_id": 999}, headers=clinic.headers)
    assert r.status_code == 404
    assert r.json()["message"] == "Patient not found"


def test_own_scope_dentist_updates_only_own(client, clinic, make_user):
    own = make_user("drown", clinic.company_id, role="dentist", data_scope="own")
    mine = _consultation(client, clinic, dentist_id=own).json()
    theirs = _consultation(client, clinic).json()
    headers = auth_headers(own)

    assert [c["id"] for c in client.get("/api/consultations", headers=headers).json()] == [mine["id"]]
    r = client.put(f"/api/consultations/{theirs['id']}", json={"observations": "x"}, headers=headers)
    assert r.status_code == 404
    r = client.put(f"/api/consultations/{mine['id']}", json={"observations": "Return in 6 months"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["observations"] == "Return in 6 months"
