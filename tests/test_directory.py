from conftest import auth_headers, make_user

from clinic.models.user import UserRole


def test_admin_creates_and_lists_doctors(client, admin, patient):
    created = client.post(
        "/api/doctors",
        json={"name": "Karan Shah", "mobile": "9000000011", "specialization": "Orthodontist"},
        headers=auth_headers(admin),
    )
    listed = client.get("/api/doctors?specialization=Orthodontist", headers=auth_headers(patient))

    assert created.status_code == 201
    assert [d["name"] for d in listed.json()] == ["Karan Shah"]


def test_duplicate_doctor_mobile_conflicts(client, admin, doctor):
    response = client.post(
        "/api/doctors", json={"name": "Copy", "mobile": doctor.mobile}, headers=auth_headers(admin)
    )

    assert response.status_code == 409


def test_service_crud(client, admin, patient):
    payload = {"name": "Cleaning", "description": "Scale and polish", "duration": 30, "price": 800, "category": "Dental"}

    created = client.post("/api/services", json=payload, headers=auth_headers(admin))
    duplicate = client.post("/api/services", json=payload, headers=auth_headers(admin))
    by_patient = client.post("/api/services", json={**payload, "name": "Other"}, headers=auth_headers(patient))

    assert created.status_code == 201
    assert duplicate.status_code == 409
    assert by_patient.status_code == 403

    service_id = created.json()["service"]["id"]
    updated = client.put(f"/api/services/{service_id}", json={**payload, "price": 900}, headers=auth_headers(admin))
    assert updated.json()["service"]["price"] == 900
    assert client.delete(f"/api/services/{service_id}", headers=auth_headers(admin)).status_code == 200
    assert client.get(f"/api/services/{service_id}", headers=auth_headers(admin)).status_code == 404


def test_patient_sees_only_self(client, patient, other_patient, doctor):
    assert client.get(f"/api/patients/{patient.id}", headers=auth_headers(patient)).status_code == 200
    assert client.get(f"/api/patients/{other_patient.id}", headers=auth_headers(patient)).status_code == 403
    assert client.get("/api/patients", headers=auth_headers(patient)).status_code == 403
    assert len(client.get("/api/patients", headers=auth_headers(doctor)).json()) == 2


def test_admin_stats(client, db, admin, patient, doctor, service):
    make_user(db, UserRole.PATIENT, mobile="9000000003")

    stats = client.get("/api/admin/stats", headers=auth_headers(admin)).json()["stats"]

    assert stats["doctors"] == 1
    assert stats["patients"] == 2
    assert stats["services"] == 1
    assert stats["appointments"] == 0


def test_notifications_read_flow(client, patient, doctor, service, monday_slot):
    client.post(
        "/api/appointments",
        json={"doctor_id": doctor.id, "service_id": service.id, "date": "2024-06-03", "time": "9:00 AM"},
        headers=auth_headers(patient),
    )

    notifications = client.get("/api/notifications", headers=auth_headers(patient)).json()
    assert len(notifications) == 1
    client.put(f"/api/notifications/{notifications[0]['id']}/read", headers=auth_headers(patient))

    assert client.get("/api/notifications?unread_only=true", headers=auth_headers(patient)).json() == []
