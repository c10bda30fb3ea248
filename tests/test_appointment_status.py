import time
from unittest.mock import patch

import pytest
from conftest import MONDAY, auth_headers, booking_payload, make_user

from clinic.models.doctor_slot import DoctorSlot
from clinic.models.user import UserRole
from clinic.routers.appointments import _list_appointments


@pytest.fixture()
def appointment(client, patient, doctor, service, monday_slot):
    response = client.post(
        "/api/appointments", json=booking_payload(doctor, service), headers=auth_headers(patient)
    )
    return response.json()["appointment"]


def _set_status(client, appointment, user, new_status):
    return client.patch(
        f"/api/appointments/{appointment['id']}", json={"status": new_status}, headers=auth_headers(user)
    )


def test_patient_may_only_cancel(client, patient, appointment):
    assert _set_status(client, appointment, patient, "confirmed").status_code == 403

    response = _set_status(client, appointment, patient, "cancelled")
    assert response.status_code == 200
    assert response.json()["appointment"]["status"] == "cancelled"


def test_patient_cannot_touch_someone_elses_appointment(client, other_patient, appointment):
    assert _set_status(client, appointment, other_patient, "cancelled").status_code == 403
    assert client.get(
        f"/api/appointments/{appointment['id']}", headers=auth_headers(other_patient)
    ).status_code == 403


def test_doctor_confirms_then_completes(client, doctor, appointment):
    assert _set_status(client, appointment, doctor, "confirmed").json()["appointment"]["status"] == "confirmed"
    assert _set_status(client, appointment, doctor, "completed").json()["appointment"]["status"] == "completed"


def test_other_doctor_is_forbidden(client, db, appointment):
    stranger = make_user(db, UserRole.DOCTOR, name="Karan Shah", mobile="9000000011")

    assert _set_status(client, appointment, stranger, "confirmed").status_code == 403


def test_terminal_statuses_cannot_be_left(client, admin, appointment):
    _set_status(client, appointment, admin, "cancelled")

    response = _set_status(client, appointment, admin, "confirmed")
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot change appointment status from cancelled to confirmed"


def test_pending_cannot_jump_to_completed(client, admin, appointment):
    assert _set_status(client, appointment, admin, "completed").status_code == 400


def test_cancel_reopens_the_consumed_slot(client, db, patient, appointment):
    _set_status(client, appointment, patient, "cancelled")

    override = db.query(DoctorSlot).filter(DoctorSlot.date == MONDAY).one()
    assert override.is_available is True
    assert override.booked_by is None


def test_listing_is_scoped_by_role(client, db, patient, other_patient, doctor, admin, appointment):
    mine = client.get("/api/appointments", headers=auth_headers(patient)).json()["appointments"]
    theirs = client.get("/api/appointments", headers=auth_headers(other_patient)).json()["appointments"]
    everyone = client.get("/api/appointments", headers=auth_headers(admin)).json()["appointments"]
    doctors = client.get("/api/appointments", headers=auth_headers(doctor)).json()["appointments"]

    assert [a["id"] for a in mine] == [appointment["id"]]
    assert theirs == []
    assert len(everyone) == 1
    assert everyone[0]["patient"]["name"] == "Asha Patel"
    assert len(doctors) == 1


def test_only_admin_deletes(client, db, patient, admin, appointment):
    url = f"/api/appointments/{appointment['id']}"

    assert client.delete(url, headers=auth_headers(patient)).status_code == 403
    assert client.delete(url, headers=auth_headers(admin)).status_code == 200
    assert client.get(url, headers=auth_headers(admin)).status_code == 404


def test_notes_can_be_cleared(client, admin, appointment):
    url = f"/api/appointments/{appointment['id']}"
    headers = auth_headers(admin)

    client.patch(url, json={"status": "pending", "notes": "Bring old reports"}, headers=headers)
    kept = client.patch(url, json={"status": "pending"}, headers=headers)
    cleared = client.patch(url, json={"status": "pending", "notes": ""}, headers=headers)

    assert kept.json()["appointment"]["notes"] == "Bring old reports"
    assert cleared.status_code == 200
    assert cleared.json()["appointment"]["notes"] == ""


def test_slow_listing_times_out(client, patient):
    def slow_listing(*args):
        time.sleep(0.5)
        return []

    with patch("clinic.routers.appointments._list_appointments", slow_listing), \
            patch("clinic.routers.appointments.APPOINTMENT_LIST_TIMEOUT_SECONDS", 0.05):
        response = client.get("/api/appointments", headers=auth_headers(patient))

    assert response.status_code == 504
    assert response.json()["detail"] == "Request timed out"


def test_listing_worker_needs_only_the_user_identity(patient, doctor, appointment):
    mine = _list_appointments(patient.id, UserRole.PATIENT, None, None, None)
    doctors = _list_appointments(doctor.id, UserRole.DOCTOR, None, None, MONDAY)

    assert [a.id for a in mine] == [appointment["id"]]
    assert [a.id for a in doctors] == [appointment["id"]]
