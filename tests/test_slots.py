from conftest import MONDAY, auth_headers, make_slot

from clinic.models.doctor_slot import DoctorSlot
from clinic.routers.availability import AvailabilityWindow, normalize_windows
from clinic.services.slot_generator import DEFAULT_WORKING_DAYS, generate_doctor_slots


def _add(client, admin, **fields):
    return client.post("/api/slots/add", json=fields, headers=auth_headers(admin))


def test_add_slot(client, admin, doctor):
    response = _add(client, admin, doctor_id=doctor.id, day="Monday", start_time="10:00", end_time="10:15")

    assert response.status_code == 201
    slot = response.json()["slot"]
    assert slot["start_time"] == "10:00"
    assert slot["end_time"] == "10:15"
    assert slot["date"] is None


def test_add_slot_requires_24_hour_times(client, admin, doctor):
    response = _add(client, admin, doctor_id=doctor.id, day="Monday", start_time="10:00 AM", end_time="10:15")

    assert response.status_code == 400
    assert response.json()["detail"] == "Times must be in 24-hour format (HH:MM)"


def test_add_slot_rejects_odd_duration(client, admin, doctor):
    response = _add(
        client, admin, doctor_id=doctor.id, day="Monday", start_time="10:00", end_time="10:20", duration=20
    )

    assert response.status_code == 400


def test_add_slot_recomputes_end_from_duration(client, admin, doctor):
    response = _add(
        client, admin, doctor_id=doctor.id, day="Monday", start_time="10:00", end_time="10:15", duration=30
    )

    assert response.status_code == 201
    assert response.json()["slot"]["end_time"] == "10:30"


def test_add_overlapping_slot_conflicts(client, db, admin, doctor):
    make_slot(db, doctor, start_time="10:00", end_time="10:30")

    response = _add(client, admin, doctor_id=doctor.id, day="Monday", start_time="10:15", end_time="10:30")

    assert response.status_code == 409
    assert response.json()["conflicting_slot"]["start_time"] == "10:00"


def test_dated_slot_takes_day_from_date(client, admin, doctor):
    response = _add(
        client, admin, doctor_id=doctor.id, date=MONDAY.isoformat(), start_time="18:00", end_time="18:15"
    )

    assert response.status_code == 201
    assert response.json()["slot"]["day"] == "Monday"


def test_patients_cannot_manage_slots(client, patient, doctor):
    response = _add(client, patient, doctor_id=doctor.id, day="Monday", start_time="10:00", end_time="10:15")

    assert response.status_code == 403


def test_patients_do_not_see_admin_only_slots(client, db, patient, admin, doctor):
    make_slot(db, doctor, start_time="06:30", end_time="06:45", is_admin_only=True)
    make_slot(db, doctor)

    seen_by_patient = client.get(f"/api/slots?doctor_id={doctor.id}", headers=auth_headers(patient)).json()
    seen_by_admin = client.get(f"/api/slots?doctor_id={doctor.id}", headers=auth_headers(admin)).json()

    assert len(seen_by_patient["slots"]) == 1
    assert len(seen_by_admin["slots"]) == 2


def test_generate_default_week(client, db, admin, doctor):
    first = client.post("/api/slots", json={"doctor_id": doctor.id}, headers=auth_headers(admin))
    second = client.post("/api/slots", json={"doctor_id": doctor.id}, headers=auth_headers(admin))

    assert first.status_code == 201
    assert second.status_code == 200
    days = {slot.day for slot in db.query(DoctorSlot).all()}
    assert days == set(DEFAULT_WORKING_DAYS)
    admin_only = db.query(DoctorSlot).filter(DoctorSlot.is_admin_only.is_(True)).count()
    # 06:30-09:00 in 15 minute steps on each working day
    assert admin_only == 10 * len(DEFAULT_WORKING_DAYS)


def test_generate_from_availability(client, db, admin, doctor):
    client.post(
        "/api/doctors/availability",
        json={
            "doctor_id": doctor.id,
            "day": "Thursday",
            "slots": [{"start_time": "10:00", "end_time": "11:00"}],
        },
        headers=auth_headers(admin),
    )

    slots = generate_doctor_slots(db, doctor.id, duration=30)

    assert [(s.day, s.start_time, s.end_time) for s in slots] == [
        ("Thursday", "10:00", "10:30"),
        ("Thursday", "10:30", "11:00"),
    ]


def test_normalize_windows_sorts_and_formats():
    windows = normalize_windows(
        [
            AvailabilityWindow(start_time="14:00", end_time="17:00"),
            AvailabilityWindow(start_time="9:00 AM", end_time="12:00 PM"),
        ]
    )

    assert windows == [
        {"start_time": "9:00 AM", "end_time": "12:00 PM"},
        {"start_time": "2:00 PM", "end_time": "5:00 PM"},
    ]


def test_doctor_slots_for_date_excludes_booked(client, db, patient, doctor, service, monday_slot):
    make_slot(db, doctor, start_time="09:15", end_time="09:30")
    client.post(
        "/api/appointments",
        json={"doctor_id": doctor.id, "service_id": service.id, "date": MONDAY.isoformat(), "time": "9:00 AM"},
        headers=auth_headers(patient),
    )

    response = client.get(f"/api/doctors/{doctor.id}/slots?date={MONDAY.isoformat()}", headers=auth_headers(patient))

    assert response.status_code == 200
    assert [s["start_time"] for s in response.json()["slots"]] == ["09:15"]
