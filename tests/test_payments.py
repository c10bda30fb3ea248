from unittest.mock import MagicMock, patch

from conftest import auth_headers, booking_payload, make_slot

from clinic.models.appointment import Appointment, AppointmentStatus, PaymentMethod, PaymentStatus
from clinic.models.notification import Notification
from clinic.services.payments import compute_signature, derive_payment_status, verify_payment_signature


def _razorpay_order(amount_paise):
    razorpay_client = MagicMock()
    razorpay_client.order.fetch.return_value = {"id": "order_1", "amount": amount_paise}
    return patch("clinic.services.payments.get_razorpay_client", return_value=razorpay_client)


def _book(client, patient, doctor, service, **extra):
    return client.post(
        "/api/appointments", json=booking_payload(doctor, service, **extra), headers=auth_headers(patient)
    ).json()["appointment"]


def _verify(client, user, appointment_id, payment_id="pay_1", order_id="order_1"):
    return client.post(
        "/api/payments/razorpay/verify",
        json={
            "razorpay_payment_id": payment_id,
            "razorpay_order_id": order_id,
            "razorpay_signature": compute_signature(order_id, payment_id, "test_secret"),
            "appointment_id": appointment_id,
        },
        headers=auth_headers(user),
    )


def test_signature_verification():
    signature = compute_signature("order_1", "pay_1", "test_secret")

    assert verify_payment_signature("order_1", "pay_1", signature)
    assert not verify_payment_signature("order_1", "pay_2", signature)
    assert not verify_payment_signature("order_1", "pay_1", "")


def test_derive_payment_status():
    assert derive_payment_status(PaymentMethod.ONLINE, "pay_1") == PaymentStatus.COMPLETED
    assert derive_payment_status(PaymentMethod.ONLINE, None) == PaymentStatus.PENDING
    assert derive_payment_status(PaymentMethod.CASH, "pay_1") == PaymentStatus.PENDING
    assert derive_payment_status(PaymentMethod.INSURANCE, None) == PaymentStatus.PENDING


def test_create_order_in_paise(client, patient):
    razorpay_client = MagicMock()
    razorpay_client.order.create.return_value = {"id": "order_9", "amount": 50000, "currency": "INR"}

    with patch("clinic.services.payments.get_razorpay_client", return_value=razorpay_client):
        response = client.post(
            "/api/payments/razorpay/create-order", json={"amount": 500}, headers=auth_headers(patient)
        )

    assert response.status_code == 200
    assert response.json()["order_id"] == "order_9"
    options = razorpay_client.order.create.call_args.kwargs["data"]
    assert options["amount"] == 50000
    assert options["notes"]["user_id"] == str(patient.id)


def test_create_order_requires_amount(client, patient):
    response = client.post("/api/payments/razorpay/create-order", json={}, headers=auth_headers(patient))

    assert response.status_code == 400


def test_gateway_failure_is_bad_gateway(client, patient):
    razorpay_client = MagicMock()
    razorpay_client.order.create.side_effect = RuntimeError("gateway unreachable")

    with patch("clinic.services.payments.get_razorpay_client", return_value=razorpay_client):
        response = client.post(
            "/api/payments/razorpay/create-order", json={"amount": 500}, headers=auth_headers(patient)
        )

    assert response.status_code == 502


def test_verify_marks_appointment_paid(client, db, patient, doctor, service, monday_slot):
    booked = client.post(
        "/api/appointments", json=booking_payload(doctor, service), headers=auth_headers(patient)
    ).json()["appointment"]

    with _razorpay_order(50000):
        response = _verify(client, patient, booked["id"])

    assert response.status_code == 200
    appointment = db.query(Appointment).filter(Appointment.id == booked["id"]).one()
    assert appointment.payment_status == PaymentStatus.COMPLETED
    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.payment_id == "pay_1"
    assert appointment.payment_date is not None
    assert db.query(Notification).filter(Notification.type == "payment").count() == 1


def test_verify_rejects_bad_signature(client, patient):
    response = client.post(
        "/api/payments/razorpay/verify",
        json={"razorpay_payment_id": "pay_1", "razorpay_order_id": "order_1", "razorpay_signature": "bad"},
        headers=auth_headers(patient),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payment signature"


def test_verify_refuses_cancelled_appointment(client, db, patient, doctor, service, monday_slot):
    booked = _book(client, patient, doctor, service)
    client.patch(f"/api/appointments/{booked['id']}", json={"status": "cancelled"}, headers=auth_headers(patient))

    with _razorpay_order(50000):
        response = _verify(client, patient, booked["id"])

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot pay for a cancelled appointment"
    appointment = db.query(Appointment).filter(Appointment.id == booked["id"]).one()
    assert appointment.payment_status == PaymentStatus.PENDING
    assert appointment.status == AppointmentStatus.CANCELLED


def test_verify_refuses_a_payment_used_elsewhere(client, db, patient, doctor, service):
    make_slot(db, doctor, start_time="09:00", end_time="09:15")
    make_slot(db, doctor, start_time="09:15", end_time="09:30")
    first = _book(client, patient, doctor, service)
    second = _book(client, patient, doctor, service, time="9:15 AM")

    with _razorpay_order(50000):
        paid = _verify(client, patient, first["id"])
        replayed = _verify(client, patient, second["id"])

    assert paid.status_code == 200
    assert replayed.status_code == 400
    assert replayed.json()["detail"] == "This payment has already been used"
    unpaid = db.query(Appointment).filter(Appointment.id == second["id"]).one()
    assert unpaid.payment_status == PaymentStatus.PENDING
    assert unpaid.payment_id is None


def test_verify_refuses_an_already_paid_appointment(client, patient, doctor, service, monday_slot):
    booked = _book(client, patient, doctor, service)

    with _razorpay_order(50000):
        _verify(client, patient, booked["id"])
        again = _verify(client, patient, booked["id"], payment_id="pay_2")

    assert again.status_code == 400


def test_verify_checks_the_order_amount(client, db, patient, doctor, service, monday_slot):
    booked = _book(client, patient, doctor, service)

    with _razorpay_order(100):
        response = _verify(client, patient, booked["id"])

    assert response.status_code == 400
    assert response.json()["detail"] == "Payment amount does not match the appointment amount"
    assert db.query(Appointment).filter(Appointment.id == booked["id"]).one().payment_id is None


def test_unreachable_gateway_during_verify_is_bad_gateway(client, patient, doctor, service, monday_slot):
    booked = _book(client, patient, doctor, service)
    razorpay_client = MagicMock()
    razorpay_client.order.fetch.side_effect = RuntimeError("gateway unreachable")

    with patch("clinic.services.payments.get_razorpay_client", return_value=razorpay_client):
        response = _verify(client, patient, booked["id"])

    assert response.status_code == 502
