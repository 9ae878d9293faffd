from datetime import timedelta

from ridepay.core.enums import BookingStatus, PaymentStatus
from ridepay.models.payment import Payment
from ridepay.utils.time import utcnow


def test_create_and_fetch_booking(client, records, as_user):
    ride = records.ride(seats_available=3)
    passenger = records.user()

    r = client.post(
        "/api/v1/bookings", json={"ride_id": ride.id, "seats": 2}, headers=as_user(passenger)
    )
    assert r.status_code == 201
    booking = r.json()
    assert booking["seats"] == 2
    assert booking["status"] == BookingStatus.PENDING.value

    # Passenger and driver can read it, nobody else can
    r = client.get(f"/api/v1/bookings/{booking['id']}", headers=as_user(passenger))
    assert r.status_code == 200
    r = client.get(f"/api/v1/bookings/{booking['id']}", headers={"X-User-Id": ride.driver_id})
    assert r.status_code == 200
    r = client.get(f"/api/v1/bookings/{booking['id']}", headers=as_user(records.user()))
    assert r.status_code == 403
    assert r.json()["success"] is False

    r = client.get("/api/v1/bookings", headers=as_user(passenger))
    assert [b["id"] for b in r.json()] == [booking["id"]]
    r = client.get("/api/v1/bookings/driver", headers={"X-User-Id": ride.driver_id})
    assert [b["id"] for b in r.json()] == [booking["id"]]


def test_missing_user_header_is_401(client):
    r = client.get("/api/v1/bookings")

    assert r.status_code == 401
    assert r.json() == {"success": False, "error": "Missing X-User-Id header"}


def test_malformed_body_uses_error_envelope(client, records, as_user):
    r = client.post("/api/v1/bookings", json={"seats": "many"}, headers=as_user(records.user()))

    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"


def test_business_errors_are_rendered_with_code(client, records, as_user):
    ride = records.ride(seats_available=1)

    r = client.post(
        "/api/v1/bookings", json={"ride_id": ride.id, "seats": 3}, headers=as_user(records.user())
    )

    assert r.status_code == 422
    assert r.json()["code"] == "INSUFFICIENT_SEATS"


def test_update_and_price_unpaid_booking(client, records, as_user):
    ride = records.ride(seats_available=4, price=2500.0)
    booking = records.booking(ride=ride, seats=1)
    headers = {"X-User-Id": booking.user_id}

    r = client.patch(f"/api/v1/bookings/{booking.id}", json={"seats": 2}, headers=headers)
    assert r.status_code == 200
    assert r.json()["seats"] == 2

    r = client.get(f"/api/v1/bookings/{booking.id}/additional-amount?seats=3", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"booking_id": booking.id, "seats": 3, "amount": 7500.0}


def test_paid_booking_seat_count_cannot_drop_through_update(client, records, provider):
    ride = records.ride(seats_available=4, price=1000.0)
    booking = records.paid_booking(ride=ride, seats=3)
    headers = {"X-User-Id": booking.user_id}

    r = client.patch(f"/api/v1/bookings/{booking.id}", json={"seats": 1}, headers=headers)

    assert r.status_code == 400
    assert r.json()["code"] == "PAID_BOOKING_SEAT_REDUCTION"
    assert provider.calls == []

    r = client.patch(f"/api/v1/bookings/{booking.id}", json={"seats": 4}, headers=headers)

    assert r.status_code == 200
    assert r.json()["seats"] == 4
    assert r.json()["payment_status"] == "partial"


def test_cancel_paid_booking_refunds(client, records, provider):
    booking = records.paid_booking(seats=2)

    r = client.delete(f"/api/v1/bookings/{booking.id}", headers={"X-User-Id": booking.user_id})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["refund_initiated"] is True
    assert body["refund_amount"] == 5000.0
    assert provider.operations() == ["refund"]


def test_reduce_seats_route(client, records, provider):
    booking = records.paid_booking(seats=3)

    r = client.post(
        f"/api/v1/bookings/{booking.id}/reduce-seats",
        json={"new_seats": 1},
        headers={"X-User-Id": booking.user_id},
    )

    assert r.status_code == 200
    assert r.json()["refund_amount"] == 5000.0
    assert r.json()["new_seats"] == 1


def test_code_issue_and_driver_verification(client, records, provider):
    booking = records.paid_booking(seats=1)
    passenger = {"X-User-Id": booking.user_id}
    driver = {"X-User-Id": booking.ride.driver_id}

    r = client.post(f"/api/v1/bookings/{booking.id}/verification-code", headers=passenger)
    assert r.status_code == 200
    code = r.json()["code"]
    assert len(code) == 6

    r = client.get(f"/api/v1/bookings/{booking.id}/verification-code", headers=driver)
    assert r.json()["code"] is None

    r = client.post(
        f"/api/v1/bookings/{booking.id}/verify-code", json={"code": "WRONG1"}, headers=driver
    )
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_CODE"

    r = client.post(
        f"/api/v1/bookings/{booking.id}/verify-code", json={"code": code}, headers=driver
    )
    assert r.status_code == 200
    body = r.json()
    assert body["payout_initiated"] is True
    assert body["driver_earnings"] == 2500.0
    assert provider.operations() == ["payout"]


def test_expired_code_is_rejected(client, db, records, provider):
    booking = records.paid_booking(seats=1)
    booking.verification_code = "ABC234"
    booking.code_expiry = utcnow() - timedelta(minutes=1)
    db.commit()

    r = client.post(
        f"/api/v1/bookings/{booking.id}/verify-code",
        json={"code": "ABC234"},
        headers={"X-User-Id": booking.ride.driver_id},
    )

    assert r.status_code == 400
    assert provider.calls == []
    payment = db.query(Payment).filter_by(booking_id=booking.id).one()
    assert payment.status == PaymentStatus.COMPLETED.value
