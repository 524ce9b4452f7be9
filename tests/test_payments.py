from datetime import date, datetime, timedelta

from garagehub import models
from garagehub.services import payments as payment_service

MONDAY = date(2024, 6, 10)

GARAGE_DATA = {
    "name": "Kazanchis Motors",
    "description": "Brakes and tyres",
    "address": {"street": "Kazanchis", "city": "Addis Ababa"},
    "contact_info": {"phone": "+251911111111"},
}


def _booking(client, marketplace, booking_payload, auth_header):
    response = client.post(
        "/api/v1/bookings/",
        json=booking_payload(marketplace["garage"], marketplace["service"], MONDAY),
        headers=auth_header(marketplace["customer"]),
    )
    assert response.status_code == 201
    return response.json()["id"]


def _pay_booking(client, marketplace, booking_id, auth_header, amount=500.0):
    return client.post(
        "/api/v1/payments/booking",
        json={"booking_id": booking_id, "amount": amount},
        headers=auth_header(marketplace["customer"]),
    )


# --- INITIALIZATION ---

def test_booking_payment_init_calls_provider(client, marketplace, booking_payload, auth_header, provider):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    response = _pay_booking(client, marketplace, booking_id, auth_header)
    assert response.status_code == 200
    body = response.json()
    assert body["booking_id"] == booking_id
    assert body["tx_ref"].startswith(f"booking-{booking_id}-")
    assert body["checkout_url"] == f"https://checkout.test/{body['tx_ref']}"

    sent = provider.requests[0]
    assert sent.headers["Authorization"] == "Bearer provider-test-key"
    assert sent.url.path.endswith("/transaction/initialize")


def test_booking_payment_amount_must_match_price(client, marketplace, booking_payload, auth_header):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    response = _pay_booking(client, marketplace, booking_id, auth_header, amount=450.0)
    assert response.status_code == 400


def test_provider_failure_is_502(client, marketplace, booking_payload, auth_header, provider, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    provider.fail = True
    response = _pay_booking(client, marketplace, booking_id, auth_header)
    assert response.status_code == 502
    assert db.query(models.Payment).count() == 0


def test_garage_payment_amount_range(client, marketplace, auth_header):
    response = client.post(
        "/api/v1/payments/garage-creation", json={"amount": 50}, headers=auth_header(marketplace["owner"])
    )
    assert response.status_code == 400


# --- WEBHOOK ---

def test_webhook_settles_once(client, marketplace, booking_payload, auth_header, signed_webhook, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    tx_ref = _pay_booking(client, marketplace, booking_id, auth_header).json()["tx_ref"]

    first = signed_webhook({"tx_ref": tx_ref, "status": "success"})
    assert first.status_code == 200
    assert first.json()["applied"] is True
    assert first.json()["message"] == "Webhook processed"

    replay = signed_webhook({"tx_ref": tx_ref, "status": "success"})
    assert replay.status_code == 200
    assert replay.json()["applied"] is False
    assert replay.json()["message"] == "Already processed"

    booking = db.get(models.Booking, booking_id)
    db.refresh(booking)
    assert booking.is_paid is True
    assert booking.status == "approved"
    assert [h.status for h in booking.status_history] == ["approved"]
    assert booking.status_history[0].changed_by_id is None
    assert booking.status_history[0].reason == "Payment received, booking approved"

    payment = payment_service.get_payment_by_reference(db, tx_ref)
    assert payment.status == "completed"
    assert booking.payment_id == payment.id


def test_webhook_rejects_bad_signature(client, marketplace, booking_payload, auth_header, signed_webhook, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    tx_ref = _pay_booking(client, marketplace, booking_id, auth_header).json()["tx_ref"]

    response = signed_webhook({"tx_ref": tx_ref, "status": "success"}, secret="not-the-secret")
    assert response.status_code == 401
    assert payment_service.get_payment_by_reference(db, tx_ref).status == "pending"

    unsigned = client.post("/api/v1/payments/webhook", json={"tx_ref": tx_ref, "status": "success"})
    assert unsigned.status_code == 401


def test_webhook_unknown_reference(signed_webhook):
    response = signed_webhook({"tx_ref": "nope", "status": "success"})
    assert response.status_code == 200
    assert response.json()["success"] is False


def test_webhook_for_deleted_payment_is_acknowledged(client, marketplace, booking_payload, auth_header,
                                                     signed_webhook, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    init = _pay_booking(client, marketplace, booking_id, auth_header).json()
    payment = db.get(models.Payment, init["payment_id"])
    payment.is_deleted = True
    db.commit()

    response = signed_webhook({"tx_ref": init["tx_ref"], "status": "success"})
    assert response.status_code == 200
    assert response.json()["success"] is False

    db.refresh(payment)
    assert payment.status == "pending"


def test_webhook_missing_reference(signed_webhook):
    assert signed_webhook({"status": "success"}).status_code == 400


def test_webhook_failure_then_retry(client, marketplace, booking_payload, auth_header, signed_webhook, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    init = _pay_booking(client, marketplace, booking_id, auth_header).json()

    signed_webhook({"tx_ref": init["tx_ref"], "status": "failed"})
    payment = payment_service.get_payment(db, init["payment_id"])
    db.refresh(payment)
    assert payment.status == "failed"

    # A late failure notice for a failed payment changes nothing
    assert payment_service.mark_payment_failed(db, payment.id) is False

    retried = client.post(f"/api/v1/payments/{payment.id}/retry", headers=auth_header(marketplace["customer"]))
    assert retried.status_code == 200
    assert retried.json()["tx_ref"].startswith(f"{init['tx_ref']}-retry-")
    db.refresh(payment)
    assert payment.status == "pending"


def test_settlement_of_cancelled_booking_keeps_status(client, marketplace, booking_payload, auth_header, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    payment_id = _pay_booking(client, marketplace, booking_id, auth_header).json()["payment_id"]
    client.patch(f"/api/v1/bookings/{booking_id}/cancel", headers=auth_header(marketplace["customer"]))

    assert payment_service.settle_payment(db, payment_id) is True
    booking = db.get(models.Booking, booking_id)
    db.refresh(booking)
    assert booking.status == "cancelled"
    assert booking.is_paid is True


# --- VERIFY BY REFERENCE ---

def test_verify_by_reference_settles(client, marketplace, booking_payload, auth_header, provider, db):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    tx_ref = _pay_booking(client, marketplace, booking_id, auth_header).json()["tx_ref"]

    pending = client.get(f"/api/v1/payments/verify/{tx_ref}", headers=auth_header(marketplace["customer"]))
    assert pending.json()["status"] == "pending"

    provider.verify_status[tx_ref] = "success"
    settled = client.get(f"/api/v1/payments/verify/{tx_ref}", headers=auth_header(marketplace["customer"]))
    assert settled.status_code == 200
    assert settled.json()["status"] == "completed"

    # Polling again after the webhook-equivalent settlement is harmless
    again = client.get(f"/api/v1/payments/verify/{tx_ref}", headers=auth_header(marketplace["customer"]))
    assert again.json()["status"] == "completed"
    booking = db.get(models.Booking, booking_id)
    db.refresh(booking)
    assert len(booking.status_history) == 1


def test_verify_by_reference_upstream_failure(client, marketplace, booking_payload, auth_header, provider):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    tx_ref = _pay_booking(client, marketplace, booking_id, auth_header).json()["tx_ref"]
    provider.fail = True
    response = client.get(f"/api/v1/payments/verify/{tx_ref}", headers=auth_header(marketplace["customer"]))
    assert response.status_code == 502


def test_verify_other_users_payment_is_forbidden(client, marketplace, make_user, booking_payload, auth_header):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    tx_ref = _pay_booking(client, marketplace, booking_id, auth_header).json()["tx_ref"]
    response = client.get(f"/api/v1/payments/verify/{tx_ref}", headers=auth_header(make_user(role="car_owner")))
    assert response.status_code == 403


# --- GARAGE CREATION FLOW ---

def test_garage_creation_requires_payment_then_admin_verification(
        client, make_user, auth_header, signed_webhook, db):
    admin = make_user(role="admin")
    owner = make_user(role="garage_owner")

    blocked = client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner))
    assert blocked.status_code == 403

    init = client.post("/api/v1/payments/garage-creation", json={"amount": 1000}, headers=auth_header(owner)).json()
    assert init["tx_ref"].startswith("garage-")
    signed_webhook({"tx_ref": init["tx_ref"], "status": "success"})
    db.refresh(owner)
    assert owner.can_create_garage is True

    created = client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner))
    assert created.status_code == 201
    garage = created.json()
    assert garage["status"] == "pending"
    assert garage["is_active"] is False
    assert garage["paid_at"] is not None
    assert garage["business_hours"]["sunday"]["closed"] is True

    # Pending garages are hidden from the public
    assert client.get(f"/api/v1/garages/{garage['id']}").status_code == 404

    verified = client.patch(
        f"/api/v1/garages/{garage['id']}/verify", json={"status": "active"}, headers=auth_header(admin)
    )
    assert verified.status_code == 200
    assert verified.json()["is_active"] is True
    assert verified.json()["is_verified"] is True
    assert client.get(f"/api/v1/garages/{garage['id']}").status_code == 200

    second = client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner))
    assert second.status_code == 409


# --- REFUNDS ---

def _settled_booking_payment(client, marketplace, booking_payload, auth_header, signed_webhook):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    init = _pay_booking(client, marketplace, booking_id, auth_header).json()
    signed_webhook({"tx_ref": init["tx_ref"], "status": "success"})
    return booking_id, init["payment_id"]


def test_refund_cancels_booking(client, marketplace, booking_payload, auth_header, signed_webhook, db):
    booking_id, payment_id = _settled_booking_payment(client, marketplace, booking_payload, auth_header, signed_webhook)

    response = client.post(
        f"/api/v1/payments/{payment_id}/refund", json={"reason": "Changed plans"},
        headers=auth_header(marketplace["customer"]),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "refunded"
    assert response.json()["refund_reason"] == "Changed plans"

    booking = db.get(models.Booking, booking_id)
    db.refresh(booking)
    assert booking.status == "cancelled"
    assert booking.is_paid is False

    # Refunding twice is a no-op
    assert payment_service.refund_settled_payment(db, payment_id, marketplace["admin"].id) is False


def test_refund_window(client, marketplace, booking_payload, auth_header, signed_webhook, db):
    _, payment_id = _settled_booking_payment(client, marketplace, booking_payload, auth_header, signed_webhook)
    payment = payment_service.get_payment(db, payment_id)
    payment.paid_at = datetime.utcnow() - timedelta(days=31)
    db.commit()

    late = client.post(f"/api/v1/payments/{payment_id}/refund", json={}, headers=auth_header(marketplace["customer"]))
    assert late.status_code == 400

    admin = client.post(f"/api/v1/payments/{payment_id}/refund", json={}, headers=auth_header(marketplace["admin"]))
    assert admin.status_code == 200
    assert admin.json()["status"] == "refunded"


def test_refund_of_pending_payment_is_rejected(client, marketplace, booking_payload, auth_header):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    payment_id = _pay_booking(client, marketplace, booking_id, auth_header).json()["payment_id"]
    response = client.post(f"/api/v1/payments/{payment_id}/refund", json={}, headers=auth_header(marketplace["admin"]))
    assert response.status_code == 400


def test_garage_payment_refund_revokes_permission(client, make_user, auth_header, signed_webhook, db):
    admin = make_user(role="admin")
    owner = make_user(role="garage_owner")
    init = client.post("/api/v1/payments/garage-creation", json={"amount": 1000}, headers=auth_header(owner)).json()
    signed_webhook({"tx_ref": init["tx_ref"], "status": "success"})

    client.post(f"/api/v1/payments/{init['payment_id']}/refund", json={}, headers=auth_header(admin))
    db.refresh(owner)
    assert owner.can_create_garage is False


# --- LISTINGS ---

def test_payment_listings(client, marketplace, booking_payload, auth_header):
    booking_id = _booking(client, marketplace, booking_payload, auth_header)
    _pay_booking(client, marketplace, booking_id, auth_header)

    mine = client.get("/api/v1/payments/my", headers=auth_header(marketplace["customer"]))
    assert len(mine.json()) == 1
    assert client.get("/api/v1/payments/my", headers=auth_header(marketplace["owner"])).json() == []

    assert len(client.get("/api/v1/payments/", headers=auth_header(marketplace["admin"])).json()) == 1
    assert client.get("/api/v1/payments/", headers=auth_header(marketplace["customer"])).status_code == 403


def test_payment_statistics(client, marketplace, booking_payload, auth_header, signed_webhook, make_user):
    _settled_booking_payment(client, marketplace, booking_payload, auth_header, signed_webhook)
    owner = make_user(role="garage_owner")
    client.post("/api/v1/payments/garage-creation", json={"amount": 1000}, headers=auth_header(owner))

    stats = client.get("/api/v1/payments/stats", headers=auth_header(marketplace["admin"])).json()
    assert stats["period"] == "month"
    assert (stats["total_transactions"], stats["successful_transactions"], stats["pending_transactions"]) == (2, 1, 1)
    assert stats["total_revenue"] == 500.0
    assert stats["by_type"] == [
        {"key": "booking", "count": 1, "total_amount": 500.0},
        {"key": "garage_creation", "count": 1, "total_amount": 0.0},
    ]
    assert sum(day["count"] for day in stats["by_day"]) == 2

    # Everyone else sees only their own payments
    own = client.get("/api/v1/payments/stats", params={"period": "week"}, headers=auth_header(owner)).json()
    assert (own["total_transactions"], own["total_revenue"]) == (1, 0.0)

    assert client.get(
        "/api/v1/payments/stats", params={"period": "decade"}, headers=auth_header(owner)
    ).status_code == 400
