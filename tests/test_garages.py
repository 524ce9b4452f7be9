from contextlib import contextmanager
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from garagehub import models, schemas
from garagehub.database import SessionLocal
from garagehub.services import garages as garage_service

GARAGE_DATA = {
    "name": "Kazanchis Motors",
    "description": "Brakes and tyres",
    "address": {"street": "Kazanchis", "city": "Addis Ababa"},
    "contact_info": {"phone": "+251911111111"},
}


@pytest.fixture
def paid_owner(make_user, db):
    """A garage owner holding unused garage-creation payments."""
    def _make(payments=1):
        owner = make_user(role="garage_owner", can_create_garage=True)
        for n in range(payments):
            db.add(models.Payment(
                user_id=owner.id,
                payment_type=models.PaymentType.GARAGE_CREATION.value,
                amount=1000,
                status=models.PaymentStatus.COMPLETED.value,
                garage_creation_status=models.GarageCreationStatus.PENDING.value,
                transaction_id=f"garage-{owner.id}-{n}",
                paid_at=datetime.utcnow(),
            ))
        db.commit()
        return owner
    return _make


def test_public_listing_shows_active_garages_only(client, marketplace, make_garage, make_user, auth_header):
    pending_owner = make_user(role="garage_owner")
    pending = make_garage(pending_owner, status="pending", name="Pending Workshop")

    public = client.get("/api/v1/garages/").json()
    assert [g["id"] for g in public] == [marketplace["garage"].id]

    own = client.get("/api/v1/garages/", headers=auth_header(pending_owner)).json()
    assert {g["id"] for g in own} == {marketplace["garage"].id, pending.id}

    admin = client.get("/api/v1/garages/", params={"status": "pending"}, headers=auth_header(marketplace["admin"])).json()
    assert [g["id"] for g in admin] == [pending.id]

    assert client.get(f"/api/v1/garages/{pending.id}").status_code == 404
    assert client.get(f"/api/v1/garages/{pending.id}", headers=auth_header(pending_owner)).status_code == 200


def test_listing_search(client, marketplace, make_garage, make_user):
    make_garage(make_user(role="garage_owner"), name="Piassa Tyre Centre")
    results = client.get("/api/v1/garages/", params={"search": "tyre"}).json()
    assert [g["name"] for g in results] == ["Piassa Tyre Centre"]


def test_garage_payload_exposes_stats(client, marketplace):
    body = client.get(f"/api/v1/garages/{marketplace['garage'].id}").json()
    assert body["stats"] == {"total_bookings": 0, "completed_bookings": 0, "average_rating": 0.0, "total_reviews": 0}


def test_update_merges_business_hours(client, marketplace, auth_header, next_weekday):
    garage = marketplace["garage"]
    response = client.put(
        f"/api/v1/garages/{garage.id}",
        json={"description": "Now open on Sundays", "business_hours": {"sunday": {"open": "10:00", "close": "14:00"}}},
        headers=auth_header(marketplace["owner"]),
    )
    assert response.status_code == 200
    hours = response.json()["business_hours"]
    assert hours["sunday"] == {"open": "10:00", "close": "14:00", "closed": False}
    assert hours["monday"]["open"] == "09:00"

    available = client.post("/api/v1/bookings/availability", json={
        "garage_id": garage.id,
        "date": next_weekday(6).isoformat(),
        "time_slot": {"start": "10:00", "end": "11:00"},
    }).json()
    assert available["available"] is True


def test_invalid_business_hours_rejected(client, marketplace, auth_header):
    response = client.put(
        f"/api/v1/garages/{marketplace['garage'].id}",
        json={"business_hours": {"funday": {"open": "10:00", "close": "14:00"}}},
        headers=auth_header(marketplace["owner"]),
    )
    assert response.status_code == 400


def test_only_owner_or_admin_updates(client, marketplace, make_user, auth_header):
    stranger = make_user(role="garage_owner")
    response = client.put(
        f"/api/v1/garages/{marketplace['garage'].id}", json={"description": "mine now"}, headers=auth_header(stranger)
    )
    assert response.status_code == 403


def test_verification_is_admin_only(client, marketplace, make_garage, make_user, auth_header):
    owner = make_user(role="garage_owner")
    garage = make_garage(owner, status="pending", name="Awaiting Review")

    assert client.patch(
        f"/api/v1/garages/{garage.id}/verify", json={"status": "active"}, headers=auth_header(owner)
    ).status_code == 403

    suspended = client.patch(
        f"/api/v1/garages/{garage.id}/verify",
        json={"status": "suspended", "notes": "Missing trade licence"},
        headers=auth_header(marketplace["admin"]),
    )
    assert suspended.status_code == 200
    assert suspended.json()["status"] == "suspended"
    assert suspended.json()["is_active"] is False
    assert suspended.json()["is_verified"] is False


def test_delete_garage_cancels_upcoming_bookings(client, marketplace, booking_payload, auth_header, db, next_weekday):
    garage = marketplace["garage"]
    booking_id = client.post(
        "/api/v1/bookings/",
        json=booking_payload(garage, marketplace["service"], next_weekday(0)),
        headers=auth_header(marketplace["customer"]),
    ).json()["id"]

    assert client.delete(f"/api/v1/garages/{garage.id}", headers=auth_header(marketplace["owner"])).status_code == 204
    assert client.get(f"/api/v1/garages/{garage.id}").status_code == 404

    booking = db.get(models.Booking, booking_id)
    db.refresh(booking)
    assert booking.status == "cancelled"
    assert booking.status_history[-1].reason == "Garage is no longer available"

    service = db.get(models.Service, marketplace["service"].id)
    db.refresh(service)
    assert service.is_deleted is True


# --- ONE LIVE GARAGE PER OWNER ---

def test_concurrent_create_spends_payment_once(client, paid_owner, auth_header, db, monkeypatch):
    owner = paid_owner()
    real_transaction = garage_service.transaction

    @contextmanager
    def other_request_first(session):
        monkeypatch.setattr(garage_service, "transaction", real_transaction)
        other = SessionLocal()
        try:
            garage_service.create_garage(other, other.get(models.User, owner.id), schemas.GarageCreate(**GARAGE_DATA))
        finally:
            other.close()
        with real_transaction(session):
            yield session

    monkeypatch.setattr(garage_service, "transaction", other_request_first)
    response = client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner))
    assert response.status_code == 409

    db.expire_all()
    live = db.query(models.Garage).filter(models.Garage.owner_id == owner.id, models.Garage.is_deleted == False).all()
    assert len(live) == 1
    payment = db.query(models.Payment).filter(models.Payment.user_id == owner.id).one()
    assert (payment.garage_creation_status, payment.garage_id) == ("used", live[0].id)


def test_unique_index_backs_the_owner_check(client, paid_owner, auth_header, db, monkeypatch):
    owner = paid_owner(payments=2)
    monkeypatch.setattr(garage_service, "_owner_has_live_garage", lambda *args, **kwargs: False)

    assert client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner)).status_code == 201
    second = client.post("/api/v1/garages/", json=GARAGE_DATA, headers=auth_header(owner))
    assert second.status_code == 409
    assert second.json()["detail"]["message"] == garage_service.DUPLICATE_GARAGE

    db.expire_all()
    unused = db.query(models.Payment).filter(models.Payment.garage_creation_status == "pending").count()
    assert unused == 1


def test_second_live_garage_row_is_rejected(make_user, make_garage):
    owner = make_user(role="garage_owner")
    make_garage(owner)
    with pytest.raises(IntegrityError):
        make_garage(owner, name="Second Branch")


# --- RESTORE ---

def test_restore_brings_garage_back_pending(client, marketplace, auth_header, db):
    garage, admin = marketplace["garage"], marketplace["admin"]
    client.delete(f"/api/v1/garages/{garage.id}", headers=auth_header(marketplace["owner"]))

    assert client.put(f"/api/v1/garages/{garage.id}/restore", headers=auth_header(marketplace["owner"])).status_code == 403

    restored = client.put(f"/api/v1/garages/{garage.id}/restore", headers=auth_header(admin))
    assert restored.status_code == 200
    assert (restored.json()["status"], restored.json()["is_verified"]) == ("pending", False)

    # Services come back one at a time
    assert client.get(f"/api/v1/garages/{garage.id}/services").json()["total_count"] == 0

    again = client.put(f"/api/v1/garages/{garage.id}/restore", headers=auth_header(admin))
    assert again.status_code == 404


def test_restore_respects_one_garage_per_owner(client, marketplace, make_garage, auth_header, db):
    garage, owner = marketplace["garage"], marketplace["owner"]
    client.delete(f"/api/v1/garages/{garage.id}", headers=auth_header(owner))
    make_garage(owner, name="New Premises")

    response = client.put(f"/api/v1/garages/{garage.id}/restore", headers=auth_header(marketplace["admin"]))
    assert response.status_code == 409

    db.expire_all()
    assert db.get(models.Garage, garage.id).is_deleted is True
