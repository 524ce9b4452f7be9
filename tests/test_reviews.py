from datetime import date, datetime, timedelta

import pytest

from garagehub import models

MONDAY = date(2024, 6, 10)


@pytest.fixture
def approved_booking(client, marketplace, booking_payload, auth_header):
    response = client.post(
        "/api/v1/bookings/",
        json=booking_payload(marketplace["garage"], marketplace["service"], MONDAY),
        headers=auth_header(marketplace["customer"]),
    )
    booking_id = response.json()["id"]
    client.patch(
        f"/api/v1/bookings/{booking_id}/status", json={"status": "approved"}, headers=auth_header(marketplace["owner"])
    )
    return booking_id


def _review(client, marketplace, booking_id, auth_header, rating=4, user=None, garage_id=None, **extra):
    payload = {
        "booking_id": booking_id,
        "garage_id": garage_id or marketplace["garage"].id,
        "rating": rating,
        "title": "Quick and tidy",
        "comment": "Oil change done in under an hour.",
    }
    payload.update(extra)
    return client.post("/api/v1/reviews/", json=payload, headers=auth_header(user or marketplace["customer"]))


# --- GATE ---

def test_review_refreshes_garage_stats(client, marketplace, approved_booking, auth_header, db):
    response = _review(client, marketplace, approved_booking, auth_header, rating=4,
                       categories={"service_quality": 5, "timeliness": 3})
    assert response.status_code == 201
    body = response.json()
    assert body["rating"] == 4
    assert body["categories"] == {"service_quality": 5, "timeliness": 3}
    assert body["response"] is None

    garage = marketplace["garage"]
    db.refresh(garage)
    assert garage.total_reviews == 1
    assert garage.average_rating == 4.0


def test_duplicate_review_conflicts(client, marketplace, approved_booking, auth_header):
    assert _review(client, marketplace, approved_booking, auth_header).status_code == 201
    duplicate = _review(client, marketplace, approved_booking, auth_header)
    assert duplicate.status_code == 409


def test_unknown_booking_is_404(client, marketplace, auth_header):
    assert _review(client, marketplace, 999, auth_header).status_code == 404


def test_someone_elses_booking_is_403(client, marketplace, approved_booking, make_user, auth_header):
    other = make_user(role="car_owner")
    assert _review(client, marketplace, approved_booking, auth_header, user=other).status_code == 403


def test_pending_booking_cannot_be_reviewed(client, marketplace, booking_payload, auth_header):
    booking_id = client.post(
        "/api/v1/bookings/",
        json=booking_payload(marketplace["garage"], marketplace["service"], MONDAY),
        headers=auth_header(marketplace["customer"]),
    ).json()["id"]
    response = _review(client, marketplace, booking_id, auth_header)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "InvalidState"


def test_garage_must_match_booking(client, marketplace, approved_booking, make_garage, make_user, auth_header):
    other_garage = make_garage(make_user(role="garage_owner"), name="Other Garage")
    response = _review(client, marketplace, approved_booking, auth_header, garage_id=other_garage.id)
    assert response.status_code == 400


def test_deleted_review_allows_a_new_one(client, marketplace, approved_booking, auth_header, db):
    first = _review(client, marketplace, approved_booking, auth_header, rating=1).json()
    assert client.delete(f"/api/v1/reviews/{first['id']}", headers=auth_header(marketplace["customer"])).status_code == 204

    garage = marketplace["garage"]
    db.refresh(garage)
    assert (garage.total_reviews, garage.average_rating) == (0, 0.0)

    second = _review(client, marketplace, approved_booking, auth_header, rating=5)
    assert second.status_code == 201
    db.refresh(garage)
    assert (garage.total_reviews, garage.average_rating) == (1, 5.0)

    again = client.delete(f"/api/v1/reviews/{first['id']}", headers=auth_header(marketplace["customer"]))
    assert again.status_code == 409


# --- EDITS ---

def test_rating_edit_refreshes_average(client, marketplace, approved_booking, auth_header, db):
    review_id = _review(client, marketplace, approved_booking, auth_header, rating=2).json()["id"]
    response = client.put(
        f"/api/v1/reviews/{review_id}", json={"rating": 5}, headers=auth_header(marketplace["customer"])
    )
    assert response.status_code == 200
    garage = marketplace["garage"]
    db.refresh(garage)
    assert garage.average_rating == 5.0


def test_edit_window(client, marketplace, approved_booking, auth_header, db):
    review_id = _review(client, marketplace, approved_booking, auth_header).json()["id"]
    review = db.get(models.Review, review_id)
    review.created_at = datetime.utcnow() - timedelta(days=31)
    db.commit()

    late = client.put(f"/api/v1/reviews/{review_id}", json={"title": "Edited"}, headers=auth_header(marketplace["customer"]))
    assert late.status_code == 400

    admin = client.put(f"/api/v1/reviews/{review_id}", json={"title": "Edited"}, headers=auth_header(marketplace["admin"]))
    assert admin.status_code == 200
    assert admin.json()["title"] == "Edited"


def test_only_author_edits(client, marketplace, approved_booking, make_user, auth_header):
    review_id = _review(client, marketplace, approved_booking, auth_header).json()["id"]
    other = make_user(role="car_owner")
    assert client.put(f"/api/v1/reviews/{review_id}", json={"title": "x"}, headers=auth_header(other)).status_code == 403


# --- RESPONSES ---

def test_garage_responds_once(client, marketplace, approved_booking, make_user, auth_header):
    review_id = _review(client, marketplace, approved_booking, auth_header).json()["id"]
    owner = marketplace["owner"]

    stranger = make_user(role="garage_owner")
    forbidden = client.post(f"/api/v1/reviews/{review_id}/response", json={"comment": "Hi"}, headers=auth_header(stranger))
    assert forbidden.status_code == 403

    created = client.post(
        f"/api/v1/reviews/{review_id}/response", json={"comment": "Thanks!"}, headers=auth_header(owner)
    )
    assert created.status_code == 200
    assert created.json()["response"]["comment"] == "Thanks!"
    assert created.json()["response"]["responded_by"] == owner.id

    duplicate = client.post(
        f"/api/v1/reviews/{review_id}/response", json={"comment": "Again"}, headers=auth_header(owner)
    )
    assert duplicate.status_code == 409

    updated = client.put(
        f"/api/v1/reviews/{review_id}/response", json={"comment": "Thanks a lot!"}, headers=auth_header(owner)
    )
    assert updated.json()["response"]["comment"] == "Thanks a lot!"

    removed = client.delete(f"/api/v1/reviews/{review_id}/response", headers=auth_header(owner))
    assert removed.json()["response"] is None
    assert client.delete(f"/api/v1/reviews/{review_id}/response", headers=auth_header(owner)).status_code == 404


# --- VOTES & MODERATION ---

def test_helpful_toggle(client, marketplace, approved_booking, make_user, auth_header):
    review_id = _review(client, marketplace, approved_booking, auth_header).json()["id"]
    voter = make_user(role="car_owner")

    first = client.post(f"/api/v1/reviews/{review_id}/helpful", headers=auth_header(voter)).json()
    assert first == {"helpful_count": 1, "user_voted": True}

    second = client.post(f"/api/v1/reviews/{review_id}/helpful", headers=auth_header(voter)).json()
    assert second == {"helpful_count": 0, "user_voted": False}


def test_admin_verification_toggle(client, marketplace, approved_booking, auth_header):
    review_id = _review(client, marketplace, approved_booking, auth_header).json()["id"]
    verified = client.patch(f"/api/v1/reviews/{review_id}/verify", headers=auth_header(marketplace["admin"]))
    assert verified.json()["is_verified"] is True
    assert client.patch(
        f"/api/v1/reviews/{review_id}/verify", headers=auth_header(marketplace["customer"])
    ).status_code == 403


# --- GARAGE VIEWS ---

def test_garage_listing_and_summary(client, marketplace, booking_payload, auth_header):
    garage, service, owner = marketplace["garage"], marketplace["service"], marketplace["owner"]
    ratings = {"09:00": 5, "10:00": 3}
    for start, rating in ratings.items():
        end = f"{int(start[:2]) + 1:02d}:00"
        booking_id = client.post(
            "/api/v1/bookings/",
            json=booking_payload(garage, service, MONDAY, start, end),
            headers=auth_header(marketplace["customer"]),
        ).json()["id"]
        client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "approved"}, headers=auth_header(owner))
        review_id = _review(client, marketplace, booking_id, auth_header, rating=rating,
                            categories={"cleanliness": rating}).json()["id"]
        if rating == 5:
            client.post(f"/api/v1/reviews/{review_id}/response", json={"comment": "Thanks"}, headers=auth_header(owner))

    listing = client.get(f"/api/v1/garages/{garage.id}/reviews").json()
    assert listing["total_count"] == 2
    assert client.get(f"/api/v1/garages/{garage.id}/reviews", params={"min_rating": 4}).json()["total_count"] == 1

    summary = client.get(f"/api/v1/garages/{garage.id}/reviews/summary").json()
    assert summary["total_reviews"] == 2
    assert summary["average_rating"] == 4.0
    assert summary["category_averages"]["cleanliness"] == 4.0
    assert summary["category_averages"]["timeliness"] == 0.0
    assert summary["rating_distribution"] == {"1": 0, "2": 0, "3": 1, "4": 0, "5": 1}
    assert summary["response_rate"] == 50


# --- RESTORE ---

def test_admin_restores_review_and_stats(client, marketplace, approved_booking, auth_header, db):
    review_id = _review(client, marketplace, approved_booking, auth_header, rating=2).json()["id"]
    client.delete(f"/api/v1/reviews/{review_id}", headers=auth_header(marketplace["customer"]))

    garage = marketplace["garage"]
    db.refresh(garage)
    assert garage.total_reviews == 0

    assert client.put(f"/api/v1/reviews/{review_id}/restore", headers=auth_header(marketplace["customer"])).status_code == 403
    restored = client.put(f"/api/v1/reviews/{review_id}/restore", headers=auth_header(marketplace["admin"]))
    assert restored.status_code == 200
    assert restored.json()["rating"] == 2

    db.refresh(garage)
    assert (garage.total_reviews, garage.average_rating) == (1, 2.0)


def test_restore_blocked_by_newer_review(client, marketplace, approved_booking, auth_header):
    old_id = _review(client, marketplace, approved_booking, auth_header, rating=2).json()["id"]
    client.delete(f"/api/v1/reviews/{old_id}", headers=auth_header(marketplace["customer"]))
    assert _review(client, marketplace, approved_booking, auth_header, rating=5).status_code == 201

    response = client.put(f"/api/v1/reviews/{old_id}/restore", headers=auth_header(marketplace["admin"]))
    assert response.status_code == 409
