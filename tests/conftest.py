import os

# Settings are read at import time: configure before importing the app
os.environ["DATABASE_URI"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["PAYMENT_WEBHOOK_SECRET"] = "whsec-test"
os.environ["PAYMENT_PROVIDER_SECRET_KEY"] = "provider-test-key"
os.environ["MAIL_ENABLED"] = "false"

import json
from datetime import date, timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from garagehub import models
from garagehub.database import Base, SessionLocal, engine, get_db
from garagehub.integrations.payment_provider import PaymentProviderClient, get_payment_provider
from garagehub.main import app
from garagehub.security import create_access_token, hash_password, sign_payload
from garagehub.utils.storage import LocalFileStorage, get_storage

WEBHOOK_SECRET = "whsec-test"
PASSWORD = "Password123!"
# Computed once: bcrypt is slow
PASSWORD_HASH = hash_password(PASSWORD)


def _next_weekday(weekday: int) -> date:
    today = date.today()
    return today + timedelta(days=(weekday - today.weekday() - 1) % 7 + 1)


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeProvider:
    """Records provider traffic and answers through an httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.verify_status = {}
        self.fail = False
        self.client = PaymentProviderClient(
            secret_key="provider-test-key",
            base_url="https://provider.test/v1",
            transport=httpx.MockTransport(self.handle),
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(503, json={"message": "unavailable"})
        if request.url.path.endswith("/transaction/initialize"):
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "status": "success",
                "data": {"checkout_url": f"https://checkout.test/{body['tx_ref']}"},
            })
        tx_ref = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={
            "status": "success",
            "data": {"tx_ref": tx_ref, "status": self.verify_status.get(tx_ref, "pending")},
        })


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def client(db, provider, storage):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_provider] = lambda: provider.client
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# --- FACTORIES ---

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="car_owner", email=None, name="Test User", can_create_garage=False):
        counter["n"] += 1
        user = models.User(
            name=name,
            email=email or f"{role}{counter['n']}@example.com",
            password=PASSWORD_HASH,
            role=role,
            can_create_garage=can_create_garage,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_garage(db):
    def _make(owner, status="active", business_hours=None, name="Bole Auto Care"):
        garage = models.Garage(
            name=name,
            description="Full service workshop",
            longitude=38.7578,
            latitude=9.0054,
            address={"street": "Bole Road", "city": "Addis Ababa", "country": "Ethiopia"},
            contact_info={"phone": "+251911000000"},
            business_hours=business_hours or dict(models.DEFAULT_BUSINESS_HOURS),
            owner_id=owner.id,
            status=status,
            is_verified=status == "active",
        )
        db.add(garage)
        db.commit()
        db.refresh(garage)
        return garage
    return _make


@pytest.fixture
def make_service(db):
    def _make(garage, name="Oil Change", duration=60, price=500.0, category="maintenance"):
        service = models.Service(
            garage_id=garage.id, name=name, duration=duration, price=price, category=category,
        )
        db.add(service)
        db.commit()
        db.refresh(service)
        return service
    return _make


@pytest.fixture
def booking_payload():
    def _payload(garage, service, booking_date, start="09:00", end="10:00"):
        return {
            "garage_id": garage.id,
            "service_id": service.id,
            "booking_date": booking_date.isoformat(),
            "time_slot": {"start": start, "end": end},
            "vehicle_info": {"make": "Toyota", "model": "Corolla", "year": 2018, "license_plate": "AA-3-12345"},
            "notes": "",
        }
    return _payload


@pytest.fixture
def auth_header():
    def _header(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return _header


@pytest.fixture
def marketplace(make_user, make_garage, make_service):
    """An admin, a garage owner with an active garage and one 60-minute service, and a car owner."""
    admin = make_user(role="admin", email="admin@example.com", name="Admin")
    owner = make_user(role="garage_owner", email="owner@example.com", name="Garage Owner")
    customer = make_user(role="car_owner", email="customer@example.com", name="Abebe Kebede")
    garage = make_garage(owner)
    service = make_service(garage)
    return {"admin": admin, "owner": owner, "customer": customer, "garage": garage, "service": service}


@pytest.fixture
def signed_webhook(client):
    def _post(payload, secret=WEBHOOK_SECRET):
        body = json.dumps(payload).encode()
        return client.post(
            "/api/v1/payments/webhook",
            content=body,
            headers={"Content-Type": "application/json", "X-Payment-Signature": sign_payload(body, secret)},
        )
    return _post


@pytest.fixture
def next_weekday():
    """next_weekday(0) is the first Monday strictly after today."""
    return _next_weekday
