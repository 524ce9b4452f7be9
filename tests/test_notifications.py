import asyncio
import os
from datetime import date

import httpx
import pytest
from fastapi import BackgroundTasks

from garagehub import models
from garagehub.integrations.payment_provider import PaymentProviderClient, PaymentProviderError
from garagehub.utils import mailer
from garagehub.utils.pdf_generator import generate_booking_confirmation_pdf


@pytest.fixture
def booking(client, marketplace, booking_payload, auth_header, db):
    booking_id = client.post(
        "/api/v1/bookings/",
        json=booking_payload(marketplace["garage"], marketplace["service"], date(2024, 6, 10)),
        headers=auth_header(marketplace["customer"]),
    ).json()["id"]
    return db.get(models.Booking, booking_id)


def _approve(client, booking, marketplace, auth_header, db):
    client.patch(
        f"/api/v1/bookings/{booking.id}/status", json={"status": "approved"}, headers=auth_header(marketplace["owner"])
    )
    db.refresh(booking)


# --- EMAIL ---

def test_mail_disabled_queues_nothing(client, booking, marketplace, auth_header, db):
    _approve(client, booking, marketplace, auth_header, db)
    tasks = BackgroundTasks()
    assert mailer.notify_booking_status(tasks, booking) is False
    assert tasks.tasks == []


def test_approval_queues_email_with_confirmation(client, booking, marketplace, auth_header, db, monkeypatch):
    _approve(client, booking, marketplace, auth_header, db)
    monkeypatch.setattr(mailer.settings, "MAIL_ENABLED", True)

    tasks = BackgroundTasks()
    assert mailer.notify_booking_status(tasks, booking) is True
    assert len(tasks.tasks) == 1
    status, email_to, _, booking_id, _, pdf_file = tasks.tasks[0].args
    assert (status, email_to, booking_id) == ("approved", "customer@example.com", booking.id)
    assert pdf_file.startswith(b"%PDF")


def test_pending_booking_sends_nothing(booking, monkeypatch):
    monkeypatch.setattr(mailer.settings, "MAIL_ENABLED", True)
    tasks = BackgroundTasks()
    assert mailer.notify_booking_status(tasks, booking) is False


def test_concurrent_pdf_emails_use_separate_files(monkeypatch):
    sent = []

    async def fake_send(email_to, subject, html_body, attachments=None):
        await asyncio.sleep(0)
        with open(attachments[0], "rb") as f:
            sent.append((attachments[0], f.read()))

    monkeypatch.setattr(mailer, "_send", fake_send)

    async def send_both():
        await asyncio.gather(
            mailer._send_with_pdf("a@example.com", "A", "<p>a</p>", b"%PDF-first", "booking_7.pdf"),
            mailer._send_with_pdf("b@example.com", "B", "<p>b</p>", b"%PDF-second", "booking_7.pdf"),
        )

    asyncio.run(send_both())
    assert sorted(content for _, content in sent) == [b"%PDF-first", b"%PDF-second"]
    assert sent[0][0] != sent[1][0]
    assert all(os.path.basename(path).startswith("booking_7_") for path, _ in sent)
    assert not any(os.path.exists(path) for path, _ in sent)


def test_confirmation_pdf_renders(booking):
    pdf = generate_booking_confirmation_pdf(booking)
    assert pdf.startswith(b"%PDF")
    assert len(pdf) > 500


# --- PAYMENT PROVIDER CLIENT ---

def _client(handler):
    return PaymentProviderClient(
        secret_key="sk-test", base_url="https://provider.test/v1/", transport=httpx.MockTransport(handler)
    )


def test_initialize_requires_checkout_url():
    client = _client(lambda request: httpx.Response(200, json={"status": "success", "data": {}}))
    with pytest.raises(PaymentProviderError):
        client.initialize(amount="100", tx_ref="garage-1")


def test_initialize_drops_empty_fields():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"data": {"checkout_url": "https://checkout.test/x"}})

    data = _client(handler).initialize(amount="100", tx_ref="garage-1", return_url=None)
    assert data["checkout_url"] == "https://checkout.test/x"
    assert seen["url"] == "https://provider.test/v1/transaction/initialize"
    assert b"return_url" not in seen["body"]


def test_error_status_carries_code():
    client = _client(lambda request: httpx.Response(404, json={"message": "not found"}))
    with pytest.raises(PaymentProviderError) as exc_info:
        client.verify("missing")
    assert exc_info.value.status_code == 404


def test_malformed_json():
    client = _client(lambda request: httpx.Response(200, content=b"<html>"))
    with pytest.raises(PaymentProviderError):
        client.verify("tx-1")
