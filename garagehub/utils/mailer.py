# garagehub/utils/mailer.py

import logging
import os
import tempfile
from functools import lru_cache

from fastapi import BackgroundTasks
from fastapi_mail import FastMail, MessageSchema, ConnectionConfig, MessageType

from garagehub import models
from garagehub.config import settings
from garagehub.utils.pdf_generator import generate_booking_confirmation_pdf

logger = logging.getLogger(__name__)


@lru_cache()
def get_mail_config() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USERNAME,
        MAIL_PASSWORD=settings.MAIL_PASSWORD,
        MAIL_FROM=settings.MAIL_FROM,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_SERVER,
        MAIL_STARTTLS=settings.MAIL_STARTTLS,
        MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
        USE_CREDENTIALS=settings.USE_CREDENTIALS,
        VALIDATE_CERTS=True,
        MAIL_FROM_NAME=settings.MAIL_FROM_NAME
    )

# ==============================================================================
# INTERNAL HELPERS
# ==============================================================================
async def _send(email_to, subject, html_body, attachments=None):
    message = MessageSchema(
        subject=subject,
        recipients=[email_to],
        body=html_body,
        subtype=MessageType.html,
        attachments=attachments or []
    )
    fm = FastMail(get_mail_config())
    await fm.send_message(message)

async def _send_with_pdf(email_to, subject, html_body, pdf_bytes, filename):
    stem, suffix = os.path.splitext(filename)
    # One file per send, never shared between messages
    with tempfile.NamedTemporaryFile(delete=False, prefix=f"{stem}_", suffix=suffix or ".pdf") as f:
        f.write(pdf_bytes)
        tmp_path = f.name
    try:
        await _send(email_to, subject, html_body, [tmp_path])
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)

# ==============================================================================
# BOOKING EMAILS
# ==============================================================================

async def send_booking_approved_email(email_to: str, customer_name: str, booking_id: int, pdf_file: bytes):
    html = f"""
    <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #ddd; border-radius: 8px;">
                <h2 style="color: #27ae60;">Booking Confirmed</h2>
                <p>Dear <strong>{customer_name}</strong>,</p>
                <p>Your booking <strong>#{booking_id}</strong> has been <strong>approved</strong>.</p>
                <p>The booking confirmation is attached. Please bring it with you on the day of service.</p>
                <hr style="border: 0; border-top: 1px solid #eee;">
                <p style="font-size: 12px; color: #888;">{settings.APP_NAME} Automated System</p>
            </div>
        </body>
    </html>
    """
    await _send_with_pdf(email_to, f"APPROVED: Booking #{booking_id}", html, pdf_file, f"booking_{booking_id}.pdf")

async def send_booking_rejected_email(email_to: str, customer_name: str, booking_id: int, reason: str):
    html = f"""
    <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #fab1a0; border-radius: 8px; background-color: #fff5f5;">
                <h2 style="color: #c0392b;">Booking Declined</h2>
                <p>Dear <strong>{customer_name}</strong>,</p>
                <p>Your booking <strong>#{booking_id}</strong> was <strong style="color: #c0392b;">declined</strong> by the garage.</p>
                <div style="background-color: #ffffff; padding: 15px; border-left: 4px solid #c0392b; margin: 20px 0;">
                    <strong>Reason:</strong><br>
                    <i style="color: #555;">"{reason}"</i>
                </div>
                <p>You can pick another time slot or another garage and book again.</p>
                <hr style="border: 0; border-top: 1px solid #fab1a0;">
                <p style="font-size: 12px; color: #888;">{settings.APP_NAME} Automated System</p>
            </div>
        </body>
    </html>
    """
    await _send(email_to, f"DECLINED: Booking #{booking_id}", html)

# ==============================================================================
# SCHEDULING
# ==============================================================================

async def _deliver_status_email(status: str, email_to: str, customer_name: str, booking_id: int,
                                reason: str, pdf_file: bytes = None):
    try:
        if status == models.BookingStatus.APPROVED.value:
            await send_booking_approved_email(email_to, customer_name, booking_id, pdf_file)
        else:
            await send_booking_rejected_email(email_to, customer_name, booking_id, reason)
    except Exception as e:
        logger.error(f"Failed to send {status} email for booking {booking_id} to {email_to}: {e}")

def notify_booking_status(background_tasks: BackgroundTasks, booking: models.Booking) -> bool:
    """
    Queue the customer email for an approved or rejected booking.
    Everything the task needs is read here, while the session is still open.
    """
    if not settings.MAIL_ENABLED:
        return False
    if booking.status not in (models.BookingStatus.APPROVED.value, models.BookingStatus.REJECTED.value):
        return False

    customer = booking.car_owner
    latest = booking.status_history[-1] if booking.status_history else None
    reason = latest.reason if latest else ""

    pdf_file = None
    if booking.status == models.BookingStatus.APPROVED.value:
        try:
            pdf_file = generate_booking_confirmation_pdf(booking)
        except Exception as e:
            logger.error(f"Could not render confirmation PDF for booking {booking.id}: {e}")
            return False

    background_tasks.add_task(
        _deliver_status_email, booking.status, customer.email, customer.name, booking.id, reason, pdf_file
    )
    return True
