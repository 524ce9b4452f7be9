# garagehub/routers/payment.py

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from sqlalchemy.orm import Session

from garagehub import authz, models, schemas, oauth2
from garagehub.database import get_db
from garagehub.integrations.payment_provider import PaymentProviderClient, get_payment_provider
from garagehub.services import payments as payment_service
from garagehub.utils.mailer import notify_booking_status

router = APIRouter(
    prefix="/api/v1/payments",
    tags=['Payments']
)


def _current_user(db: Session, principal: oauth2.Principal) -> models.User:
    return db.query(models.User).filter(models.User.id == principal.id).first()


def _notify_if_auto_approved(db: Session, background_tasks: BackgroundTasks, payment: models.Payment):
    if payment.booking_id and payment.status == models.PaymentStatus.COMPLETED.value:
        booking = db.query(models.Booking).filter(models.Booking.id == payment.booking_id).first()
        if booking and booking.status == models.BookingStatus.APPROVED.value:
            notify_booking_status(background_tasks, booking)


@router.post("/garage-creation", response_model=schemas.PaymentInitOut)
def init_garage_payment(
    payment_data: schemas.GaragePaymentInit,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_owner),
    provider: PaymentProviderClient = Depends(get_payment_provider)
):
    return payment_service.init_garage_payment(db, _current_user(db, principal), payment_data.amount, provider)


@router.post("/booking", response_model=schemas.PaymentInitOut)
def init_booking_payment(
    payment_data: schemas.BookingPaymentInit,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_car_owner),
    provider: PaymentProviderClient = Depends(get_payment_provider)
):
    return payment_service.init_booking_payment(
        db, _current_user(db, principal), payment_data.booking_id, payment_data.amount, provider
    )


@router.post("/webhook", response_model=schemas.WebhookAck)
async def payment_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_payment_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    """Provider callback. The signature covers the raw body, so it is read before any parsing."""
    body = await request.body()
    ack = payment_service.handle_webhook(db, body, x_payment_signature)
    if ack.applied:
        payment = payment_service.get_payment_by_reference(db, ack.tx_ref)
        if payment:
            _notify_if_auto_approved(db, background_tasks, payment)
    return ack


@router.get("/verify/{tx_ref}", response_model=schemas.PaymentOut)
def verify_payment(
    tx_ref: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal),
    provider: PaymentProviderClient = Depends(get_payment_provider)
):
    payment = payment_service.verify_by_reference(db, principal, tx_ref, provider)
    _notify_if_auto_approved(db, background_tasks, payment)
    return payment


@router.get("/my", response_model=List[schemas.PaymentOut])
def my_payments(
    status: Optional[str] = None,
    payment_type: Optional[str] = None,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return payment_service.list_payments(db, principal, status=status, payment_type=payment_type)


@router.get("/", response_model=List[schemas.PaymentOut])
def all_payments(
    status: Optional[str] = None,
    payment_type: Optional[str] = None,
    limit: int = 100,
    skip: int = 0,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return payment_service.list_payments(
        db, principal, status=status, payment_type=payment_type, everyone=True, limit=limit, skip=skip
    )


@router.get("/stats", response_model=schemas.PaymentStatistics)
def payment_statistics(
    period: str = "month",
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    """Revenue and transaction counts for the trailing week, month, quarter or year."""
    return payment_service.payment_statistics(db, principal, period)


@router.get("/{id}", response_model=schemas.PaymentOut)
def get_payment(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    payment = payment_service.get_payment(db, id)
    authz.ensure_owner_or_admin(principal, payment)
    return payment


@router.post("/{id}/refund", response_model=schemas.PaymentOut)
def refund_payment(
    id: int,
    refund_data: schemas.RefundRequest,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    """Owners can ask within the refund window; admins at any time."""
    return payment_service.refund_payment(db, principal, id, refund_data.reason)


@router.post("/{id}/retry", response_model=schemas.PaymentInitOut)
def retry_payment(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal),
    provider: PaymentProviderClient = Depends(get_payment_provider)
):
    return payment_service.retry_payment(db, principal, id, provider)
