# garagehub/services/payments.py
"""
Payment linkage.

Both the signed webhook and verify-by-reference polling end in
``settle_payment`` / ``mark_payment_failed``; refunds end in
``refund_settled_payment``. Each re-reads the payment status under a row lock
before mutating, so replays are no-ops.
"""

import json
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from garagehub import authz, models, schemas
from garagehub.config import settings
from garagehub.database import transaction
from garagehub.exceptions import (
    NotFoundException,
    UnauthorizedException,
    UpstreamFailureException,
    ValidationException,
)
from garagehub.integrations.payment_provider import PaymentProviderClient, PaymentProviderError
from garagehub.security import verify_signature
from garagehub.services import bookings as booking_service
from garagehub.utils import transaction_reference

logger = logging.getLogger(__name__)

PROVIDER_SUCCESS = "success"
PROVIDER_FAILED = "failed"


def _split_name(name: str):
    parts = (name or "").split()
    if not parts:
        return "User", ""
    return parts[0], " ".join(parts[1:])


def _start_checkout(provider: PaymentProviderClient, user: models.User, amount: float,
                    tx_ref: str, title: str, description: str) -> dict:
    first_name, last_name = _split_name(user.name)
    try:
        return provider.initialize(
            amount=str(amount),
            currency=settings.DEFAULT_CURRENCY,
            email=user.email,
            first_name=first_name,
            last_name=last_name,
            callback_url=settings.PAYMENT_CALLBACK_URL,
            return_url=settings.PAYMENT_RETURN_URL,
            tx_ref=tx_ref,
            title=title,
            description=description,
        )
    except PaymentProviderError as e:
        raise UpstreamFailureException(
            "Failed to initialize payment with provider",
            details={"provider_status": e.status_code},
        ) from e


def _init_out(payment: models.Payment) -> schemas.PaymentInitOut:
    return schemas.PaymentInitOut(
        payment_id=payment.id,
        checkout_url=payment.checkout_url,
        tx_ref=payment.transaction_id,
        booking_id=payment.booking_id,
    )


def get_payment(db: Session, payment_id: int, for_update: bool = False) -> models.Payment:
    query = db.query(models.Payment).filter(
        models.Payment.id == payment_id,
        models.Payment.is_deleted == False
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    payment = query.first()
    if not payment:
        raise NotFoundException("Payment not found")
    return payment


def get_payment_by_reference(db: Session, tx_ref: str, for_update: bool = False) -> Optional[models.Payment]:
    query = db.query(models.Payment).filter(models.Payment.transaction_id == tx_ref)
    if for_update:
        query = query.with_for_update().populate_existing()
    return query.first()


# --- INITIALIZATION ---

def init_garage_payment(db: Session, user: models.User, amount: float,
                        provider: PaymentProviderClient) -> schemas.PaymentInitOut:
    if amount < settings.GARAGE_PAYMENT_MIN or amount > settings.GARAGE_PAYMENT_MAX:
        raise ValidationException(
            f"Amount must be between {settings.GARAGE_PAYMENT_MIN:g} and "
            f"{settings.GARAGE_PAYMENT_MAX:g} {settings.DEFAULT_CURRENCY}"
        )

    tx_ref = transaction_reference("garage")
    data = _start_checkout(provider, user, amount, tx_ref, "Garage Creation Payment", "Payment for garage creation")

    with transaction(db):
        payment = models.Payment(
            user_id=user.id,
            payment_type=models.PaymentType.GARAGE_CREATION.value,
            garage_creation_status=models.GarageCreationStatus.PENDING.value,
            amount=amount,
            currency=settings.DEFAULT_CURRENCY,
            method=models.PaymentMethod.CARD.value,
            status=models.PaymentStatus.PENDING.value,
            transaction_id=tx_ref,
            provider_name=provider.name,
            provider_reference=tx_ref,
            checkout_url=data.get("checkout_url"),
            provider_response=data,
        )
        db.add(payment)

    db.refresh(payment)
    logger.info(f"Garage creation payment {payment.id} initialized for user {user.id}")
    return _init_out(payment)


def init_booking_payment(db: Session, user: models.User, booking_id: int, amount: float,
                         provider: PaymentProviderClient) -> schemas.PaymentInitOut:
    booking = db.query(models.Booking).filter(
        models.Booking.id == booking_id,
        models.Booking.car_owner_id == user.id,
        models.Booking.is_deleted == False
    ).first()
    if not booking:
        raise NotFoundException("Booking not found")
    if booking.is_paid:
        raise ValidationException("Booking is already paid")
    if booking.status in models.RELEASED_STATUSES:
        raise ValidationException(f"Cannot pay for a {booking.status} booking")
    if abs(amount - booking.service.price) > 0.005:
        raise ValidationException("Payment amount does not match booking price")

    tx_ref = transaction_reference(f"booking-{booking.id}")
    data = _start_checkout(
        provider, user, amount, tx_ref,
        f"Payment for Booking #{booking.id}",
        f"Payment for {booking.service.name} at {booking.garage.name}",
    )

    with transaction(db):
        payment = models.Payment(
            user_id=user.id,
            payment_type=models.PaymentType.BOOKING.value,
            booking_id=booking.id,
            amount=amount,
            currency=settings.DEFAULT_CURRENCY,
            method=models.PaymentMethod.CARD.value,
            status=models.PaymentStatus.PENDING.value,
            transaction_id=tx_ref,
            provider_name=provider.name,
            provider_reference=tx_ref,
            checkout_url=data.get("checkout_url"),
            provider_response=data,
        )
        db.add(payment)

    db.refresh(payment)
    logger.info(f"Booking payment {payment.id} initialized for booking {booking.id}")
    return _init_out(payment)


def retry_payment(db: Session, principal, payment_id: int,
                  provider: PaymentProviderClient) -> schemas.PaymentInitOut:
    """Start a fresh checkout for a failed payment under a new reference."""
    payment = db.query(models.Payment).filter(
        models.Payment.id == payment_id,
        models.Payment.user_id == principal.id,
        models.Payment.status == models.PaymentStatus.FAILED.value,
        models.Payment.is_deleted == False
    ).first()
    if not payment:
        raise NotFoundException("Failed payment not found")

    tx_ref = f"{payment.transaction_id}-retry-{int(datetime.utcnow().timestamp())}"
    data = _start_checkout(
        provider, payment.user, payment.amount, tx_ref,
        "Payment retry", f"Retry of payment #{payment.id}",
    )

    with transaction(db):
        payment.transaction_id = tx_ref
        payment.provider_reference = tx_ref
        payment.status = models.PaymentStatus.PENDING.value
        payment.checkout_url = data.get("checkout_url")
        payment.provider_response = data

    db.refresh(payment)
    return _init_out(payment)


# --- STATE CHANGES ---

def settle_payment(db: Session, payment_id: int, provider_data: Optional[dict] = None) -> bool:
    """Mark a payment completed and apply its effects. Returns False when nothing changed."""
    with transaction(db):
        payment = get_payment(db, payment_id, for_update=True)
        if payment.status in (models.PaymentStatus.COMPLETED.value, models.PaymentStatus.REFUNDED.value):
            return False

        now = datetime.utcnow()
        payment.status = models.PaymentStatus.COMPLETED.value
        payment.paid_at = now
        if provider_data:
            payment.provider_response = provider_data

        if payment.payment_type == models.PaymentType.GARAGE_CREATION.value:
            payment.user.can_create_garage = True
            if payment.garage_id and payment.garage:
                # Payment never activates a garage; only admin verification does
                payment.garage.paid_at = now

        elif payment.payment_type == models.PaymentType.BOOKING.value and payment.booking_id:
            booking = db.query(models.Booking).filter(
                models.Booking.id == payment.booking_id
            ).with_for_update().first()
            if booking:
                booking.is_paid = True
                booking.payment_id = payment.id
                target = models.BookingStatus.APPROVED.value
                if booking.status == target or booking_service.can_transition(booking.status, target):
                    booking_service.apply_transition(
                        db, booking, target, None, "Payment received, booking approved"
                    )
                else:
                    logger.warning(
                        f"Payment {payment.id} settled for booking {booking.id} in status {booking.status}; status left unchanged"
                    )

    logger.info(f"Payment {payment_id} settled")
    return True


def mark_payment_failed(db: Session, payment_id: int, provider_data: Optional[dict] = None) -> bool:
    """Only pending payments become failed; anything else is left alone."""
    with transaction(db):
        payment = get_payment(db, payment_id, for_update=True)
        if payment.status != models.PaymentStatus.PENDING.value:
            return False
        payment.status = models.PaymentStatus.FAILED.value
        if provider_data:
            payment.provider_response = provider_data

    logger.info(f"Payment {payment_id} marked failed")
    return True


def refund_settled_payment(db: Session, payment_id: int, actor_id: Optional[int],
                           reason: Optional[str] = None) -> bool:
    """Reverse the effects of a completed payment. Returns False when already refunded."""
    with transaction(db):
        payment = get_payment(db, payment_id, for_update=True)
        if payment.status == models.PaymentStatus.REFUNDED.value:
            return False
        if payment.status != models.PaymentStatus.COMPLETED.value:
            raise ValidationException("Only completed payments can be refunded")

        payment.status = models.PaymentStatus.REFUNDED.value
        payment.refund_reason = reason
        payment.refund_requested_at = datetime.utcnow()
        payment.refund_requested_by_id = actor_id

        if payment.payment_type == models.PaymentType.BOOKING.value and payment.booking_id:
            booking = db.query(models.Booking).filter(
                models.Booking.id == payment.booking_id
            ).with_for_update().first()
            if booking:
                booking.is_paid = False
                target = models.BookingStatus.CANCELLED.value
                if booking.status == target or booking_service.can_transition(booking.status, target):
                    booking_service.apply_transition(db, booking, target, actor_id, reason or "Payment refunded")
                else:
                    logger.warning(
                        f"Refunded payment {payment.id} for booking {booking.id} in terminal status {booking.status}"
                    )

        elif payment.payment_type == models.PaymentType.GARAGE_CREATION.value:
            payment.user.can_create_garage = False

    logger.info(f"Payment {payment_id} refunded by {actor_id}")
    return True


def refund_payment(db: Session, principal, payment_id: int, reason: Optional[str] = None) -> models.Payment:
    payment = get_payment(db, payment_id)
    authz.ensure_owner_or_admin(principal, payment)

    if payment.status == models.PaymentStatus.COMPLETED.value and not principal.is_admin:
        window = timedelta(days=settings.REFUND_WINDOW_DAYS)
        if payment.paid_at and payment.paid_at < datetime.utcnow() - window:
            raise ValidationException(f"Refund window has expired ({settings.REFUND_WINDOW_DAYS} days)")

    refund_settled_payment(db, payment.id, principal.id, reason)
    db.refresh(payment)
    return payment


# --- PROVIDER CALLBACKS ---

def handle_webhook(db: Session, body: bytes, signature: Optional[str]) -> schemas.WebhookAck:
    if not verify_signature(body, signature, settings.PAYMENT_WEBHOOK_SECRET):
        logger.warning("Rejected payment webhook with invalid signature")
        raise UnauthorizedException("Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise ValidationException("Webhook body is not valid JSON") from e

    tx_ref = payload.get("tx_ref") if isinstance(payload, dict) else None
    if not tx_ref:
        raise ValidationException("Webhook payload is missing tx_ref")

    payment = get_payment_by_reference(db, tx_ref)
    if not payment or payment.is_deleted:
        logger.warning(f"Payment not found for tx_ref: {tx_ref}")
        return schemas.WebhookAck(success=False, message="Payment not found", tx_ref=tx_ref)

    if payload.get("status") == PROVIDER_SUCCESS:
        changed = settle_payment(db, payment.id, payload)
    else:
        changed = mark_payment_failed(db, payment.id, payload)

    return schemas.WebhookAck(
        message="Webhook processed" if changed else "Already processed", tx_ref=tx_ref, applied=changed
    )


def verify_by_reference(db: Session, principal, tx_ref: str,
                        provider: PaymentProviderClient) -> models.Payment:
    payment = get_payment_by_reference(db, tx_ref)
    if not payment or payment.is_deleted:
        raise NotFoundException("Payment not found")
    authz.ensure_owner_or_admin(principal, payment)

    try:
        data = provider.verify(tx_ref)
    except PaymentProviderError as e:
        raise UpstreamFailureException("Failed to verify payment with provider") from e

    status = data.get("status")
    if status == PROVIDER_SUCCESS:
        settle_payment(db, payment.id, data)
    elif status == PROVIDER_FAILED:
        mark_payment_failed(db, payment.id, data)

    db.refresh(payment)
    return payment


# --- LISTINGS ---

def list_payments(db: Session, principal, status: Optional[str] = None,
                  payment_type: Optional[str] = None, everyone: bool = False,
                  limit: int = 100, skip: int = 0) -> List[models.Payment]:
    query = db.query(models.Payment).filter(models.Payment.is_deleted == False)
    if not (everyone and principal.is_admin):
        query = query.filter(models.Payment.user_id == principal.id)
    if status:
        query = query.filter(models.Payment.status == status)
    if payment_type:
        query = query.filter(models.Payment.payment_type == payment_type)
    return query.order_by(models.Payment.created_at.desc(), models.Payment.id.desc()).offset(skip).limit(limit).all()


# --- STATISTICS ---

STATS_PERIODS = {"week": 7, "month": 30, "quarter": 90, "year": 365}


def _breakdown(buckets) -> List[schemas.PaymentBucket]:
    return [
        schemas.PaymentBucket(key=key, count=c["count"], total_amount=round(c["amount"], 2))
        for key, c in sorted(buckets.items())
    ]


def payment_statistics(db: Session, principal, period: str = "month") -> schemas.PaymentStatistics:
    """
    Totals over the trailing period. Admins see every payment, everyone else
    their own. Amounts only count completed payments.
    """
    if period not in STATS_PERIODS:
        raise ValidationException(f"Period must be one of: {', '.join(STATS_PERIODS)}")

    end = datetime.utcnow()
    start = end - timedelta(days=STATS_PERIODS[period])
    query = db.query(models.Payment).filter(
        models.Payment.is_deleted == False,
        models.Payment.created_at >= start,
        models.Payment.created_at <= end
    )
    if not principal.is_admin:
        query = query.filter(models.Payment.user_id == principal.id)

    statuses = Counter()
    by_type, by_method, by_day = defaultdict(Counter), defaultdict(Counter), defaultdict(Counter)
    revenue = 0.0
    rows = query.with_entities(
        models.Payment.status, models.Payment.payment_type, models.Payment.method,
        models.Payment.amount, models.Payment.created_at
    )
    for status, payment_type, method, amount, created_at in rows:
        statuses[status] += 1
        settled = amount if status == models.PaymentStatus.COMPLETED.value else 0.0
        revenue += settled
        for buckets, key in ((by_type, payment_type), (by_method, method), (by_day, created_at.date().isoformat())):
            buckets[key]["count"] += 1
            buckets[key]["amount"] += settled

    return schemas.PaymentStatistics(
        period=period,
        start=start,
        end=end,
        total_revenue=round(revenue, 2),
        total_transactions=sum(statuses.values()),
        successful_transactions=statuses[models.PaymentStatus.COMPLETED.value],
        failed_transactions=statuses[models.PaymentStatus.FAILED.value],
        pending_transactions=statuses[models.PaymentStatus.PENDING.value],
        refunded_transactions=statuses[models.PaymentStatus.REFUNDED.value],
        by_type=_breakdown(by_type),
        by_method=_breakdown(by_method),
        by_day=_breakdown(by_day),
    )
