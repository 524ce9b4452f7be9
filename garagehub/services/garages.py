# garagehub/services/garages.py

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garagehub import authz, models, schemas
from garagehub.database import is_unique_violation, transaction
from garagehub.exceptions import ConflictException, ForbiddenException, NotFoundException, ValidationException
from garagehub.services import bookings as booking_service

logger = logging.getLogger(__name__)

DUPLICATE_GARAGE = "You already have a garage. Contact admin to create another one."
LIVE_OWNER_INDEX = "uq_garage_live_owner"

# Bookings still ahead of the garage when it is removed
OPEN_STATUSES = (
    models.BookingStatus.PENDING.value,
    models.BookingStatus.APPROVED.value,
    models.BookingStatus.IN_PROGRESS.value,
)


def _business_hours(requested) -> dict:
    hours = {day: dict(values) for day, values in models.DEFAULT_BUSINESS_HOURS.items()}
    for day, values in (requested or {}).items():
        hours[day] = values.model_dump() if hasattr(values, "model_dump") else dict(values)
    return hours


def get_live_garage(db: Session, garage_id: int) -> models.Garage:
    garage = db.query(models.Garage).filter(
        models.Garage.id == garage_id,
        models.Garage.is_deleted == False
    ).first()
    if not garage:
        raise NotFoundException("Garage not found")
    return garage


def _owner_has_live_garage(db: Session, owner_id: int, exclude_id: Optional[int] = None) -> bool:
    query = db.query(models.Garage.id).filter(
        models.Garage.owner_id == owner_id,
        models.Garage.is_deleted == False
    )
    if exclude_id is not None:
        query = query.filter(models.Garage.id != exclude_id)
    return query.first() is not None


def create_garage(db: Session, user: models.User, data: schemas.GarageCreate) -> models.Garage:
    if not user.can_create_garage:
        raise ForbiddenException("Payment required to create a garage")

    try:
        with transaction(db):
            if _owner_has_live_garage(db, user.id):
                raise ConflictException(DUPLICATE_GARAGE)

            # Locked so two requests cannot spend the same payment
            payment = db.query(models.Payment).filter(
                models.Payment.user_id == user.id,
                models.Payment.payment_type == models.PaymentType.GARAGE_CREATION.value,
                models.Payment.status == models.PaymentStatus.COMPLETED.value,
                models.Payment.garage_creation_status == models.GarageCreationStatus.PENDING.value,
                models.Payment.is_deleted == False
            ).order_by(models.Payment.paid_at.desc()).with_for_update().populate_existing().first()
            if not payment:
                raise ValidationException("No valid payment found for garage creation")

            garage = models.Garage(
                name=data.name,
                description=data.description,
                longitude=data.longitude,
                latitude=data.latitude,
                address=data.address.model_dump(),
                contact_info=data.contact_info.model_dump(),
                business_hours=_business_hours(data.business_hours),
                images=[],
                documents=[],
                owner_id=user.id,
                status=models.GarageStatus.PENDING.value,
                is_verified=False,
                paid_at=payment.paid_at or datetime.utcnow(),
            )
            db.add(garage)
            db.flush()

            payment.garage_id = garage.id
            payment.garage_creation_status = models.GarageCreationStatus.USED.value
    except IntegrityError as e:
        if not is_unique_violation(e, models.Garage.__table__, LIVE_OWNER_INDEX):
            raise
        raise ConflictException(DUPLICATE_GARAGE) from e

    db.refresh(garage)
    logger.info(f"Garage {garage.id} created by user {user.id}, pending verification")
    return garage


def verify_garage(db: Session, principal, garage_id: int, data: schemas.GarageVerify) -> models.Garage:
    """Admin review. The only way a garage becomes active."""
    garage = get_live_garage(db, garage_id)
    status = models.GarageStatus(data.status).value

    with transaction(db):
        garage.status = status
        garage.is_verified = status == models.GarageStatus.ACTIVE.value
        garage.verified_at = datetime.utcnow()
        garage.verified_by_id = principal.id
        garage.verification_notes = data.notes

    logger.info(f"Garage {garage.id} set to {status} by admin {principal.id}")
    db.refresh(garage)
    return garage


def update_garage(db: Session, principal, garage_id: int, data: schemas.GarageUpdate) -> models.Garage:
    garage = get_live_garage(db, garage_id)
    authz.ensure_owner_or_admin(principal, garage, "Not authorized to update this garage")

    changes = data.model_dump(exclude_unset=True)
    with transaction(db):
        if "business_hours" in changes:
            merged = dict(garage.business_hours or {})
            merged.update({day: hours.model_dump() for day, hours in (data.business_hours or {}).items()})
            garage.business_hours = merged
            changes.pop("business_hours")
        for key, value in changes.items():
            setattr(garage, key, value)

    db.refresh(garage)
    return garage


def retire_garage(db: Session, garage: models.Garage, actor_id: int) -> int:
    """
    Soft-deletes the garage with its services and cancels the bookings still
    ahead of it. Does not commit. Returns how many bookings were cancelled.
    """
    garage.is_deleted = True
    garage.deleted_at = datetime.utcnow()
    garage.deleted_by_id = actor_id
    garage.status = models.GarageStatus.SUSPENDED.value

    db.query(models.Service).filter(
        models.Service.garage_id == garage.id,
        models.Service.is_deleted == False
    ).update({models.Service.is_deleted: True, models.Service.is_available: False}, synchronize_session=False)

    upcoming = db.query(models.Booking).filter(
        models.Booking.garage_id == garage.id,
        models.Booking.booking_date >= date.today(),
        models.Booking.status.in_(OPEN_STATUSES),
        models.Booking.is_deleted == False
    ).all()
    for booking in upcoming:
        booking_service.apply_transition(
            db, booking, models.BookingStatus.CANCELLED.value, actor_id, "Garage is no longer available"
        )
    return len(upcoming)


def soft_delete_garage(db: Session, principal, garage_id: int) -> models.Garage:
    garage = get_live_garage(db, garage_id)
    authz.ensure_owner_or_admin(principal, garage, "Not authorized to delete this garage")

    with transaction(db):
        cancelled = retire_garage(db, garage, principal.id)

    logger.info(f"Garage {garage.id} deleted by user {principal.id}; {cancelled} upcoming bookings cancelled")
    return garage


def restore_garage(db: Session, principal, garage_id: int) -> models.Garage:
    """
    Brings a soft-deleted garage back as pending, so it goes through
    verification again. Its services stay deleted until restored one by one.
    """
    garage = db.query(models.Garage).filter(
        models.Garage.id == garage_id,
        models.Garage.is_deleted == True
    ).first()
    if not garage:
        raise NotFoundException("Deleted garage not found")
    if garage.owner is None or garage.owner.is_deleted:
        raise ValidationException("Restore the owner account first")

    try:
        with transaction(db):
            if _owner_has_live_garage(db, garage.owner_id, exclude_id=garage.id):
                raise ConflictException("Owner already has a live garage")
            garage.is_deleted = False
            garage.deleted_at = None
            garage.deleted_by_id = None
            garage.status = models.GarageStatus.PENDING.value
            garage.is_verified = False
    except IntegrityError as e:
        if not is_unique_violation(e, models.Garage.__table__, LIVE_OWNER_INDEX):
            raise
        raise ConflictException("Owner already has a live garage") from e

    logger.info(f"Garage {garage.id} restored by admin {principal.id}, pending verification")
    db.refresh(garage)
    return garage


def get_garage(db: Session, garage_id: int, principal=None) -> models.Garage:
    garage = get_live_garage(db, garage_id)
    if garage.status != models.GarageStatus.ACTIVE.value:
        # Unverified or suspended listings are only visible to their owner and admins
        if principal is None or not authz.is_owner_or_admin(principal, garage):
            raise NotFoundException("Garage not found")
    return garage


def list_garages(
    db: Session,
    principal=None,
    search: Optional[str] = None,
    min_rating: Optional[float] = None,
    is_verified: Optional[bool] = None,
    status: Optional[str] = None,
    limit: int = 20,
    skip: int = 0,
) -> List[models.Garage]:
    query = db.query(models.Garage).filter(models.Garage.is_deleted == False)

    if principal is not None and principal.is_admin:
        if status:
            query = query.filter(models.Garage.status == status)
    elif principal is not None:
        query = query.filter(or_(
            models.Garage.status == models.GarageStatus.ACTIVE.value,
            models.Garage.owner_id == principal.id
        ))
    else:
        query = query.filter(models.Garage.status == models.GarageStatus.ACTIVE.value)

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Garage.name.ilike(pattern), models.Garage.description.ilike(pattern)))
    if min_rating is not None:
        query = query.filter(models.Garage.average_rating >= min_rating)
    if is_verified is not None:
        query = query.filter(models.Garage.is_verified == is_verified)

    return query.order_by(models.Garage.created_at.desc(), models.Garage.id.desc()).offset(skip).limit(limit).all()
