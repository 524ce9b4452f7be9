# garagehub/services/bookings.py
"""
Booking lifecycle.

Status changes go through ``apply_transition`` so the current status, the
history log and the garage counters move together in one unit of work.
"""

import logging
import os
from datetime import datetime
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garagehub import authz, models, schemas
from garagehub.config import settings
from garagehub.database import is_unique_violation, transaction
from garagehub.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from garagehub.services import availability, garage_stats

logger = logging.getLogger(__name__)

Status = models.BookingStatus

TRANSITIONS = {
    Status.PENDING.value: {Status.APPROVED.value, Status.REJECTED.value, Status.CANCELLED.value},
    Status.APPROVED.value: {Status.IN_PROGRESS.value, Status.CANCELLED.value},
    Status.IN_PROGRESS.value: {Status.COMPLETED.value, Status.CANCELLED.value},
    Status.COMPLETED.value: set(),
    Status.CANCELLED.value: set(),
    Status.REJECTED.value: set(),
}

# Car owners may only back out before work starts
OWNER_CANCELLABLE = (Status.PENDING.value, Status.APPROVED.value)

SLOT_INDEX = "uq_booking_live_slot"


def can_transition(source: str, target: str) -> bool:
    return target in TRANSITIONS.get(source, set())


def default_reason(target: str) -> str:
    return f"Status changed to {target}"


def apply_transition(db: Session, booking: models.Booking, target: str,
                     actor_id: Optional[int], reason: Optional[str] = None) -> bool:
    """
    Moves the booking to ``target`` without committing.

    Returns False for a same-status request (nothing recorded), raises
    InvalidTransitionException for anything outside the table.
    """
    target = Status(target).value
    if booking.status == target:
        return False
    if not can_transition(booking.status, target):
        raise InvalidTransitionException(booking.status, target)

    booking.status = target
    booking.updated_at = datetime.utcnow()
    booking.status_history.append(models.BookingStatusHistory(
        status=target,
        changed_by_id=actor_id,
        reason=reason or default_reason(target),
        changed_at=datetime.utcnow(),
    ))
    if target == Status.COMPLETED.value:
        garage_stats.record_booking_completed(db, booking.garage_id)
    return True


def get_live_booking(db: Session, booking_id: int, for_update: bool = False) -> models.Booking:
    query = db.query(models.Booking).filter(
        models.Booking.id == booking_id,
        models.Booking.is_deleted == False
    )
    if for_update:
        query = query.with_for_update().populate_existing()
    booking = query.first()
    if not booking:
        raise NotFoundException("Booking not found")
    return booking


# --- CREATE ---

def create_booking(db: Session, principal, data: schemas.BookingCreate) -> models.Booking:
    start, end = data.time_slot.start, data.time_slot.end
    try:
        with transaction(db):
            # Serialises concurrent bookings at the same garage where the backend supports it
            garage = db.query(models.Garage).filter(
                models.Garage.id == data.garage_id,
                models.Garage.is_deleted == False,
                models.Garage.status == models.GarageStatus.ACTIVE.value
            ).with_for_update().first()
            if not garage:
                raise NotFoundException("Garage not found or not active")

            service = db.query(models.Service).filter(
                models.Service.id == data.service_id,
                models.Service.garage_id == garage.id,
                models.Service.is_deleted == False,
                models.Service.is_available == True
            ).first()
            if not service:
                raise NotFoundException("Service not found or not available")

            result = availability.check_availability(
                db, garage.id, data.booking_date, start, end, service_id=service.id
            )
            if not result.available:
                if result.reason == availability.SLOT_TAKEN_REASON:
                    raise ConflictException(result.reason)
                raise ValidationException(
                    result.reason, details={"business_hours": result.business_hours} if result.business_hours else None
                )

            booking = models.Booking(
                car_owner_id=principal.id,
                garage_id=garage.id,
                service_id=service.id,
                booking_date=data.booking_date,
                slot_start=start,
                slot_end=end,
                status=Status.PENDING.value,
                vehicle_info=data.vehicle_info.model_dump(),
                notes=data.notes or "",
                attachments=[],
            )
            db.add(booking)
            db.flush()
            garage_stats.record_booking_created(db, garage.id)
    except IntegrityError as e:
        if not is_unique_violation(e, models.Booking.__table__, SLOT_INDEX):
            raise
        # Another request committed the same slot first
        logger.info(f"Slot conflict for garage {data.garage_id} on {data.booking_date} {start}-{end}: {e.orig}")
        raise ConflictException(availability.SLOT_TAKEN_REASON) from e

    db.refresh(booking)
    logger.info(f"Booking {booking.id} created by user {principal.id} at garage {booking.garage_id}")
    return booking


# --- STATUS CHANGES ---

def transition_booking(db: Session, principal, booking_id: int, target: str,
                       reason: Optional[str] = None) -> Tuple[models.Booking, bool]:
    """Garage-side status change. Returns the booking and whether anything changed."""
    booking = get_live_booking(db, booking_id)
    if not authz.is_garage_side(principal, booking):
        raise ForbiddenException("Not authorized to update this booking")

    with transaction(db):
        booking = get_live_booking(db, booking_id, for_update=True)
        changed = apply_transition(db, booking, target, principal.id, reason)

    if changed:
        logger.info(f"Booking {booking.id} -> {booking.status} by user {principal.id}")
    db.refresh(booking)
    return booking, changed


def cancel_booking(db: Session, principal, booking_id: int, reason: Optional[str] = None) -> models.Booking:
    with transaction(db):
        # The status check and the write see the same locked row
        booking = db.query(models.Booking).filter(
            models.Booking.id == booking_id,
            models.Booking.car_owner_id == principal.id,
            models.Booking.is_deleted == False
        ).with_for_update().populate_existing().first()
        if not booking:
            raise NotFoundException("Booking not found")
        if booking.status not in OWNER_CANCELLABLE:
            raise InvalidTransitionException(booking.status, Status.CANCELLED.value)
        apply_transition(db, booking, Status.CANCELLED.value, principal.id, reason or "Cancelled by customer")

    logger.info(f"Booking {booking.id} cancelled by car owner {principal.id}")
    db.refresh(booking)
    return booking


def soft_delete_booking(db: Session, principal, booking_id: int) -> models.Booking:
    booking = get_live_booking(db, booking_id)
    if not authz.can_view_booking(principal, booking):
        raise ForbiddenException("Not authorized to delete this booking")

    with transaction(db):
        booking = get_live_booking(db, booking_id, for_update=True)
        booking.is_deleted = True
        booking.deleted_at = datetime.utcnow()
        booking.deleted_by_id = principal.id
        if booking.status == Status.COMPLETED.value:
            garage_stats.record_completed_booking_removed(db, booking.garage_id)

    logger.info(f"Booking {booking.id} soft-deleted by user {principal.id}")
    return booking


# --- ATTACHMENTS ---

def add_attachments(db: Session, principal, booking_id: int,
                    files: Iterable[Tuple[str, bytes]], storage) -> models.Booking:
    booking = get_live_booking(db, booking_id)
    if not authz.can_view_booking(principal, booking):
        raise ForbiddenException("Not authorized to upload attachments")

    files = list(files)
    if not files:
        raise ValidationException("No files uploaded")
    for filename, data in files:
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise ValidationException(
                f"File {filename} exceeds the {settings.MAX_UPLOAD_BYTES} byte limit"
            )

    references = [storage.save(data, filename, folder=f"bookings/{booking.id}") for filename, data in files]
    try:
        with transaction(db):
            # JSON columns only notice reassignment
            booking.attachments = list(booking.attachments or []) + references
    except Exception:
        for reference in references:
            storage.delete(reference)
        raise

    db.refresh(booking)
    return booking


def remove_attachment(db: Session, principal, booking_id: int, filename: str, storage) -> models.Booking:
    booking = get_live_booking(db, booking_id)
    if not authz.can_view_booking(principal, booking):
        raise ForbiddenException("Not authorized to delete attachments")

    current = list(booking.attachments or [])
    reference = next(
        (ref for ref in current if ref == filename or os.path.basename(ref) == filename),
        None
    )
    if reference is None:
        raise NotFoundException("Attachment not found")

    with transaction(db):
        booking.attachments = [ref for ref in current if ref != reference]

    # Orphaned files are tolerated; storage logs the failure
    storage.delete(reference)
    db.refresh(booking)
    return booking
