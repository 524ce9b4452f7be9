# garagehub/services/users.py

import logging
from collections import Counter
from datetime import date, datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from garagehub import models, schemas
from garagehub.database import transaction
from garagehub.exceptions import ConflictException, NotFoundException, ValidationException
from garagehub.security import hash_password, verify_password
from garagehub.services import bookings as booking_service, garage_stats, garages as garage_service

logger = logging.getLogger(__name__)


def register_user(db: Session, data: schemas.RegisterUserRequest) -> models.User:
    email = data.email.lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise ConflictException("Email already registered")

    with transaction(db):
        user = models.User(
            name=data.name,
            email=email,
            password=hash_password(data.password),
            phone=data.phone,
            role=data.role,
        )
        db.add(user)

    db.refresh(user)
    logger.info(f"Registered user {user.id} as {user.role}")
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[models.User]:
    user = db.query(models.User).filter(
        models.User.email == email.lower(),
        models.User.is_deleted == False
    ).first()
    if not user or not verify_password(password, user.password):
        return None
    return user


def get_live_user(db: Session, user_id: int) -> models.User:
    user = db.query(models.User).filter(
        models.User.id == user_id,
        models.User.is_deleted == False
    ).first()
    if not user:
        raise NotFoundException("User not found")
    return user


# --- ADMIN: ACCOUNT STATE ---

def soft_delete_user(db: Session, principal, user_id: int) -> schemas.DeactivationSummary:
    """
    Deactivates an account. Their garages are retired, their upcoming open
    bookings cancelled and their reviews hidden. Bookings stay on record.
    """
    if user_id == principal.id:
        raise ValidationException("Admins cannot delete their own account")
    user = get_live_user(db, user_id)

    with transaction(db):
        user.is_deleted = True
        user.deleted_at = datetime.utcnow()
        user.deleted_by_id = principal.id

        garages = db.query(models.Garage).filter(
            models.Garage.owner_id == user.id,
            models.Garage.is_deleted == False
        ).all()
        for garage in garages:
            garage_service.retire_garage(db, garage, principal.id)

        upcoming = db.query(models.Booking).filter(
            models.Booking.car_owner_id == user.id,
            models.Booking.booking_date >= date.today(),
            models.Booking.status.in_(garage_service.OPEN_STATUSES),
            models.Booking.is_deleted == False
        ).with_for_update().all()
        for booking in upcoming:
            booking_service.apply_transition(
                db, booking, models.BookingStatus.CANCELLED.value, principal.id, "Customer account removed"
            )

        reviews = db.query(models.Review).filter(
            models.Review.car_owner_id == user.id,
            models.Review.is_deleted == False
        ).all()
        for review in reviews:
            review.is_deleted = True
            review.deleted_at = datetime.utcnow()
        db.flush()
        for garage_id in {r.garage_id for r in reviews}:
            garage_stats.refresh_review_stats(db, garage_id)

    summary = schemas.DeactivationSummary(
        user_id=user.id, garages=len(garages), cancelled_bookings=len(upcoming), reviews=len(reviews)
    )
    logger.info(f"User {user.id} deactivated by admin {principal.id}: {summary.model_dump()}")
    return summary


def restore_user(db: Session, principal, user_id: int) -> models.User:
    """Reactivates the account only. Garages and reviews are restored one by one."""
    user = db.query(models.User).filter(
        models.User.id == user_id,
        models.User.is_deleted == True
    ).first()
    if not user:
        raise NotFoundException("Deleted user not found")

    with transaction(db):
        user.is_deleted = False
        user.deleted_at = None
        user.deleted_by_id = None

    logger.info(f"User {user.id} restored by admin {principal.id}")
    db.refresh(user)
    return user


def update_role(db: Session, principal, user_id: int, role: str) -> models.User:
    if user_id == principal.id:
        raise ValidationException("Admins cannot change their own role")
    user = get_live_user(db, user_id)
    role = models.UserRole(role).value

    if user.role == models.UserRole.GARAGE_OWNER.value and role != user.role:
        live_garage = db.query(models.Garage.id).filter(
            models.Garage.owner_id == user.id,
            models.Garage.is_deleted == False
        ).first()
        if live_garage:
            raise ConflictException("User still owns a live garage", details={"garage_id": live_garage.id})

    with transaction(db):
        user.role = role
        if role != models.UserRole.GARAGE_OWNER.value:
            user.can_create_garage = False

    logger.info(f"User {user.id} role set to {role} by admin {principal.id}")
    db.refresh(user)
    return user


def set_garage_creation(db: Session, principal, user_id: int, allowed: bool) -> models.User:
    """Grant or revoke the right to open a garage. A completed payment is still needed to use it."""
    user = get_live_user(db, user_id)
    if allowed and user.role != models.UserRole.GARAGE_OWNER.value:
        raise ValidationException("User is not a garage owner")

    with transaction(db):
        user.can_create_garage = allowed

    logger.info(f"Garage creation {'granted to' if allowed else 'revoked from'} user {user.id} by admin {principal.id}")
    db.refresh(user)
    return user


def purge_user(db: Session, principal, user_id: int) -> schemas.PurgeSummary:
    """
    Hard delete of a user and everything hanging off them. Garage counters of
    garages that lose bookings are reduced to match.
    """
    if user_id == principal.id:
        raise ValidationException("Admins cannot purge their own account")

    user = db.query(models.User).filter(models.User.id == user_id).first()
    if not user:
        raise NotFoundException("User not found")

    with transaction(db):
        garage_ids = [g.id for g in db.query(models.Garage.id).filter(models.Garage.owner_id == user.id)]

        booking_filter = models.Booking.car_owner_id == user.id
        review_filter = models.Review.car_owner_id == user.id
        if garage_ids:
            booking_filter = or_(booking_filter, models.Booking.garage_id.in_(garage_ids))
            review_filter = or_(review_filter, models.Review.garage_id.in_(garage_ids))

        bookings = db.query(models.Booking).filter(booking_filter).all()
        booking_ids = [b.id for b in bookings]

        # Other garages keep their counters in line with the rows that remain
        removed_total, removed_completed = Counter(), Counter()
        for booking in bookings:
            if booking.garage_id in garage_ids:
                continue
            removed_total[booking.garage_id] += 1
            if booking.status == models.BookingStatus.COMPLETED.value and not booking.is_deleted:
                removed_completed[booking.garage_id] += 1

        reviews = db.query(models.Review).filter(review_filter).all()
        touched_review_garages = {r.garage_id for r in reviews if r.garage_id not in garage_ids}
        for review in reviews:
            db.delete(review)

        payment_filter = models.Payment.user_id == user.id
        if booking_ids:
            # Payments of this user only; other users' payments just lose the link
            db.query(models.Payment).filter(
                models.Payment.booking_id.in_(booking_ids),
                models.Payment.user_id != user.id
            ).update({models.Payment.booking_id: None}, synchronize_session=False)
        if garage_ids:
            db.query(models.Payment).filter(
                models.Payment.garage_id.in_(garage_ids),
                models.Payment.user_id != user.id
            ).update({models.Payment.garage_id: None}, synchronize_session=False)
        payments = db.query(models.Payment).filter(payment_filter).all()
        for payment in payments:
            db.delete(payment)

        db.query(models.ReviewHelpfulVote).filter(
            models.ReviewHelpfulVote.user_id == user.id
        ).delete(synchronize_session=False)
        db.query(models.RateLimitCounter).filter(
            models.RateLimitCounter.key.like(f"%:{user.email}")
        ).delete(synchronize_session=False)

        for booking in bookings:
            db.delete(booking)

        services = db.query(models.Service).filter(models.Service.garage_id.in_(garage_ids)).all() if garage_ids else []
        for service in services:
            db.delete(service)
        db.flush()

        for garage_id in garage_ids:
            db.query(models.Garage).filter(models.Garage.id == garage_id).delete(synchronize_session=False)

        for garage_id in set(removed_total):
            garage_stats.record_bookings_purged(db, garage_id, removed_total[garage_id], removed_completed[garage_id])
        for garage_id in touched_review_garages:
            garage_stats.refresh_review_stats(db, garage_id)

        db.delete(user)

    summary = schemas.PurgeSummary(
        user_id=user_id,
        bookings=len(bookings),
        reviews=len(reviews),
        payments=len(payments),
        garages=len(garage_ids),
        services=len(services),
    )
    logger.info(f"Purged user {user_id} by admin {principal.id}: {summary.model_dump()}")
    return summary
