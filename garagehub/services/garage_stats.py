# garagehub/services/garage_stats.py
"""
Garage aggregate counters.

Counters are moved with SQL-side arithmetic inside the caller's transaction,
so concurrent requests never overwrite each other's increments. None of these
functions commit.
"""

import logging

from sqlalchemy import case, func
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from garagehub import models

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ["total_bookings", "completed_bookings", "average_rating", "total_reviews"]


def _apply(db: Session, garage_id: int, values: dict) -> None:
    db.query(models.Garage).filter(models.Garage.id == garage_id).update(
        values, synchronize_session=False
    )
    # The UPDATE bypassed the identity map; drop stale counters from any loaded garage
    loaded = db.identity_map.get(identity_key(models.Garage, garage_id))
    if loaded is not None:
        db.expire(loaded, COUNTER_FIELDS)


def record_booking_created(db: Session, garage_id: int) -> None:
    _apply(db, garage_id, {models.Garage.total_bookings: models.Garage.total_bookings + 1})


def record_booking_completed(db: Session, garage_id: int) -> None:
    _apply(db, garage_id, {models.Garage.completed_bookings: models.Garage.completed_bookings + 1})


def record_completed_booking_removed(db: Session, garage_id: int) -> None:
    """A completed booking left the books (soft delete); never go below zero."""
    completed = models.Garage.completed_bookings
    _apply(db, garage_id, {completed: case((completed > 0, completed - 1), else_=0)})


def record_bookings_purged(db: Session, garage_id: int, total: int, completed: int) -> None:
    """Physically removed bookings (hard purge) no longer count at all."""
    total_col = models.Garage.total_bookings
    completed_col = models.Garage.completed_bookings
    _apply(db, garage_id, {
        total_col: case((total_col > total, total_col - total), else_=0),
        completed_col: case((completed_col > completed, completed_col - completed), else_=0),
    })


def refresh_review_stats(db: Session, garage_id: int) -> None:
    """Recompute rating average and review count from the live reviews."""
    db.flush()
    count, average = db.query(
        func.count(models.Review.id), func.avg(models.Review.rating)
    ).filter(
        models.Review.garage_id == garage_id,
        models.Review.is_deleted == False
    ).one()
    _apply(db, garage_id, {
        models.Garage.total_reviews: count or 0,
        models.Garage.average_rating: round(float(average), 1) if average is not None else 0.0,
    })


def reconcile(db: Session, garage_id: int) -> dict:
    """
    Wholesale recomputation of the booking counters.

    total_bookings counts every booking row ever created for the garage
    (soft-deleted ones included); completed_bookings counts live completed ones.
    Only used for repair jobs and tests.
    """
    db.flush()
    total = db.query(func.count(models.Booking.id)).filter(
        models.Booking.garage_id == garage_id
    ).scalar() or 0
    completed = db.query(func.count(models.Booking.id)).filter(
        models.Booking.garage_id == garage_id,
        models.Booking.status == models.BookingStatus.COMPLETED.value,
        models.Booking.is_deleted == False
    ).scalar() or 0

    _apply(db, garage_id, {
        models.Garage.total_bookings: total,
        models.Garage.completed_bookings: completed,
    })
    refresh_review_stats(db, garage_id)
    logger.info(f"Reconciled stats for garage {garage_id}: total={total} completed={completed}")
    return {"total_bookings": total, "completed_bookings": completed}
