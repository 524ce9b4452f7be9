# garagehub/services/availability.py
"""
Slot availability.

The checks short-circuit in a fixed order and never write. Booking creation
runs the same check inside its own transaction.
"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from garagehub import models, schemas
from garagehub.exceptions import NotFoundException

CLOSED_REASON = "Garage is closed this day"
OUTSIDE_HOURS_REASON = "Time slot is outside business hours"
SLOT_TAKEN_REASON = "Time slot already booked"


def to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def weekday_name(day: date) -> str:
    return models.WEEKDAYS[day.weekday()]


def find_slot_holder(db: Session, garage_id: int, booking_date: date, start: str, end: str,
                     exclude_id: Optional[int] = None):
    """The live booking holding exactly this slot, if any."""
    query = db.query(models.Booking).filter(
        models.Booking.garage_id == garage_id,
        models.Booking.booking_date == booking_date,
        models.Booking.slot_start == start,
        models.Booking.slot_end == end,
        models.Booking.status.notin_(models.RELEASED_STATUSES),
        models.Booking.is_deleted == False
    )
    if exclude_id is not None:
        query = query.filter(models.Booking.id != exclude_id)
    return query.first()


def check_availability(
    db: Session,
    garage_id: int,
    booking_date: date,
    start: str,
    end: str,
    service_id: Optional[int] = None,
) -> schemas.AvailabilityResult:
    garage = db.query(models.Garage).filter(
        models.Garage.id == garage_id,
        models.Garage.is_deleted == False
    ).first()
    if not garage:
        raise NotFoundException("Garage not found")

    hours = garage.hours_for(weekday_name(booking_date))
    if not hours or hours.get("closed") or not hours.get("open") or not hours.get("close"):
        return schemas.AvailabilityResult(available=False, reason=CLOSED_REASON)

    # Zero-padded HH:MM compares correctly as minutes
    if to_minutes(start) < to_minutes(hours["open"]) or to_minutes(end) > to_minutes(hours["close"]):
        return schemas.AvailabilityResult(
            available=False, reason=OUTSIDE_HOURS_REASON, business_hours=hours
        )

    if find_slot_holder(db, garage.id, booking_date, start, end):
        return schemas.AvailabilityResult(available=False, reason=SLOT_TAKEN_REASON)

    if service_id is not None:
        service = db.query(models.Service).filter(
            models.Service.id == service_id,
            models.Service.garage_id == garage.id,
            models.Service.is_deleted == False
        ).first()
        if not service:
            raise NotFoundException("Service not found")

        slot_minutes = to_minutes(end) - to_minutes(start)
        if slot_minutes < service.duration:
            return schemas.AvailabilityResult(
                available=False,
                reason=(
                    f"Time slot duration ({slot_minutes}min) is less than "
                    f"service duration ({service.duration}min)"
                ),
            )

    return schemas.AvailabilityResult(available=True)
