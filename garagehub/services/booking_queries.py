# garagehub/services/booking_queries.py
"""
Read side of bookings: role-scoped listing, timeline, calendar, statistics.
"""

import math
from collections import Counter, defaultdict
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from garagehub import authz, models, schemas
from garagehub.exceptions import ForbiddenException, ValidationException
from garagehub.services.bookings import get_live_booking

PERIODS = ("day", "week", "month", "year")


def _owned_garage_ids(db: Session, owner_id: int):
    return db.query(models.Garage.id).filter(models.Garage.owner_id == owner_id)


def scoped_query(db: Session, principal):
    """Live bookings visible to the principal: own, own garages', or all for admins."""
    query = db.query(models.Booking).filter(models.Booking.is_deleted == False)
    if principal.is_admin:
        return query
    if principal.role == models.UserRole.GARAGE_OWNER.value:
        return query.filter(models.Booking.garage_id.in_(_owned_garage_ids(db, principal.id)))
    return query.filter(models.Booking.car_owner_id == principal.id)


def status_counts(query) -> schemas.StatusCounts:
    rows = query.with_entities(models.Booking.status, func.count(models.Booking.id)) \
                .group_by(models.Booking.status).all()
    counts = {status: count for status, count in rows}
    return schemas.StatusCounts(
        total_bookings=sum(counts.values()),
        **{f"{status.value}_count": counts.get(status.value, 0) for status in models.BookingStatus}
    )


def list_bookings(
    db: Session,
    principal,
    status: Optional[str] = None,
    garage_id: Optional[int] = None,
    service_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 10,
) -> schemas.BookingList:
    query = scoped_query(db, principal)
    if garage_id is not None:
        query = query.filter(models.Booking.garage_id == garage_id)
    if service_id is not None:
        query = query.filter(models.Booking.service_id == service_id)
    if start_date is not None:
        query = query.filter(models.Booking.booking_date >= start_date)
    if end_date is not None:
        query = query.filter(models.Booking.booking_date <= end_date)

    # Counts ignore the status filter so the tabs always add up
    stats = status_counts(query)
    if status:
        query = query.filter(models.Booking.status == status)

    total = query.count()
    bookings = query.options(joinedload(models.Booking.status_history)) \
                    .order_by(models.Booking.booking_date.desc(), models.Booking.slot_start.desc()) \
                    .offset((page - 1) * limit).limit(limit).all()

    return schemas.BookingList(
        bookings=[schemas.BookingOut.model_validate(b) for b in bookings],
        stats=stats,
        pagination=schemas.Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit)),
    )


def get_booking(db: Session, principal, booking_id: int) -> models.Booking:
    booking = get_live_booking(db, booking_id)
    if not authz.can_view_booking(principal, booking):
        raise ForbiddenException("Not authorized to view this booking")
    return booking


def booking_timeline(db: Session, principal, booking_id: int) -> schemas.BookingTimeline:
    booking = get_booking(db, principal, booking_id)

    events = [schemas.TimelineEvent(
        event="Booking Created",
        status="created",
        timestamp=booking.created_at,
        description="Booking request submitted",
    )]
    for change in booking.status_history:
        events.append(schemas.TimelineEvent(
            event=f"Status changed to {change.status}",
            status=change.status,
            timestamp=change.changed_at,
            description=change.reason or f"Booking {change.status}",
            changed_by=change.changed_by_id,
        ))
    events.append(schemas.TimelineEvent(
        event="Current Status",
        status=booking.status,
        timestamp=booking.updated_at or booking.created_at,
        description=f"Booking is currently {booking.status}",
    ))
    # Stable sort keeps "Current Status" last on equal timestamps
    events.sort(key=lambda e: e.timestamp)

    return schemas.BookingTimeline(booking_id=booking.id, current_status=booking.status, timeline=events)


def booking_calendar(db: Session, principal, start_date: date, end_date: date,
                     garage_id: Optional[int] = None) -> schemas.BookingCalendar:
    if end_date < start_date:
        raise ValidationException("End date must not be before start date")

    query = scoped_query(db, principal).filter(
        models.Booking.booking_date >= start_date,
        models.Booking.booking_date <= end_date
    )
    if garage_id is not None:
        query = query.filter(models.Booking.garage_id == garage_id)

    bookings = query.order_by(models.Booking.booking_date, models.Booking.slot_start).all()
    grouped = defaultdict(list)
    for booking in bookings:
        grouped[booking.booking_date.isoformat()].append(schemas.CalendarEntry.model_validate(booking))

    return schemas.BookingCalendar(
        start_date=start_date,
        end_date=end_date,
        total_bookings=len(bookings),
        bookings=dict(grouped),
    )


def _bucket(day: date, period: str) -> str:
    if period == "day":
        return day.isoformat()
    if period == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if period == "month":
        return day.strftime("%Y-%m")
    return day.strftime("%Y")


def booking_statistics(db: Session, principal, period: str = "month",
                       garage_id: Optional[int] = None) -> schemas.BookingStatistics:
    if period not in PERIODS:
        raise ValidationException(f"Period must be one of: {', '.join(PERIODS)}")

    query = scoped_query(db, principal)
    if garage_id is not None:
        query = query.filter(models.Booking.garage_id == garage_id)

    overview = status_counts(query)

    by_date = defaultdict(Counter)
    for booking_date, status in query.with_entities(models.Booking.booking_date, models.Booking.status):
        bucket = by_date[_bucket(booking_date, period)]
        bucket["count"] += 1
        if status == models.BookingStatus.COMPLETED.value:
            bucket["completed_count"] += 1

    count_col = func.count(models.Booking.id)
    popular = query.join(models.Service, models.Booking.service_id == models.Service.id) \
        .with_entities(models.Service.id, models.Service.name, models.Service.category, count_col) \
        .group_by(models.Service.id, models.Service.name, models.Service.category) \
        .order_by(count_col.desc(), models.Service.id).limit(5).all()

    peak = query.with_entities(models.Booking.slot_start, count_col) \
        .group_by(models.Booking.slot_start) \
        .order_by(count_col.desc(), models.Booking.slot_start).limit(5).all()

    by_status = {
        status.value: getattr(overview, f"{status.value}_count")
        for status in models.BookingStatus
        if getattr(overview, f"{status.value}_count")
    }

    return schemas.BookingStatistics(
        period=period,
        overview=overview,
        by_status=by_status,
        by_date=[
            schemas.BucketCount(key=key, count=c["count"], completed_count=c["completed_count"])
            for key, c in sorted(by_date.items())
        ],
        popular_services=[
            schemas.PopularService(service_id=sid, service_name=name, category=category, count=count)
            for sid, name, category, count in popular
        ],
        peak_hours=[schemas.PeakHour(start=start, count=count) for start, count in peak],
    )
