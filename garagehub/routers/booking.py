# garagehub/routers/booking.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from garagehub import schemas, oauth2
from garagehub.database import get_db
from garagehub.services import availability, booking_queries, bookings as booking_service
from garagehub.utils.mailer import notify_booking_status
from garagehub.utils.storage import LocalFileStorage, get_storage

router = APIRouter(
    prefix="/api/v1/bookings",
    tags=['Bookings']
)

# =================================================================================
# 1. AVAILABILITY (public)
# =================================================================================
@router.post("/availability", response_model=schemas.AvailabilityResult)
def check_availability(
    query: schemas.AvailabilityRequest,
    db: Session = Depends(get_db)
):
    return availability.check_availability(
        db, query.garage_id, query.date, query.time_slot.start, query.time_slot.end,
        service_id=query.service_id
    )

# =================================================================================
# 2. CREATE & LIST
# =================================================================================
@router.post("/", status_code=status.HTTP_201_CREATED, response_model=schemas.BookingOut)
def create_booking(
    booking_data: schemas.BookingCreate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_car_owner)
):
    return booking_service.create_booking(db, principal, booking_data)


@router.get("/", response_model=schemas.BookingList)
def list_bookings(
    status: Optional[str] = None,
    garage_id: Optional[int] = None,
    service_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    """
    Role scoped:
    - Car owners: their own bookings.
    - Garage owners: bookings at their garages.
    - Admins: everything.
    """
    return booking_queries.list_bookings(
        db, principal, status=status, garage_id=garage_id, service_id=service_id,
        start_date=start_date, end_date=end_date, page=page, limit=limit
    )


@router.get("/calendar", response_model=schemas.BookingCalendar)
def booking_calendar(
    start_date: date,
    end_date: date,
    garage_id: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return booking_queries.booking_calendar(db, principal, start_date, end_date, garage_id)


@router.get("/stats/analytics", response_model=schemas.BookingStatistics)
def booking_statistics(
    period: str = "month",
    garage_id: Optional[int] = None,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return booking_queries.booking_statistics(db, principal, period, garage_id)

# =================================================================================
# 3. SINGLE BOOKING
# =================================================================================
@router.get("/{id}", response_model=schemas.BookingOut)
def get_booking(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return booking_queries.get_booking(db, principal, id)


@router.get("/{id}/timeline", response_model=schemas.BookingTimeline)
def booking_timeline(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return booking_queries.booking_timeline(db, principal, id)


@router.patch("/{id}/status", response_model=schemas.BookingOut)
def update_booking_status(
    id: int,
    change: schemas.StatusChange,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    booking, changed = booking_service.transition_booking(db, principal, id, change.status.value, change.reason)
    if changed:
        notify_booking_status(background_tasks, booking)
    return booking


@router.patch("/{id}/cancel", response_model=schemas.BookingOut)
def cancel_booking(
    id: int,
    cancel_data: Optional[schemas.CancelRequest] = None,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_car_owner)
):
    reason = cancel_data.reason if cancel_data else None
    return booking_service.cancel_booking(db, principal, id, reason)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    booking_service.soft_delete_booking(db, principal, id)
    return None

# =================================================================================
# 4. ATTACHMENTS
# =================================================================================
@router.post("/{id}/attachments", response_model=schemas.AttachmentList)
def upload_attachments(
    id: int,
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    payload = [(f.filename, f.file.read()) for f in files]
    booking = booking_service.add_attachments(db, principal, id, payload, storage)
    return {"attachments": booking.attachments}


@router.delete("/{id}/attachments/{filename}", response_model=schemas.AttachmentList)
def delete_attachment(
    id: int,
    filename: str,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal),
    storage: LocalFileStorage = Depends(get_storage)
):
    booking = booking_service.remove_attachment(db, principal, id, filename, storage)
    return {"attachments": booking.attachments}
