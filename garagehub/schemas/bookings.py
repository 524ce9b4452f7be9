# Bookings, availability and reporting

from typing import Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator

from garagehub.models.bookings import BookingStatus
from .garages import HHMM_PATTERN


class TimeSlot(BaseModel):
    start: str = Field(..., pattern=HHMM_PATTERN)
    end: str = Field(..., pattern=HHMM_PATTERN)

    @model_validator(mode="after")
    def check_order(self):
        if self.end <= self.start:
            raise ValueError("time slot end must be after start")
        return self


class VehicleInfo(BaseModel):
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: Optional[int] = Field(None, ge=1900, le=2100)
    license_plate: str = Field(..., min_length=1)


class AvailabilityRequest(BaseModel):
    garage_id: int
    service_id: Optional[int] = None
    date: date
    time_slot: TimeSlot


class AvailabilityResult(BaseModel):
    available: bool
    reason: Optional[str] = None
    business_hours: Optional[dict] = None


class BookingCreate(BaseModel):
    garage_id: int
    service_id: int
    booking_date: date
    time_slot: TimeSlot
    vehicle_info: VehicleInfo
    notes: str = ""


class StatusChange(BaseModel):
    status: BookingStatus
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class StatusHistoryOut(BaseModel):
    status: str
    changed_by_id: Optional[int] = None
    reason: str
    changed_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingOut(BaseModel):
    id: int
    car_owner_id: int
    garage_id: int
    service_id: int
    booking_date: date
    time_slot: TimeSlot
    status: str
    vehicle_info: dict
    notes: Optional[str] = ""
    attachments: List[str] = []
    is_paid: bool
    payment_id: Optional[int] = None
    status_history: List[StatusHistoryOut] = []
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


class StatusCounts(BaseModel):
    total_bookings: int = 0
    pending_count: int = 0
    approved_count: int = 0
    in_progress_count: int = 0
    completed_count: int = 0
    cancelled_count: int = 0
    rejected_count: int = 0


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class BookingList(BaseModel):
    bookings: List[BookingOut]
    stats: StatusCounts
    pagination: Pagination


class TimelineEvent(BaseModel):
    event: str
    status: str
    timestamp: datetime
    description: str
    changed_by: Optional[int] = None


class BookingTimeline(BaseModel):
    booking_id: int
    current_status: str
    timeline: List[TimelineEvent]


class CalendarEntry(BaseModel):
    id: int
    booking_date: date
    time_slot: TimeSlot
    status: str
    vehicle_info: dict
    car_owner_id: int
    service_id: int
    model_config = ConfigDict(from_attributes=True)


class BookingCalendar(BaseModel):
    start_date: date
    end_date: date
    total_bookings: int
    bookings: Dict[str, List[CalendarEntry]]


class BucketCount(BaseModel):
    key: str
    count: int
    completed_count: int = 0


class PopularService(BaseModel):
    service_id: int
    service_name: str
    category: str
    count: int


class PeakHour(BaseModel):
    start: str
    count: int


class BookingStatistics(BaseModel):
    period: str
    overview: StatusCounts
    by_status: Dict[str, int]
    by_date: List[BucketCount]
    popular_services: List[PopularService]
    peak_hours: List[PeakHour]


class AttachmentList(BaseModel):
    attachments: List[str]
