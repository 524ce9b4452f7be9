# Bookings and their append-only status log

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON
from garagehub.database import Base


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


# Statuses that release the slot for someone else
RELEASED_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.REJECTED.value)


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True, index=True)

    car_owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    garage_id = Column(Integer, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False, index=True)

    booking_date = Column(Date, nullable=False, index=True)
    slot_start = Column(String(5), nullable=False)
    slot_end = Column(String(5), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    vehicle_info = Column(JSON, nullable=False, default=dict)
    notes = Column(Text, default="")
    attachments = Column(JSON, nullable=False, default=list)

    is_paid = Column(Boolean, nullable=False, default=False)
    payment_id = Column(Integer, nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    car_owner = relationship("User", foreign_keys=[car_owner_id])
    garage = relationship("Garage")
    service = relationship("Service")
    payment = relationship(
        "Payment",
        primaryjoin="foreign(Booking.payment_id) == Payment.id",
        viewonly=True,
    )
    status_history = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        order_by="BookingStatusHistory.id",
        cascade="all, delete-orphan",
    )
    review = relationship(
        "Review",
        primaryjoin="and_(Booking.id == foreign(Review.booking_id), Review.is_deleted == False)",
        viewonly=True,
        uselist=False,
    )

    @property
    def time_slot(self) -> dict:
        return {"start": self.slot_start, "end": self.slot_end}

    def resource_owner_id(self):
        return self.car_owner_id

    def garage_owner_id(self):
        return self.garage.owner_id if self.garage else None


# First committer wins: one live booking per (garage, date, start, end)
Index(
    "uq_booking_live_slot",
    Booking.garage_id,
    Booking.booking_date,
    Booking.slot_start,
    Booking.slot_end,
    unique=True,
    postgresql_where=text("status NOT IN ('cancelled', 'rejected') AND NOT is_deleted"),
    sqlite_where=text("status NOT IN ('cancelled', 'rejected') AND NOT is_deleted"),
)


class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"
    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    # NULL when the change was triggered by the system (payment settlement)
    changed_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reason = Column(Text, nullable=False)
    changed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    booking = relationship("Booking", back_populates="status_history")
