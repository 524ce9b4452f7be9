# Garage listings and their service catalog

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import relationship, validates
from sqlalchemy.types import JSON
from garagehub.database import Base

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_BUSINESS_HOURS = {
    "monday": {"open": "09:00", "close": "18:00", "closed": False},
    "tuesday": {"open": "09:00", "close": "18:00", "closed": False},
    "wednesday": {"open": "09:00", "close": "18:00", "closed": False},
    "thursday": {"open": "09:00", "close": "18:00", "closed": False},
    "friday": {"open": "09:00", "close": "18:00", "closed": False},
    "saturday": {"open": "09:00", "close": "15:00", "closed": False},
    "sunday": {"open": None, "close": None, "closed": True},
}


class GarageStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class ServiceCategory(str, enum.Enum):
    MAINTENANCE = "maintenance"
    REPAIR = "repair"
    INSPECTION = "inspection"
    CUSTOMIZATION = "customization"
    OTHER = "other"


class Garage(Base):
    __tablename__ = "garages"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, default="")

    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)
    address = Column(JSON, nullable=False, default=dict)
    contact_info = Column(JSON, nullable=False, default=dict)
    business_hours = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_BUSINESS_HOURS))
    images = Column(JSON, default=list)
    documents = Column(JSON, default=list)

    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=GarageStatus.PENDING.value, index=True)
    is_active = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False, index=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    verification_notes = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    # Aggregates maintained by services.garage_stats
    total_bookings = Column(Integer, nullable=False, default=0)
    completed_bookings = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)

    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="garages", foreign_keys=[owner_id])
    services = relationship("Service", back_populates="garage")

    @validates("status")
    def _sync_active_flag(self, key, value):
        self.is_active = value == GarageStatus.ACTIVE.value
        return value

    @property
    def stats(self) -> dict:
        return {
            "total_bookings": self.total_bookings or 0,
            "completed_bookings": self.completed_bookings or 0,
            "average_rating": self.average_rating or 0.0,
            "total_reviews": self.total_reviews or 0,
        }

    def hours_for(self, weekday: str):
        return (self.business_hours or {}).get(weekday)

    def resource_owner_id(self):
        return self.owner_id


# One live garage per owner
Index(
    "uq_garage_live_owner",
    Garage.owner_id,
    unique=True,
    postgresql_where=text("NOT is_deleted"),
    sqlite_where=text("NOT is_deleted"),
)


class Service(Base):
    __tablename__ = "services"
    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(Integer, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text, default="")
    price = Column(Float, nullable=False)
    duration = Column(Integer, nullable=False, default=60)
    category = Column(String(30), nullable=False, default=ServiceCategory.MAINTENANCE.value, index=True)
    images = Column(JSON, default=list)

    is_available = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    garage = relationship("Garage", back_populates="services")

    def resource_owner_id(self):
        return self.garage.owner_id if self.garage else None


# Service names are unique per garage, case-insensitive, among live services
Index(
    "uq_service_garage_name_live",
    Service.garage_id,
    func.lower(Service.name),
    unique=True,
    postgresql_where=text("NOT is_deleted"),
    sqlite_where=text("NOT is_deleted"),
)
