# User accounts and the shared rate-limit counter

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from garagehub.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    CAR_OWNER = "car_owner"
    GARAGE_OWNER = "garage_owner"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(250), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.CAR_OWNER.value, index=True)
    phone = Column(String(32), nullable=True)
    avatar = Column(String, nullable=True)

    can_create_garage = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    garages = relationship("Garage", back_populates="owner", foreign_keys="Garage.owner_id", passive_deletes=True)
    payments = relationship("Payment", back_populates="user", foreign_keys="Payment.user_id", passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def resource_owner_id(self):
        return self.id


class RateLimitCounter(Base):
    """Fixed-window attempt counter keyed by client identity."""
    __tablename__ = "rate_limit_counters"
    key = Column(String(255), primary_key=True)
    window_start = Column(DateTime, primary_key=True)
    count = Column(Integer, nullable=False, default=0)
