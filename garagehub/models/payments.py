# Payments for garage creation and bookings

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON
from garagehub.database import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, enum.Enum):
    GARAGE_CREATION = "garage_creation"
    BOOKING = "booking"
    SUBSCRIPTION = "subscription"
    OTHER = "other"


class PaymentMethod(str, enum.Enum):
    CARD = "card"
    BANK = "bank"
    MOBILE = "mobile"
    CASH = "cash"


class GarageCreationStatus(str, enum.Enum):
    PENDING = "pending"
    USED = "used"
    EXPIRED = "expired"


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_type = Column(String(30), nullable=False, index=True)

    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    garage_id = Column(Integer, ForeignKey("garages.id", ondelete="SET NULL"), nullable=True, index=True)
    garage_creation_status = Column(String(20), nullable=True)

    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False, default="ETB")
    method = Column(String(20), nullable=False, default=PaymentMethod.CARD.value)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    transaction_id = Column(String(120), unique=True, nullable=True, index=True)

    provider_name = Column(String(50), nullable=False, default="Chapa")
    provider_reference = Column(String(120), nullable=True)
    checkout_url = Column(String, nullable=True)
    provider_response = Column(JSON, nullable=True)

    paid_at = Column(DateTime, nullable=True)
    refund_reason = Column(Text, nullable=True)
    refund_requested_at = Column(DateTime, nullable=True)
    refund_requested_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, default="")

    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="payments", foreign_keys=[user_id])
    booking = relationship("Booking", foreign_keys=[booking_id])
    garage = relationship("Garage", foreign_keys=[garage_id])

    def resource_owner_id(self):
        return self.user_id
