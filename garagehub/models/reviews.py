# Reviews, garage responses and helpful votes

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import relationship
from sqlalchemy.types import JSON
from garagehub.database import Base

REVIEW_CATEGORIES = ("service_quality", "price_fairness", "timeliness", "cleanliness", "customer_service")


class Review(Base):
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True, index=True)
    car_owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    garage_id = Column(Integer, ForeignKey("garages.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)

    rating = Column(Integer, nullable=False, index=True)
    title = Column(String(100), nullable=False)
    comment = Column(String(500), nullable=False)
    categories = Column(JSON, nullable=True)
    images = Column(JSON, default=list)

    response_comment = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    responded_by_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_verified = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    car_owner = relationship("User", foreign_keys=[car_owner_id])
    garage = relationship("Garage")
    booking = relationship("Booking", foreign_keys=[booking_id])
    helpful_votes = relationship("ReviewHelpfulVote", back_populates="review", cascade="all, delete-orphan")

    @property
    def response(self):
        if not self.response_comment:
            return None
        return {
            "comment": self.response_comment,
            "responded_at": self.responded_at,
            "responded_by": self.responded_by_id,
        }

    @property
    def helpful_count(self) -> int:
        return len(self.helpful_votes)

    def resource_owner_id(self):
        return self.car_owner_id


# One live review per booking
Index(
    "uq_review_live_booking",
    Review.booking_id,
    unique=True,
    postgresql_where=text("NOT is_deleted"),
    sqlite_where=text("NOT is_deleted"),
)


class ReviewHelpfulVote(Base):
    __tablename__ = "review_helpful_votes"
    id = Column(Integer, primary_key=True)
    review_id = Column(Integer, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    review = relationship("Review", back_populates="helpful_votes")

    __table_args__ = (UniqueConstraint("review_id", "user_id", name="uq_helpful_vote"),)
