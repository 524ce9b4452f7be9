# garagehub/services/reviews.py
"""
Review gate and the review surface around it.

A review needs an approved or completed booking owned by the caller, and at
most one live review exists per booking.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garagehub import authz, models, schemas
from garagehub.config import settings
from garagehub.database import is_unique_violation, transaction
from garagehub.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from garagehub.services import garage_stats

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (models.BookingStatus.COMPLETED.value, models.BookingStatus.APPROVED.value)
DUPLICATE_REVIEW = "Review already exists for this booking"
LIVE_BOOKING_INDEX = "uq_review_live_booking"


def get_live_review(db: Session, review_id: int) -> models.Review:
    review = db.query(models.Review).filter(
        models.Review.id == review_id,
        models.Review.is_deleted == False
    ).first()
    if not review:
        raise NotFoundException("Review not found")
    return review


def _ensure_garage_side(principal, review: models.Review, message: str) -> None:
    if not (principal.is_admin or review.garage.owner_id == principal.id):
        raise ForbiddenException(message)


def create_review(db: Session, principal, data: schemas.ReviewCreate) -> models.Review:
    booking = db.query(models.Booking).filter(
        models.Booking.id == data.booking_id,
        models.Booking.is_deleted == False
    ).first()
    if not booking:
        raise NotFoundException("Booking not found")
    if booking.car_owner_id != principal.id:
        raise ForbiddenException("Not authorized to review this booking")
    if booking.status not in REVIEWABLE_STATUSES:
        raise ValidationException(
            "Can only review completed or approved bookings",
            code="InvalidState",
            details={"status": booking.status},
        )
    if booking.review is not None:
        raise ConflictException(DUPLICATE_REVIEW)
    if booking.garage_id != data.garage_id:
        raise ValidationException("Garage does not match the booking")

    try:
        with transaction(db):
            review = models.Review(
                car_owner_id=principal.id,
                garage_id=booking.garage_id,
                booking_id=booking.id,
                rating=data.rating,
                title=data.title,
                comment=data.comment,
                categories=data.categories.model_dump(exclude_none=True) if data.categories else None,
                images=[],
            )
            db.add(review)
            db.flush()
            garage_stats.refresh_review_stats(db, booking.garage_id)
    except IntegrityError as e:
        if not is_unique_violation(e, models.Review.__table__, LIVE_BOOKING_INDEX):
            raise
        raise ConflictException(DUPLICATE_REVIEW) from e

    db.refresh(review)
    logger.info(f"Review {review.id} created for booking {booking.id}")
    return review


def update_review(db: Session, principal, review_id: int, data: schemas.ReviewUpdate) -> models.Review:
    review = get_live_review(db, review_id)
    authz.ensure_owner_or_admin(principal, review, "Not authorized to update this review")

    window = timedelta(days=settings.REVIEW_EDIT_WINDOW_DAYS)
    if not principal.is_admin and review.created_at < datetime.utcnow() - window:
        raise ValidationException(
            f"Reviews can only be edited within {settings.REVIEW_EDIT_WINDOW_DAYS} days of creation"
        )

    changes = data.model_dump(exclude_unset=True)
    if "categories" in changes:
        changes["categories"] = data.categories.model_dump(exclude_none=True) if data.categories else None

    with transaction(db):
        for key, value in changes.items():
            setattr(review, key, value)
        if "rating" in changes:
            db.flush()
            garage_stats.refresh_review_stats(db, review.garage_id)

    db.refresh(review)
    return review


def add_response(db: Session, principal, review_id: int, comment: str) -> models.Review:
    review = get_live_review(db, review_id)
    _ensure_garage_side(principal, review, "Not authorized to respond to this review")
    if review.response_comment:
        raise ConflictException("A response already exists for this review")

    with transaction(db):
        review.response_comment = comment
        review.responded_at = datetime.utcnow()
        review.responded_by_id = principal.id

    db.refresh(review)
    return review


def update_response(db: Session, principal, review_id: int, comment: str) -> models.Review:
    review = get_live_review(db, review_id)
    _ensure_garage_side(principal, review, "Not authorized to update this response")
    if not review.response_comment:
        raise NotFoundException("No response exists for this review")

    with transaction(db):
        review.response_comment = comment
        review.responded_at = datetime.utcnow()
        review.responded_by_id = principal.id

    db.refresh(review)
    return review


def delete_response(db: Session, principal, review_id: int) -> models.Review:
    review = get_live_review(db, review_id)
    _ensure_garage_side(principal, review, "Not authorized to delete this response")
    if not review.response_comment:
        raise NotFoundException("No response exists for this review")

    with transaction(db):
        review.response_comment = None
        review.responded_at = None
        review.responded_by_id = None

    db.refresh(review)
    return review


def toggle_helpful(db: Session, principal, review_id: int) -> schemas.HelpfulResult:
    review = get_live_review(db, review_id)
    vote = db.query(models.ReviewHelpfulVote).filter(
        models.ReviewHelpfulVote.review_id == review.id,
        models.ReviewHelpfulVote.user_id == principal.id
    ).first()

    with transaction(db):
        if vote:
            db.delete(vote)
            voted = False
        else:
            db.add(models.ReviewHelpfulVote(review_id=review.id, user_id=principal.id))
            voted = True

    db.refresh(review)
    return schemas.HelpfulResult(helpful_count=review.helpful_count, user_voted=voted)


def toggle_verified(db: Session, review_id: int) -> models.Review:
    """Admin moderation flag."""
    review = get_live_review(db, review_id)
    with transaction(db):
        review.is_verified = not review.is_verified
    db.refresh(review)
    return review


def soft_delete_review(db: Session, principal, review_id: int) -> models.Review:
    review = db.query(models.Review).filter(models.Review.id == review_id).first()
    if not review:
        raise NotFoundException("Review not found")
    authz.ensure_owner_or_admin(principal, review, "Not authorized to delete this review")
    if review.is_deleted:
        raise ConflictException("Review already deleted")

    with transaction(db):
        review.is_deleted = True
        review.deleted_at = datetime.utcnow()
        db.flush()
        garage_stats.refresh_review_stats(db, review.garage_id)

    logger.info(f"Review {review.id} soft-deleted by user {principal.id}")
    return review


def restore_review(db: Session, principal, review_id: int) -> models.Review:
    review = db.query(models.Review).filter(
        models.Review.id == review_id,
        models.Review.is_deleted == True
    ).first()
    if not review:
        raise NotFoundException("Deleted review not found")
    if review.booking is None or review.booking.is_deleted:
        raise ValidationException("The reviewed booking no longer exists")

    # The customer may have written a new review after this one was removed
    newer = db.query(models.Review.id).filter(
        models.Review.booking_id == review.booking_id,
        models.Review.is_deleted == False
    ).first()
    if newer:
        raise ConflictException(DUPLICATE_REVIEW)

    try:
        with transaction(db):
            review.is_deleted = False
            review.deleted_at = None
            db.flush()
            garage_stats.refresh_review_stats(db, review.garage_id)
    except IntegrityError as e:
        if not is_unique_violation(e, models.Review.__table__, LIVE_BOOKING_INDEX):
            raise
        raise ConflictException(DUPLICATE_REVIEW) from e

    logger.info(f"Review {review.id} restored by admin {principal.id}")
    db.refresh(review)
    return review


def list_garage_reviews(db: Session, garage_id: int, min_rating: Optional[int] = None,
                        limit: int = 20, skip: int = 0) -> schemas.ReviewList:
    query = db.query(models.Review).filter(
        models.Review.garage_id == garage_id,
        models.Review.is_deleted == False
    )
    if min_rating:
        query = query.filter(models.Review.rating >= min_rating)
    total = query.count()
    items = query.order_by(models.Review.created_at.desc(), models.Review.id.desc()).offset(skip).limit(limit).all()
    return schemas.ReviewList(total_count=total, items=[schemas.ReviewOut.model_validate(r) for r in items])


def garage_review_summary(db: Session, garage_id: int) -> schemas.ReviewSummary:
    garage = db.query(models.Garage).filter(
        models.Garage.id == garage_id,
        models.Garage.is_deleted == False
    ).first()
    if not garage:
        raise NotFoundException("Garage not found")

    reviews = db.query(models.Review).filter(
        models.Review.garage_id == garage_id,
        models.Review.is_deleted == False
    ).all()

    total = len(reviews)
    average = sum(r.rating for r in reviews) / total if total else 0

    category_averages = {}
    for category in models.REVIEW_CATEGORIES:
        scores = [r.categories[category] for r in reviews if r.categories and r.categories.get(category)]
        category_averages[category] = round(sum(scores) / len(scores), 1) if scores else 0.0

    distribution = Counter(r.rating for r in reviews)
    responded = sum(1 for r in reviews if r.response_comment)

    return schemas.ReviewSummary(
        garage_id=garage_id,
        total_reviews=total,
        average_rating=round(average, 1),
        category_averages=category_averages,
        rating_distribution={rating: distribution.get(rating, 0) for rating in range(1, 6)},
        response_rate=round(responded / total * 100) if total else 0,
    )
