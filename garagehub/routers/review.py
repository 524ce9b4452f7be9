# garagehub/routers/review.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from garagehub import schemas, oauth2
from garagehub.database import get_db
from garagehub.services import reviews as review_service

router = APIRouter(
    prefix="/api/v1/reviews",
    tags=['Reviews']
)


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=schemas.ReviewOut)
def create_review(
    review_data: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_car_owner)
):
    """Only for the caller's approved or completed bookings, one per booking."""
    return review_service.create_review(db, principal, review_data)


@router.get("/{id}", response_model=schemas.ReviewOut)
def get_review(id: int, db: Session = Depends(get_db)):
    return review_service.get_live_review(db, id)


@router.put("/{id}", response_model=schemas.ReviewOut)
def update_review(
    id: int,
    review_data: schemas.ReviewUpdate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return review_service.update_review(db, principal, id, review_data)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    review_service.soft_delete_review(db, principal, id)
    return None


# --- GARAGE RESPONSE ---

@router.post("/{id}/response", response_model=schemas.ReviewOut)
def add_response(
    id: int,
    response_data: schemas.ResponseIn,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return review_service.add_response(db, principal, id, response_data.comment)


@router.put("/{id}/response", response_model=schemas.ReviewOut)
def update_response(
    id: int,
    response_data: schemas.ResponseIn,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return review_service.update_response(db, principal, id, response_data.comment)


@router.delete("/{id}/response", response_model=schemas.ReviewOut)
def delete_response(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return review_service.delete_response(db, principal, id)


# --- VOTES & MODERATION ---

@router.post("/{id}/helpful", response_model=schemas.HelpfulResult)
def mark_helpful(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return review_service.toggle_helpful(db, principal, id)


@router.patch("/{id}/verify", response_model=schemas.ReviewOut)
def verify_review(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return review_service.toggle_verified(db, id)


@router.put("/{id}/restore", response_model=schemas.ReviewOut)
def restore_review(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return review_service.restore_review(db, principal, id)
