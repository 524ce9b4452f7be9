# garagehub/routers/garage.py

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from garagehub import models, schemas, oauth2
from garagehub.database import get_db
from garagehub.services import catalog, garage_stats, garages as garage_service, reviews as review_service

router = APIRouter(
    prefix="/api/v1/garages",
    tags=['Garages']
)


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=schemas.GarageOut)
def create_garage(
    garage_data: schemas.GarageCreate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_owner)
):
    """Requires a completed garage-creation payment. The garage starts pending until an admin verifies it."""
    user = db.query(models.User).filter(models.User.id == principal.id).first()
    return garage_service.create_garage(db, user, garage_data)


@router.get("/", response_model=List[schemas.GarageOut])
def list_garages(
    search: Optional[str] = None,
    min_rating: Optional[float] = None,
    is_verified: Optional[bool] = None,
    status: Optional[str] = None,
    limit: int = 20,
    skip: int = 0,
    db: Session = Depends(get_db),
    principal: Optional[oauth2.Principal] = Depends(oauth2.get_optional_principal)
):
    return garage_service.list_garages(
        db, principal, search=search, min_rating=min_rating, is_verified=is_verified,
        status=status, limit=limit, skip=skip
    )


@router.get("/{id}", response_model=schemas.GarageOut)
def get_garage(
    id: int,
    db: Session = Depends(get_db),
    principal: Optional[oauth2.Principal] = Depends(oauth2.get_optional_principal)
):
    return garage_service.get_garage(db, id, principal)


@router.put("/{id}", response_model=schemas.GarageOut)
def update_garage(
    id: int,
    garage_data: schemas.GarageUpdate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return garage_service.update_garage(db, principal, id, garage_data)


@router.patch("/{id}/verify", response_model=schemas.GarageOut)
def verify_garage(
    id: int,
    verify_data: schemas.GarageVerify,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return garage_service.verify_garage(db, principal, id, verify_data)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_garage(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    garage_service.soft_delete_garage(db, principal, id)
    return None


@router.put("/{id}/restore", response_model=schemas.GarageOut)
def restore_garage(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return garage_service.restore_garage(db, principal, id)


@router.post("/{id}/stats/reconcile", response_model=schemas.GarageStats)
def reconcile_stats(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    garage = garage_service.get_live_garage(db, id)
    garage_stats.reconcile(db, garage.id)
    db.commit()
    db.refresh(garage)
    return garage.stats


# --- SERVICE CATALOG ---

@router.get("/{id}/services", response_model=schemas.ServiceList)
def list_garage_services(
    id: int,
    category: Optional[str] = None,
    available_only: bool = False,
    db: Session = Depends(get_db)
):
    return catalog.list_services(db, id, category=category, available_only=available_only)


@router.post("/{id}/services", status_code=status.HTTP_201_CREATED, response_model=schemas.ServiceOut)
def create_garage_service(
    id: int,
    service_data: schemas.ServiceCreate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return catalog.create_service(db, principal, id, service_data)


# --- REVIEWS ---

@router.get("/{id}/reviews", response_model=schemas.ReviewList)
def list_garage_reviews(
    id: int,
    min_rating: Optional[int] = None,
    limit: int = 20,
    skip: int = 0,
    db: Session = Depends(get_db)
):
    return review_service.list_garage_reviews(db, id, min_rating=min_rating, limit=limit, skip=skip)


@router.get("/{id}/reviews/summary", response_model=schemas.ReviewSummary)
def garage_review_summary(id: int, db: Session = Depends(get_db)):
    return review_service.garage_review_summary(db, id)
