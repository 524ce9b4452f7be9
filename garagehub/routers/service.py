# garagehub/routers/service.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from garagehub import schemas, oauth2
from garagehub.database import get_db
from garagehub.services import catalog

router = APIRouter(
    prefix="/api/v1/services",
    tags=['Services']
)


@router.get("/{id}", response_model=schemas.ServiceOut)
def get_service(id: int, db: Session = Depends(get_db)):
    return catalog.get_live_service(db, id)


@router.put("/{id}", response_model=schemas.ServiceOut)
def update_service(
    id: int,
    service_data: schemas.ServiceUpdate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return catalog.update_service(db, principal, id, service_data)


@router.patch("/{id}/availability", response_model=schemas.ServiceOut)
def toggle_service_availability(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    return catalog.toggle_availability(db, principal, id)


@router.delete("/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_service(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_garage_side)
):
    """Blocked while pending or approved bookings from today onwards use the service."""
    catalog.delete_service(db, principal, id)
    return None


@router.put("/{id}/restore", response_model=schemas.ServiceOut)
def restore_service(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return catalog.restore_service(db, principal, id)
