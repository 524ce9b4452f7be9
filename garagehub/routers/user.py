# garagehub/routers/user.py

from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from garagehub import models, schemas, oauth2
from garagehub.database import get_db
from garagehub.exceptions import NotFoundException
from garagehub.services import users as user_service

router = APIRouter(
    prefix="/api/v1/users",
    tags=['Users (Admin)']
)


@router.get("/", response_model=List[schemas.UserOut])
def list_users(
    role: Optional[str] = None,
    deleted: bool = False,
    limit: int = 100,
    skip: int = 0,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    query = db.query(models.User).filter(models.User.is_deleted == deleted)
    if role:
        query = query.filter(models.User.role == role)
    return query.order_by(models.User.id).offset(skip).limit(limit).all()


@router.get("/{id}", response_model=schemas.UserOut)
def get_user(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    user = db.query(models.User).filter(models.User.id == id).first()
    if not user:
        raise NotFoundException("User not found")
    return user


@router.delete("/{id}/purge", response_model=schemas.PurgeSummary)
def purge_user(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    """
    Permanently removes a user with their bookings, reviews and payments.
    For garage owners this also removes their garages, services and the
    bookings and reviews made at those garages.
    """
    return user_service.purge_user(db, principal, id)


@router.delete("/{id}", response_model=schemas.DeactivationSummary)
def delete_user(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    """Deactivates the account. Restorable, unlike purge."""
    return user_service.soft_delete_user(db, principal, id)


@router.put("/{id}/restore", response_model=schemas.UserOut)
def restore_user(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return user_service.restore_user(db, principal, id)


@router.put("/{id}/role", response_model=schemas.UserOut)
def update_user_role(
    id: int,
    role_data: schemas.RoleUpdate,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return user_service.update_role(db, principal, id, role_data.role)


@router.put("/{id}/grant-garage-creation", response_model=schemas.UserOut)
def grant_garage_creation(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return user_service.set_garage_creation(db, principal, id, True)


@router.put("/{id}/revoke-garage-creation", response_model=schemas.UserOut)
def revoke_garage_creation(
    id: int,
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.require_admin)
):
    return user_service.set_garage_creation(db, principal, id, False)
