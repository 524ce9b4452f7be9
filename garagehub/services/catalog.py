# garagehub/services/catalog.py
"""Service catalog of a garage."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from garagehub import authz, models, schemas
from garagehub.database import is_unique_violation, transaction
from garagehub.exceptions import ConflictException, NotFoundException, ValidationException
from garagehub.services.garages import get_live_garage

logger = logging.getLogger(__name__)

DUPLICATE_NAME = "Service with this name already exists in your garage"
NAME_INDEX = "uq_service_garage_name_live"

# Upcoming bookings in these states keep a service from being deleted
BLOCKING_STATUSES = (models.BookingStatus.PENDING.value, models.BookingStatus.APPROVED.value)


def _name_taken(db: Session, garage_id: int, name: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(models.Service.id).filter(
        models.Service.garage_id == garage_id,
        func.lower(models.Service.name) == name.strip().lower(),
        models.Service.is_deleted == False
    )
    if exclude_id is not None:
        query = query.filter(models.Service.id != exclude_id)
    return query.first() is not None


def _raise_if_duplicate_name(error: IntegrityError) -> None:
    if is_unique_violation(error, models.Service.__table__, NAME_INDEX):
        raise ConflictException(DUPLICATE_NAME) from error


def get_live_service(db: Session, service_id: int) -> models.Service:
    service = db.query(models.Service).filter(
        models.Service.id == service_id,
        models.Service.is_deleted == False
    ).first()
    if not service:
        raise NotFoundException("Service not found")
    return service


def create_service(db: Session, principal, garage_id: int, data: schemas.ServiceCreate) -> models.Service:
    garage = get_live_garage(db, garage_id)
    authz.ensure_owner_or_admin(principal, garage, "Not authorized to add services to this garage")
    if _name_taken(db, garage.id, data.name):
        raise ConflictException(DUPLICATE_NAME)

    try:
        with transaction(db):
            service = models.Service(garage_id=garage.id, **data.model_dump())
            service.name = service.name.strip()
            service.category = models.ServiceCategory(data.category).value
            db.add(service)
    except IntegrityError as e:
        _raise_if_duplicate_name(e)
        raise

    db.refresh(service)
    logger.info(f"Service {service.id} added to garage {garage.id}")
    return service


def update_service(db: Session, principal, service_id: int, data: schemas.ServiceUpdate) -> models.Service:
    service = get_live_service(db, service_id)
    authz.ensure_owner_or_admin(principal, service, "Not authorized to update this service")

    changes = data.model_dump(exclude_unset=True)
    if changes.get("name") and _name_taken(db, service.garage_id, changes["name"], exclude_id=service.id):
        raise ConflictException(DUPLICATE_NAME)
    if changes.get("category") is not None:
        changes["category"] = models.ServiceCategory(changes["category"]).value

    try:
        with transaction(db):
            for key, value in changes.items():
                setattr(service, key, value)
    except IntegrityError as e:
        _raise_if_duplicate_name(e)
        raise

    db.refresh(service)
    return service


def toggle_availability(db: Session, principal, service_id: int) -> models.Service:
    service = get_live_service(db, service_id)
    authz.ensure_owner_or_admin(principal, service, "Not authorized to update this service")

    with transaction(db):
        service.is_available = not service.is_available

    db.refresh(service)
    return service


def delete_service(db: Session, principal, service_id: int) -> models.Service:
    service = get_live_service(db, service_id)
    authz.ensure_owner_or_admin(principal, service, "Not authorized to delete this service")

    upcoming = db.query(func.count(models.Booking.id)).filter(
        models.Booking.service_id == service.id,
        models.Booking.booking_date >= date.today(),
        models.Booking.status.in_(BLOCKING_STATUSES),
        models.Booking.is_deleted == False
    ).scalar()
    if upcoming:
        raise ConflictException(
            "Cannot delete a service with upcoming bookings",
            details={"upcoming_bookings": upcoming},
        )

    with transaction(db):
        service.is_deleted = True
        service.is_available = False

    logger.info(f"Service {service.id} deleted by user {principal.id}")
    return service


def restore_service(db: Session, principal, service_id: int) -> models.Service:
    service = db.query(models.Service).filter(
        models.Service.id == service_id,
        models.Service.is_deleted == True
    ).first()
    if not service:
        raise NotFoundException("Deleted service not found")
    garage = db.query(models.Garage).filter(
        models.Garage.id == service.garage_id,
        models.Garage.is_deleted == False
    ).first()
    if not garage:
        raise ValidationException("Restore the garage first")
    if _name_taken(db, garage.id, service.name, exclude_id=service.id):
        raise ConflictException(DUPLICATE_NAME)

    try:
        with transaction(db):
            service.is_deleted = False
            service.is_available = True
    except IntegrityError as e:
        _raise_if_duplicate_name(e)
        raise

    logger.info(f"Service {service.id} restored by admin {principal.id}")
    db.refresh(service)
    return service


def list_services(db: Session, garage_id: int, category: Optional[str] = None,
                  available_only: bool = False) -> schemas.ServiceList:
    get_live_garage(db, garage_id)
    query = db.query(models.Service).filter(
        models.Service.garage_id == garage_id,
        models.Service.is_deleted == False
    )
    if category:
        query = query.filter(models.Service.category == category)
    if available_only:
        query = query.filter(models.Service.is_available == True)
    items = query.order_by(models.Service.name).all()
    return schemas.ServiceList(total_count=len(items), items=[schemas.ServiceOut.model_validate(s) for s in items])
