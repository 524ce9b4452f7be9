"""
Ownership checks.

Every model exposes ``resource_owner_id()``; the routines here compare it
with the requesting principal instead of branching on the model type.
"""

from typing import Optional

from garagehub.exceptions import ForbiddenException


def is_owner(principal, entity) -> bool:
    owner_id = entity.resource_owner_id()
    return owner_id is not None and owner_id == principal.id


def is_owner_or_admin(principal, entity) -> bool:
    return principal.is_admin or is_owner(principal, entity)


def ensure_owner_or_admin(principal, entity, message: Optional[str] = None) -> None:
    if not is_owner_or_admin(principal, entity):
        raise ForbiddenException(message or "You do not have permission to access this resource")


def is_garage_side(principal, booking) -> bool:
    """Admin, or the owner of the garage the booking was made at."""
    return principal.is_admin or booking.garage_owner_id() == principal.id


def can_view_booking(principal, booking) -> bool:
    return is_garage_side(principal, booking) or is_owner(principal, booking)
