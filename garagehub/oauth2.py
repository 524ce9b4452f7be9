from dataclasses import dataclass
from typing import List, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from garagehub.database import get_session
from garagehub.config import get_settings
from garagehub import models
from garagehub.security import get_token_payload

settings = get_settings()

# Authorization: Bearer <token>
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller attached to every request."""
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == models.UserRole.ADMIN.value


# --- CORE PRINCIPAL RETRIEVAL LOGIC ---

def get_token_principal(token: Optional[str], db: Session) -> Optional[Principal]:
    """
    Decodes the token and checks the user still exists and is not deleted.
    The role is read from the database so demotions take effect immediately.
    """
    if not token:
        return None

    payload = get_token_payload(token, settings.JWT_SECRET, settings.JWT_ALGORITHM)
    if not payload or not payload.get("sub"):
        return None

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        return None

    user = db.query(models.User).filter(
        models.User.id == user_id,
        models.User.is_deleted == False
    ).first()
    if not user:
        return None
    return Principal(id=user.id, role=user.role)


# --- DEPENDENCIES ---

def get_current_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_session)
) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    principal = get_token_principal(token, db)
    if not principal:
        raise credentials_exception
    return principal


def get_optional_principal(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_session)
) -> Optional[Principal]:
    """For public read endpoints: anonymous callers are allowed."""
    return get_token_principal(token, db)


# --- ROLE CHECKERS ---

def require_role(allowed_roles: List[str]):
    """
    Factory for role-based permission checks.
    """
    def role_checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Action requires one of the following roles: {', '.join(allowed_roles)}"
            )
        return principal
    return role_checker


# --- PRE-DEFINED DEPENDENCIES ---

require_admin = require_role(["admin"])
require_car_owner = require_role(["car_owner"])
require_garage_owner = require_role(["garage_owner"])
require_garage_side = require_role(["garage_owner", "admin"])
