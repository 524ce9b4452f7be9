# garagehub/routers/auth.py

import logging

from fastapi import APIRouter, Depends, status, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from garagehub import models, schemas, oauth2
from garagehub.database import get_db
from garagehub.config import get_settings
from garagehub.exceptions import UnauthorizedException
from garagehub.security import create_access_token
from garagehub.services import rate_limit, users as user_service

settings = get_settings()
logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/auth",
    tags=['Auth']
)


def _login_key(request: Request, identifier: str) -> str:
    client_ip = request.client.host if request.client else "unknown"
    return f"login:{client_ip}:{identifier.lower()}"


@router.post("/register", status_code=status.HTTP_201_CREATED, response_model=schemas.UserOut)
def register_user(
    user_data: schemas.RegisterUserRequest,
    db: Session = Depends(get_db)
):
    """
    Self-registration for car owners and garage owners.
    Admin accounts are provisioned out of band.
    """
    return user_service.register_user(db, user_data)


@router.post("/login", response_model=schemas.Token)
def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    key = _login_key(request, form_data.username)
    rate_limit.hit(db, key, settings.LOGIN_RATE_LIMIT_ATTEMPTS, settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS)

    user = user_service.authenticate(db, form_data.username, form_data.password)
    if not user:
        logger.info(f"Failed login for {form_data.username}")
        raise UnauthorizedException("Incorrect email or password")

    rate_limit.reset(db, key)
    return {
        "access_token": create_access_token(user.id, user.role),
        "token_type": "Bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user_id": user.id,
        "role": user.role,
    }


@router.get("/me", response_model=schemas.UserOut)
def read_me(
    db: Session = Depends(get_db),
    principal: oauth2.Principal = Depends(oauth2.get_current_principal)
):
    return db.query(models.User).filter(models.User.id == principal.id).first()
