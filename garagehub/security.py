import hashlib
import hmac
import logging
import jwt
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from passlib.context import CryptContext
from garagehub.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# Setup Password Hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)

# --- JWT Low-Level Logic ---

def generate_token(payload: dict, secret: str, algo: str, expiry: timedelta) -> str:
    """Generic function to encode a JWT."""
    expire = datetime.utcnow() + expiry
    to_encode = payload.copy()
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret, algorithm=algo)

def get_token_payload(token: str, secret: str, algo: str) -> Optional[Dict[str, Any]]:
    """Generic function to decode a JWT."""
    try:
        return jwt.decode(token, secret, algorithms=[algo])
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid Token: {e}")
        return None

def create_access_token(user_id: int, role: str) -> str:
    return generate_token(
        {"sub": str(user_id), "role": role},
        settings.JWT_SECRET,
        settings.JWT_ALGORITHM,
        timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )

# --- Webhook signatures ---

def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature)
