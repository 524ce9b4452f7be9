# Auth and user accounts

from typing import Optional, Literal
from datetime import datetime
from pydantic import BaseModel, ConfigDict, EmailStr, Field

# --- AUTH ---
class Token(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    user_id: int
    role: str

class RegisterUserRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=250)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone: Optional[str] = None
    # Admin accounts are never self-registered
    role: Literal["car_owner", "garage_owner"] = "car_owner"

class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: str
    phone: Optional[str] = None
    can_create_garage: bool
    is_deleted: bool = False
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

class PurgeSummary(BaseModel):
    user_id: int
    bookings: int
    reviews: int
    payments: int
    garages: int
    services: int

class RoleUpdate(BaseModel):
    role: Literal["admin", "car_owner", "garage_owner"]

class DeactivationSummary(BaseModel):
    user_id: int
    garages: int
    cancelled_bookings: int
    reviews: int
