# Garages and services

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from garagehub.models.garages import WEEKDAYS, GarageStatus, ServiceCategory

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class DayHours(BaseModel):
    open: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    close: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    closed: bool = False

    @model_validator(mode="after")
    def check_open_close(self):
        if not self.closed:
            if not self.open or not self.close:
                raise ValueError("open and close are required unless the day is closed")
            if self.open >= self.close:
                raise ValueError("open must be before close")
        return self


class Address(BaseModel):
    street: str
    city: str
    state: str = ""
    country: str = "Ethiopia"
    zip_code: str = ""


class ContactInfo(BaseModel):
    phone: str
    email: Optional[str] = None
    website: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.strip().lower() if v else v


def _known_weekdays(hours):
    if hours:
        unknown = set(hours) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
    return hours


class GarageStats(BaseModel):
    total_bookings: int = 0
    completed_bookings: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0


class GarageBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: str = ""
    longitude: float = Field(38.7578, ge=-180, le=180)
    latitude: float = Field(9.0054, ge=-90, le=90)
    address: Address
    contact_info: ContactInfo
    business_hours: Optional[Dict[str, DayHours]] = None

    @field_validator("business_hours")
    @classmethod
    def known_weekdays(cls, v):
        return _known_weekdays(v)


class GarageCreate(GarageBase):
    pass


class GarageUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    address: Optional[Address] = None
    contact_info: Optional[ContactInfo] = None
    business_hours: Optional[Dict[str, DayHours]] = None

    @field_validator("business_hours")
    @classmethod
    def known_weekdays(cls, v):
        return _known_weekdays(v)


class GarageVerify(BaseModel):
    status: GarageStatus
    notes: Optional[str] = None


class GarageOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = ""
    longitude: float
    latitude: float
    address: dict
    contact_info: dict
    business_hours: dict
    owner_id: int
    status: str
    is_active: bool
    is_verified: bool
    paid_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    stats: GarageStats
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ServiceBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: str = ""
    price: float = Field(..., ge=0)
    duration: int = Field(60, gt=0, le=24 * 60)
    category: ServiceCategory = ServiceCategory.MAINTENANCE


class ServiceCreate(ServiceBase):
    pass


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    duration: Optional[int] = Field(None, gt=0, le=24 * 60)
    category: Optional[ServiceCategory] = None


class ServiceOut(ServiceBase):
    id: int
    garage_id: int
    is_available: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class ServiceList(BaseModel):
    total_count: int
    items: List[ServiceOut]
