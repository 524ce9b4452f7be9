# Reviews and garage responses

from typing import Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class CategoryRatings(BaseModel):
    service_quality: Optional[int] = Field(None, ge=1, le=5)
    price_fairness: Optional[int] = Field(None, ge=1, le=5)
    timeliness: Optional[int] = Field(None, ge=1, le=5)
    cleanliness: Optional[int] = Field(None, ge=1, le=5)
    customer_service: Optional[int] = Field(None, ge=1, le=5)


class ReviewCreate(BaseModel):
    booking_id: int
    garage_id: int
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1, max_length=100)
    comment: str = Field(..., min_length=1, max_length=500)
    categories: Optional[CategoryRatings] = None


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    comment: Optional[str] = Field(None, min_length=1, max_length=500)
    categories: Optional[CategoryRatings] = None


class ResponseIn(BaseModel):
    comment: str = Field(..., min_length=1, max_length=1000)


class ReviewResponseOut(BaseModel):
    comment: str
    responded_at: Optional[datetime] = None
    responded_by: Optional[int] = None


class ReviewOut(BaseModel):
    id: int
    car_owner_id: int
    garage_id: int
    booking_id: int
    rating: int
    title: str
    comment: str
    categories: Optional[dict] = None
    response: Optional[ReviewResponseOut] = None
    helpful_count: int = 0
    is_verified: bool
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class HelpfulResult(BaseModel):
    helpful_count: int
    user_voted: bool


class ReviewSummary(BaseModel):
    garage_id: int
    total_reviews: int
    average_rating: float
    category_averages: Dict[str, float]
    rating_distribution: Dict[int, int]
    response_rate: int


class ReviewList(BaseModel):
    total_count: int
    items: List[ReviewOut]
