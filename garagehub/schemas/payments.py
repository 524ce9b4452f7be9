# Payments

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class GaragePaymentInit(BaseModel):
    amount: float = Field(..., gt=0)


class BookingPaymentInit(BaseModel):
    booking_id: int
    amount: float = Field(..., gt=0)


class PaymentInitOut(BaseModel):
    payment_id: int
    checkout_url: Optional[str] = None
    tx_ref: str
    booking_id: Optional[int] = None
    expires_at: Optional[datetime] = None


class RefundRequest(BaseModel):
    reason: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    user_id: int
    payment_type: str
    booking_id: Optional[int] = None
    garage_id: Optional[int] = None
    amount: float
    currency: str
    method: str
    status: str
    transaction_id: Optional[str] = None
    checkout_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    refund_reason: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class WebhookAck(BaseModel):
    success: bool = True
    message: str
    tx_ref: Optional[str] = None
    applied: bool = False


class PaymentBucket(BaseModel):
    key: str
    count: int
    total_amount: float


class PaymentStatistics(BaseModel):
    period: str
    start: datetime
    end: datetime
    total_revenue: float
    total_transactions: int
    successful_transactions: int
    failed_transactions: int
    pending_transactions: int
    refunded_transactions: int
    by_type: List[PaymentBucket]
    by_method: List[PaymentBucket]
    by_day: List[PaymentBucket]
