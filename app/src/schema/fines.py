from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class FineReasonEnum(str, Enum):
    overdue = "overdue"
    damage = "damage"
    loss = "loss"
    other = "other"


class FineStatusEnum(str, Enum):
    pending = "pending"
    paid = "paid"
    waived = "waived"
    disputed = "disputed"

# Statuses that still block a student from borrowing
UnpaidStatusList = [FineStatusEnum.pending, FineStatusEnum.disputed]


class PaymentMethodEnum(str, Enum):
    cash = "cash"
    card = "card"
    online = "online"
    other = "other"


class FineBase(BaseModel):
    """Base fine schema without relationships"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    borrowing_id: int
    amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    reason: FineReasonEnum
    description: Optional[str] = None
    status: FineStatusEnum
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    waiver_reason: Optional[str] = None
    dispute_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class FineCreate(BaseModel):
    """Schema for creating a fine by hand"""
    student_id: int
    borrowing_id: int
    amount: Decimal = Field(ge=0)
    reason: FineReasonEnum = FineReasonEnum.other
    description: Optional[str] = Field(default=None, max_length=500)


class FinePaymentRequest(BaseModel):
    """Omitting amount pays the full outstanding balance"""
    amount: Optional[Decimal] = Field(default=None, gt=0)
    payment_method: PaymentMethodEnum = PaymentMethodEnum.cash
    transaction_id: Optional[str] = Field(default=None, max_length=100)


class FineStatusUpdate(BaseModel):
    status: FineStatusEnum
    notes: Optional[str] = Field(default=None, max_length=500)
    amount: Optional[Decimal] = Field(default=None, ge=0)


class FineDisputeRequest(BaseModel):
    reason: str = Field(min_length=10, max_length=1000)
