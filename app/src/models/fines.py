from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, event
from sqlmodel import Field, SQLModel

from app.src.schema.fines import FineStatusEnum, PaymentMethodEnum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Fine(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_fine_amount_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_fine_paid_amount_non_negative"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    # One fine per borrowing, enforced by the database
    borrowing_id: int = Field(foreign_key="borrowing.id", unique=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2)
    reason: str
    description: Optional[str] = Field(default=None, max_length=500)

    status: str = Field(default=FineStatusEnum.pending.value, index=True)
    is_paid: bool = Field(default=False, index=True)
    paid_amount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    paid_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    paid_to: Optional[int] = Field(default=None, foreign_key="user.id")
    payment_method: Optional[str] = Field(default=PaymentMethodEnum.cash.value)
    transaction_id: Optional[str] = Field(default=None, index=True)

    waived_by: Optional[int] = Field(default=None, foreign_key="user.id")
    waived_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    waiver_reason: Optional[str] = Field(default=None, max_length=200)

    disputed_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    dispute_reason: Optional[str] = Field(default=None, max_length=1000)
    dispute_resolved_by: Optional[int] = Field(default=None, foreign_key="user.id")
    dispute_resolved_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    notes: Optional[str] = Field(default=None, max_length=500)
    updated_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=_utcnow, index=True, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)

    @property
    def outstanding_amount(self) -> Decimal:
        return max(Decimal("0"), Decimal(self.amount) - Decimal(self.paid_amount or 0))

    @property
    def is_fully_paid(self) -> bool:
        return Decimal(self.paid_amount or 0) >= Decimal(self.amount)


@event.listens_for(Fine, "before_update")
def _touch_updated_at(mapper, connection, target):
    target.updated_at = _utcnow()
