import math
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Index, event
from sqlmodel import Field, SQLModel

from app.core.settings import settings
from app.src.schema.borrowings import (
    BorrowingStatusEnum,
    NoticeChannelEnum,
    TerminalStatusList,
)

SECONDS_PER_DAY = 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def days_overdue(due_date: datetime, now: datetime) -> int:
    """Whole days past due, counting a started day as a full day."""
    elapsed = (now - due_date).total_seconds()
    return max(0, math.ceil(elapsed / SECONDS_PER_DAY))


def overdue_fine(due_date: datetime, now: datetime, daily_rate: Optional[Decimal] = None) -> Decimal:
    rate = settings.daily_fine_amount if daily_rate is None else daily_rate
    return Decimal(days_overdue(due_date, now)) * Decimal(rate)


class Borrowing(SQLModel, table=True):
    __table_args__ = (
        Index("ix_borrowing_student_status", "student_id", "status"),
        Index("ix_borrowing_book_status", "book_id", "status"),
        Index("ix_borrowing_status_due_date", "status", "due_date"),
    )

    id: int | None = Field(default=None, primary_key=True)
    student_id: int = Field(foreign_key="user.id")
    book_id: int = Field(foreign_key="book.id")
    staff_id: int = Field(foreign_key="user.id")

    borrowed_at: datetime = Field(default_factory=_utcnow, index=True, sa_type=DateTime)
    due_date: Optional[datetime] = Field(default=None, index=True, sa_type=DateTime)
    returned_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    returned_to: Optional[int] = Field(default=None, foreign_key="user.id")
    return_condition: Optional[str] = Field(default=None)
    return_notes: Optional[str] = Field(default=None, max_length=500)

    fine_amount: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    # Staff correction applied on top of the day-rate fine, negative when forgiven
    fine_adjustment: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    fine_paid: bool = Field(default=False)
    fine_paid_at: Optional[datetime] = Field(default=None, sa_type=DateTime)

    status: str = Field(default=BorrowingStatusEnum.borrowed.value)

    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)

    @property
    def is_terminal(self) -> bool:
        return self.status in TerminalStatusList or self.returned_at is not None

    def days_overdue(self, now: datetime) -> int:
        if self.is_terminal:
            return 0
        return days_overdue(self.due_date, now)

    def calculated_fine(self, now: datetime, daily_rate: Optional[Decimal] = None) -> Decimal:
        """Accruing fine while the loan is open, the frozen amount afterwards.

        An open loan owes the day-rate fine plus the staff adjustment, and
        never less than the amount already charged to it.
        """
        if self.is_terminal:
            return self.fine_amount
        accrued = overdue_fine(self.due_date, now, daily_rate) + Decimal(self.fine_adjustment or 0)
        return max(accrued, Decimal(self.fine_amount or 0), Decimal("0"))


class BorrowingExtension(SQLModel, table=True):
    __tablename__ = "borrowing_extension"

    id: int | None = Field(default=None, primary_key=True)
    borrowing_id: int = Field(foreign_key="borrowing.id", index=True)
    extended_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)
    extended_by: Optional[int] = Field(default=None, foreign_key="user.id")
    previous_due_date: datetime = Field(sa_type=DateTime)
    new_due_date: datetime = Field(sa_type=DateTime)
    reason: Optional[str] = Field(default=None, max_length=200)


class BorrowingNotice(SQLModel, table=True):
    """Log of notifications sent about a borrowing."""

    __tablename__ = "borrowing_notice"

    id: int | None = Field(default=None, primary_key=True)
    borrowing_id: int = Field(foreign_key="borrowing.id", index=True)
    type: str = Field(index=True)
    sent_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)
    sent_via: str = Field(default=NoticeChannelEnum.email.value)


@event.listens_for(Borrowing, "before_insert")
def _default_due_date(mapper, connection, target):
    if target.borrowed_at is None:
        target.borrowed_at = _utcnow()
    if target.due_date is None:
        target.due_date = target.borrowed_at + timedelta(days=settings.lending_period_days)


@event.listens_for(Borrowing, "before_update")
def _touch_updated_at(mapper, connection, target):
    target.updated_at = _utcnow()
