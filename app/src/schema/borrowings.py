import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from app.src.schema.books import BookSummary
from app.src.schema.users import UserPublic


class BorrowingStatusEnum(str, Enum):
    borrowed = "borrowed"
    overdue = "overdue"
    returned = "returned"
    lost = "lost"

ActiveStatusList = [BorrowingStatusEnum.borrowed, BorrowingStatusEnum.overdue]
TerminalStatusList = [BorrowingStatusEnum.returned, BorrowingStatusEnum.lost]


class ReturnConditionEnum(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"
    damaged = "damaged"


class NoticeTypeEnum(str, Enum):
    lend = "lend"
    reminder = "reminder"
    overdue = "overdue"
    fine = "fine"
    return_ = "return"


class NoticeChannelEnum(str, Enum):
    email = "email"
    sms = "sms"
    push = "push"
    in_app = "in_app"


class LendRequest(BaseModel):
    student_id: int
    book_id: int


class ReturnRequest(BaseModel):
    condition: ReturnConditionEnum = ReturnConditionEnum.good
    notes: Optional[str] = Field(default=None, max_length=500)


class ExtendRequest(BaseModel):
    new_due_date: datetime.datetime
    reason: str = Field(min_length=1, max_length=200)


class MarkLostRequest(BaseModel):
    fine_amount: Decimal = Field(ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class ExtensionPublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    extended_at: datetime.datetime
    extended_by: Optional[int] = None
    previous_due_date: datetime.datetime
    new_due_date: datetime.datetime
    reason: Optional[str] = None


class NoticePublic(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    sent_at: datetime.datetime
    sent_via: str


class BorrowingPublic(BaseModel):
    """Borrowing record with derived overdue figures"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    book_id: int
    staff_id: int
    borrowed_at: datetime.datetime
    due_date: datetime.datetime
    returned_at: Union[datetime.datetime, None] = None
    returned_to: Union[int, None] = None
    return_condition: Union[str, None] = None
    return_notes: Union[str, None] = None
    status: BorrowingStatusEnum
    fine_amount: Decimal
    fine_paid: bool
    days_overdue: int = 0
    calculated_fine: Decimal = Decimal("0")


class BorrowingDetail(BorrowingPublic):
    book: Optional[BookSummary] = None
    student: Optional[UserPublic] = None
    extensions: List[ExtensionPublic] = []
    notifications_sent: List[NoticePublic] = []
