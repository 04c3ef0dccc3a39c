from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from app.src.schema.notifications import NotificationPriorityEnum


class Notification(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    recipient_id: int = Field(foreign_key="user.id", index=True)
    sender_id: Optional[int] = Field(default=None, foreign_key="user.id")
    type: str = Field(index=True)
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)

    # Display-only references
    related_book_id: Optional[int] = Field(default=None, foreign_key="book.id")
    related_borrowing_id: Optional[int] = Field(default=None, foreign_key="borrowing.id")
    related_fine_id: Optional[int] = Field(default=None, foreign_key="fine.id")

    priority: str = Field(default=NotificationPriorityEnum.medium.value)
    is_read: bool = Field(default=False, index=True)
    read_at: Optional[datetime] = Field(default=None, sa_type=DateTime)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None), index=True, sa_type=DateTime
    )
