from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, event
from sqlmodel import Field, SQLModel

from app.core.settings import settings


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Book(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("total_copies >= 1", name="ck_book_total_copies_min"),
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_book_available_copies_range",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    isbn: str = Field(index=True, unique=True, max_length=17)
    title: str = Field(index=True, max_length=200)
    author: str = Field(index=True, max_length=100)
    publisher: Optional[str] = Field(default=None, max_length=100)
    publication_year: Optional[int] = None
    genre: Optional[str] = Field(default=None, index=True)

    total_copies: int = Field(default=1)
    available_copies: int = Field(default=1, index=True)
    lending_period: int = Field(default=settings.lending_period_days)  # days

    is_active: bool = Field(default=True, index=True)
    added_by: Optional[int] = Field(default=None, foreign_key="user.id")
    last_updated_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=_utcnow, sa_type=DateTime)

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0

    @property
    def availability_percentage(self) -> float:
        if not self.total_copies:
            return 0.0
        return self.available_copies / self.total_copies * 100


def clamp_copies(book: Book) -> Book:
    """Keep 0 <= available_copies <= total_copies."""
    if book.available_copies is None:
        book.available_copies = book.total_copies
    if book.available_copies > book.total_copies:
        book.available_copies = book.total_copies
    if book.available_copies < 0:
        book.available_copies = 0
    return book


@event.listens_for(Book, "before_insert")
def _clamp_before_insert(mapper, connection, target):
    clamp_copies(target)


@event.listens_for(Book, "before_update")
def _clamp_before_update(mapper, connection, target):
    clamp_copies(target)
    target.updated_at = _utcnow()
