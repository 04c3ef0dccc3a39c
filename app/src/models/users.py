from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    type: str = Field(default="student", index=True)
    username: str = Field(index=True, unique=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, index=True, unique=True)
    registration_number: Optional[str] = Field(default=None, index=True, unique=True)
    phone_number: Optional[str] = None
    is_active: bool = Field(default=True)
    total_books_borrowed: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None), index=True, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None), sa_type=DateTime)
