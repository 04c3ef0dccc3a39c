from typing import Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class BookSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    isbn: str
    title: str
    author: str


class BookPublic(BookSummary):
    publisher: Union[str, None] = None
    publication_year: Union[int, None] = None
    genre: Union[str, None] = None
    total_copies: int
    available_copies: int
    lending_period: int
    is_active: bool
    is_available: bool
    availability_percentage: float


class BookCreate(BaseModel):
    isbn: str = Field(pattern=r"^[0-9-]{10,17}$")
    title: str = Field(min_length=1, max_length=200)
    author: str = Field(min_length=1, max_length=100)
    publisher: Optional[str] = Field(default=None, max_length=100)
    publication_year: Optional[int] = None
    genre: Optional[str] = None
    total_copies: int = Field(default=1, ge=1)
    available_copies: Optional[int] = Field(default=None, ge=0)
    lending_period: Optional[int] = Field(default=None, ge=1, le=365)


class BookUpdate(BaseModel):
    """Schema for updating a book - all fields optional, isbn is immutable"""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    author: Optional[str] = Field(default=None, min_length=1, max_length=100)
    publisher: Optional[str] = Field(default=None, max_length=100)
    publication_year: Optional[int] = None
    genre: Optional[str] = None
    total_copies: Optional[int] = Field(default=None, ge=1)
    available_copies: Optional[int] = Field(default=None, ge=0)
    lending_period: Optional[int] = Field(default=None, ge=1, le=365)
    is_active: Optional[bool] = None
