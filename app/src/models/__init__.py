"""
Models package for the library circulation API.
Exports all database models.
"""

from app.src.models.books import Book
from app.src.models.borrowings import Borrowing, BorrowingExtension, BorrowingNotice
from app.src.models.fines import Fine
from app.src.models.notifications import Notification
from app.src.models.users import User

__all__ = [
    "User",
    "Book",
    "Borrowing",
    "BorrowingExtension",
    "BorrowingNotice",
    "Fine",
    "Notification",
]
