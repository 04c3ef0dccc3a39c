"""
Book availability ledger.

Copy counts only move through the conditional UPDATEs below, so two
requests racing for the last copy cannot both win.
"""

from datetime import datetime, timezone

from sqlalchemy import update
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.logging import database_logger
from app.src.models.books import Book


def update_availability(book: Book, delta: int) -> Book:
    """Shift available copies by delta, clamped into [0, total_copies]."""
    book.available_copies = max(0, min(book.total_copies, book.available_copies + delta))
    return book


async def reserve_copy(session: AsyncSession, book_id: int) -> bool:
    result = await session.exec(
        update(Book)
        .where(
            Book.id == book_id,
            Book.is_active == True,  # noqa: E712
            Book.available_copies > 0,
        )
        .values(
            available_copies=Book.available_copies - 1,
            updated_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_copy(session: AsyncSession, book_id: int) -> bool:
    result = await session.exec(
        update(Book)
        .where(Book.id == book_id, Book.available_copies < Book.total_copies)
        .values(
            available_copies=Book.available_copies + 1,
            updated_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        database_logger.warning(
            f"Book {book_id} already has all copies available, release ignored",
            extra={"book_id": book_id, "event_type": "availability_ceiling"}
        )
        return False
    return True
