from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlmodel import select

from app.core.database import SessionDep
from app.core.error_handling import ConflictError, NotFoundError
from app.core.logging import audit_event_logger
from app.core.settings import settings
from app.src.jobs.fines_scheduler import AccrualScheduler, get_accrual_scheduler
from app.src.models.books import Book, clamp_copies
from app.src.models.borrowings import Borrowing
from app.src.schema.books import BookCreate, BookPublic, BookUpdate
from app.src.schema.borrowings import ActiveStatusList
from app.src.schema.fines import FineBase
from app.src.routes.dependencies import AdminUser, FineServiceDep
from app.src.services.availability import update_availability

router = APIRouter()


@router.put("/fines/{fine_id}/confirm-payment")
async def confirm_fine_payment(fine_id: int, admin: AdminUser, service: FineServiceDep):
    fine = await service.confirm_payment(fine_id, admin)
    return {"message": "Payment confirmed", "fine": FineBase.model_validate(fine)}


@router.post("/books", status_code=201)
async def create_book(body: BookCreate, admin: AdminUser, session: SessionDep):
    existing = await session.exec(select(Book).where(Book.isbn == body.isbn))
    if existing.first():
        raise ConflictError("Book with this ISBN already exists", resource="book")

    data = body.model_dump(exclude_none=True)
    data.setdefault("available_copies", body.total_copies)
    data.setdefault("lending_period", settings.lending_period_days)
    book = clamp_copies(Book(**data, added_by=admin.id, last_updated_by=admin.id))
    session.add(book)
    await session.commit()
    await session.refresh(book)

    audit_event_logger.log_data_modification(admin.id, "book", book.id, "create", {"isbn": book.isbn})
    return {"message": "Book added successfully", "book": BookPublic.model_validate(book)}


@router.put("/books/{book_id}")
async def update_book(book_id: int, body: BookUpdate, admin: AdminUser, session: SessionDep):
    book = await session.get(Book, book_id)
    if not book:
        raise NotFoundError("Book", book_id)

    changes = body.model_dump(exclude_unset=True)
    new_total = changes.pop("total_copies", None)
    new_available = changes.pop("available_copies", None)
    for key, value in changes.items():
        setattr(book, key, value)

    if new_total is not None and new_total != book.total_copies:
        # Copies on loan stay on loan; the shelf count moves with the total
        delta = new_total - book.total_copies
        book.total_copies = new_total
        update_availability(book, delta)
    if new_available is not None:
        book.available_copies = new_available
    clamp_copies(book)
    book.last_updated_by = admin.id

    session.add(book)
    await session.commit()
    await session.refresh(book)

    audit_event_logger.log_data_modification(
        admin.id, "book", book.id, "update", body.model_dump(exclude_unset=True)
    )
    return {"message": "Book updated successfully", "book": BookPublic.model_validate(book)}


@router.delete("/books/{book_id}")
async def delete_book(book_id: int, admin: AdminUser, session: SessionDep):
    book = await session.get(Book, book_id)
    if not book:
        raise NotFoundError("Book", book_id)

    result = await session.exec(
        select(func.count(Borrowing.id)).where(Borrowing.book_id == book_id)
    )
    if result.one() > 0:
        active = await session.exec(
            select(func.count(Borrowing.id)).where(
                Borrowing.book_id == book_id,
                Borrowing.status.in_([s.value for s in ActiveStatusList]),
            )
        )
        book.is_active = False
        book.last_updated_by = admin.id
        session.add(book)
        await session.commit()
        audit_event_logger.log_data_modification(admin.id, "book", book_id, "deactivate", {})
        return {
            "message": "Book has borrowing history and was deactivated instead of deleted",
            "active_borrowings": active.one(),
            "deleted": False,
        }

    await session.delete(book)
    await session.commit()
    audit_event_logger.log_data_modification(admin.id, "book", book_id, "delete", {})
    return {"message": "Book deleted successfully", "deleted": True}


@router.post("/jobs/overdue-accrual")
async def trigger_overdue_accrual(
    admin: AdminUser,
    scheduler: Annotated[AccrualScheduler, Depends(get_accrual_scheduler)],
):
    counts = await scheduler.run_once()
    audit_event_logger.log_data_modification(admin.id, "job", None, "overdue_accrual", counts)
    return {"message": "Overdue accrual pass complete", "result": counts}
