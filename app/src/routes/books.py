from fastapi import APIRouter

from app.core.authentication import CurrentUser
from app.core.database import SessionDep
from app.core.error_handling import NotFoundError
from app.src.models.books import Book
from app.src.schema.books import BookPublic

router = APIRouter()


@router.get("/{book_id}", response_model=BookPublic)
async def get_book(book_id: int, current_user: CurrentUser, session: SessionDep):
    book = await session.get(Book, book_id)
    if book is None:
        raise NotFoundError("Book", book_id)
    return BookPublic.model_validate(book)
