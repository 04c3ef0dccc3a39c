from typing import Annotated, Optional
from fastapi import APIRouter, Query

from app.core.authentication import CurrentUser
from app.src.schema.borrowings import (
    BorrowingStatusEnum,
    ExtendRequest,
    LendRequest,
    MarkLostRequest,
    ReturnRequest,
)
from app.src.schema.fines import FineBase
from app.src.routes.dependencies import BorrowingServiceDep, StaffUser

router = APIRouter()


@router.post("/lend", status_code=201)
async def lend_book(
    body: LendRequest,
    staff: StaffUser,
    service: BorrowingServiceDep,
):
    borrowing = await service.lend(body, staff)
    return {
        "message": "Book lent successfully",
        "borrowing": service.to_public(borrowing),
    }


@router.post("/return/{borrowing_id}")
async def return_book(
    borrowing_id: int,
    staff: StaffUser,
    service: BorrowingServiceDep,
    body: Optional[ReturnRequest] = None,
):
    borrowing, fine = await service.return_book(borrowing_id, body or ReturnRequest(), staff)
    return {
        "message": "Book returned successfully",
        "borrowing": service.to_public(borrowing),
        "fine": FineBase.model_validate(fine) if fine is not None else None,
    }


@router.post("/{borrowing_id}/extend")
async def extend_borrowing(
    borrowing_id: int,
    body: ExtendRequest,
    staff: StaffUser,
    service: BorrowingServiceDep,
):
    borrowing = await service.extend(borrowing_id, body, staff)
    return {
        "message": "Due date extended successfully",
        "borrowing": service.to_public(borrowing),
    }


@router.post("/{borrowing_id}/mark-lost")
async def mark_borrowing_lost(
    borrowing_id: int,
    body: MarkLostRequest,
    staff: StaffUser,
    service: BorrowingServiceDep,
):
    borrowing, fine = await service.mark_lost(borrowing_id, body, staff)
    return {
        "message": "Book marked as lost",
        "borrowing": service.to_public(borrowing),
        "fine": FineBase.model_validate(fine) if fine is not None else None,
    }


@router.get("/overdue")
async def read_overdue_borrowings(staff: StaffUser, service: BorrowingServiceDep):
    borrowings = await service.overdue()
    return {
        "borrowings": [service.to_public(b) for b in borrowings],
        "count": len(borrowings),
    }


@router.get("/due-soon")
async def read_due_soon_borrowings(
    staff: StaffUser,
    service: BorrowingServiceDep,
    days: Annotated[Optional[int], Query(ge=0, le=30)] = None,
):
    borrowings = await service.due_soon(days)
    return {
        "borrowings": [service.to_public(b) for b in borrowings],
        "count": len(borrowings),
    }


@router.get("/me")
async def read_my_borrowings(current_user: CurrentUser, service: BorrowingServiceDep):
    borrowings = await service.active_borrowings(current_user)
    return {"borrowings": [service.to_public(b) for b in borrowings]}


@router.get("/student/{student_id}")
async def read_student_borrowings(
    student_id: int,
    current_user: CurrentUser,
    service: BorrowingServiceDep,
    status: Optional[BorrowingStatusEnum] = None,
):
    borrowings = await service.student_borrowings(student_id, current_user, status)
    return {"borrowings": [service.to_public(b) for b in borrowings]}


@router.get("/{borrowing_id}")
async def read_borrowing(
    borrowing_id: int,
    current_user: CurrentUser,
    service: BorrowingServiceDep,
):
    return {"borrowing": await service.detail(borrowing_id, current_user)}
