"""
Borrowing lifecycle: lend, return, extend and mark-lost.

Each operation validates its preconditions, writes and commits the
borrowing together with the book ledger and fine ledger changes, and only
then emits notifications.
"""

import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.clock import Clock, to_naive_utc
from app.core.error_handling import ForbiddenError, NotFoundError, ValidationError
from app.core.logging import audit_event_logger
from app.core.settings import Settings, settings as default_settings
from app.src.models.books import Book
from app.src.models.borrowings import (
    SECONDS_PER_DAY,
    Borrowing,
    BorrowingExtension,
    BorrowingNotice,
)
from app.src.models.fines import Fine
from app.src.models.users import User
from app.src.schema.books import BookSummary
from app.src.schema.borrowings import (
    ActiveStatusList,
    BorrowingDetail,
    BorrowingPublic,
    BorrowingStatusEnum,
    ExtendRequest,
    ExtensionPublic,
    LendRequest,
    MarkLostRequest,
    NoticeChannelEnum,
    NoticePublic,
    NoticeTypeEnum,
    ReturnRequest,
)
from app.src.schema.fines import FineReasonEnum, FineStatusEnum, UnpaidStatusList
from app.src.schema.notifications import NotificationPriorityEnum, NotificationTypeEnum
from app.src.schema.users import StaffRoleList, UserPublic, UserTypeEnum
from app.src.services.availability import release_copy, reserve_copy
from app.src.services.fines import (
    commit_or_conflict,
    get_fine_for_borrowing,
    outstanding_total,
    unpaid_fines,
    upsert_overdue_fine,
)
from app.src.services.locks import borrowing_locks, student_locks
from app.src.services.notifications import NotificationService

MAX_BORROWINGS = 5

ACTIVE_STATUSES = [s.value for s in ActiveStatusList]
UNPAID_STATUSES = [s.value for s in UnpaidStatusList]


def borrowing_public(borrowing: Borrowing, now: datetime, daily_rate: Optional[Decimal] = None) -> BorrowingPublic:
    data = borrowing.model_dump()
    data["days_overdue"] = borrowing.days_overdue(now)
    data["calculated_fine"] = borrowing.calculated_fine(now, daily_rate)
    return BorrowingPublic.model_validate(data)


def format_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


async def record_notice(
    session: AsyncSession,
    borrowing_id: int,
    notice_type: NoticeTypeEnum,
    now: datetime,
    via: NoticeChannelEnum = NoticeChannelEnum.email,
) -> BorrowingNotice:
    notice = BorrowingNotice(
        borrowing_id=borrowing_id, type=notice_type.value, sent_at=now, sent_via=via.value
    )
    session.add(notice)
    await session.commit()
    return notice


async def notice_sent_on(
    session: AsyncSession, borrowing_id: int, notice_type: NoticeTypeEnum, now: datetime
) -> bool:
    """Whether a notice of this type was already logged on now's calendar day."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    result = await session.exec(
        select(BorrowingNotice.id).where(
            BorrowingNotice.borrowing_id == borrowing_id,
            BorrowingNotice.type == notice_type.value,
            BorrowingNotice.sent_at >= day_start,
            BorrowingNotice.sent_at < day_start + timedelta(days=1),
        )
    )
    return result.first() is not None


class BorrowingService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Clock,
        notifier: NotificationService,
        settings: Settings = default_settings,
    ):
        self.session = session
        self.clock = clock
        self.notifier = notifier
        self.settings = settings

    def to_public(self, borrowing: Borrowing) -> BorrowingPublic:
        return borrowing_public(borrowing, self.clock.now(), self.settings.daily_fine_amount)

    async def get_borrowing(self, borrowing_id: int, refresh: bool = False) -> Borrowing:
        borrowing = await self.session.get(Borrowing, borrowing_id, populate_existing=refresh)
        if borrowing is None:
            raise NotFoundError("Borrowing", borrowing_id)
        return borrowing

    async def active_borrowing_count(self, student_id: int) -> int:
        result = await self.session.exec(
            select(func.count(Borrowing.id)).where(
                Borrowing.student_id == student_id,
                Borrowing.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.one()

    def _require_active(self, borrowing: Borrowing, action: str):
        if borrowing.status not in ACTIVE_STATUSES:
            raise ValidationError(
                f"Cannot {action} a borrowing with status '{borrowing.status}'",
                error_code="INVALID_STATE",
                context={"borrowing_id": borrowing.id, "status": borrowing.status},
            )

    async def lend(self, request: LendRequest, staff: User) -> Borrowing:
        student = await self.session.get(User, request.student_id)
        if student is None or student.type != UserTypeEnum.student.value:
            raise NotFoundError("Student", request.student_id)
        if not student.is_active:
            raise ValidationError("Student account is inactive")

        book = await self.session.get(Book, request.book_id)
        if book is None or not book.is_active:
            raise NotFoundError("Book", request.book_id)
        if book.available_copies <= 0:
            raise ValidationError("Book is not available for borrowing", error_code="BOOK_UNAVAILABLE")

        # Held through the commit so a queued lend counts this borrowing
        async with student_locks.hold(student.id):
            fines = await unpaid_fines(self.session, student.id)
            if fines:
                raise ValidationError(
                    f"Student has unpaid fines totaling {outstanding_total(fines)}. "
                    "Please clear fines before borrowing.",
                    error_code="UNPAID_FINES",
                )

            if await self.active_borrowing_count(student.id) >= MAX_BORROWINGS:
                raise ValidationError(
                    f"Student has reached the maximum borrowing limit of {MAX_BORROWINGS} books",
                    error_code="BORROWING_LIMIT",
                )

            # The availability check above may have read a stale row
            if not await reserve_copy(self.session, book.id):
                await self.session.rollback()
                raise ValidationError("Book is not available for borrowing", error_code="BOOK_UNAVAILABLE")

            now = self.clock.now()
            borrowing = Borrowing(
                student_id=student.id,
                book_id=book.id,
                staff_id=staff.id,
                borrowed_at=now,
                due_date=now + timedelta(days=book.lending_period),
                status=BorrowingStatusEnum.borrowed.value,
                created_at=now,
                updated_at=now,
            )
            student.total_books_borrowed = (student.total_books_borrowed or 0) + 1
            self.session.add(borrowing)
            self.session.add(student)
            await self.session.commit()
        await self.session.refresh(borrowing)
        await self.session.refresh(book)

        audit_event_logger.log_borrowing_operation(
            "lend", borrowing.id, staff.id,
            {"student_id": student.id, "book_id": book.id, "due_date": borrowing.due_date}
        )

        await self.notifier.send_email(
            student.email,
            "book-lent",
            {
                "student_name": student.name,
                "book_title": book.title,
                "book_author": book.author,
                "book_isbn": book.isbn,
                "borrowed_date": format_date(borrowing.borrowed_at),
                "due_date": format_date(borrowing.due_date),
            },
        )
        await self.notifier.notify(
            student.id,
            NotificationTypeEnum.lend,
            "Book Borrowed",
            f"You have borrowed \"{book.title}\". Please return it by {format_date(borrowing.due_date)}.",
            sender_id=staff.id,
            related_book_id=book.id,
            related_borrowing_id=borrowing.id,
        )
        await record_notice(self.session, borrowing.id, NoticeTypeEnum.lend, now)
        return borrowing

    async def return_book(self, borrowing_id: int, request: ReturnRequest, staff: User):
        """Returns (borrowing, fine); fine is None when nothing was owed."""
        now = self.clock.now()
        async with borrowing_locks.hold(borrowing_id):
            borrowing = await self.get_borrowing(borrowing_id, refresh=True)
            self._require_active(borrowing, "return")

            late_days = borrowing.days_overdue(now)
            frozen = borrowing.calculated_fine(now, self.settings.daily_fine_amount)

            borrowing.returned_at = now
            borrowing.returned_to = staff.id
            borrowing.status = BorrowingStatusEnum.returned.value
            borrowing.return_condition = request.condition.value
            borrowing.return_notes = request.notes
            borrowing.fine_amount = frozen

            fine = None
            if frozen > 0:
                fine, _ = await upsert_overdue_fine(
                    self.session, borrowing, frozen, now,
                    description=f"Returned {late_days} day(s) late",
                )
            self.session.add(borrowing)
            await release_copy(self.session, borrowing.book_id)
            await commit_or_conflict(self.session)
            await self.session.refresh(borrowing)
            if fine is not None:
                await self.session.refresh(fine)

        audit_event_logger.log_borrowing_operation(
            "return", borrowing.id, staff.id,
            {"condition": borrowing.return_condition, "fine_amount": borrowing.fine_amount}
        )

        book = await self.session.get(Book, borrowing.book_id)
        message = f"You have returned \"{book.title}\"."
        if fine is not None and fine.status in UNPAID_STATUSES:
            message += f" A fine of {fine.outstanding_amount} is outstanding on this loan."
        await self.notifier.notify(
            borrowing.student_id,
            NotificationTypeEnum.return_,
            "Book Returned",
            message,
            sender_id=staff.id,
            related_book_id=book.id,
            related_borrowing_id=borrowing.id,
            related_fine_id=fine.id if fine is not None else None,
        )
        await record_notice(self.session, borrowing.id, NoticeTypeEnum.return_, now, NoticeChannelEnum.in_app)
        return borrowing, fine

    async def extend(self, borrowing_id: int, request: ExtendRequest, staff: User) -> Borrowing:
        now = self.clock.now()
        new_due_date = to_naive_utc(request.new_due_date)

        async with borrowing_locks.hold(borrowing_id):
            borrowing = await self.get_borrowing(borrowing_id, refresh=True)
            self._require_active(borrowing, "extend")

            result = await self.session.exec(
                select(func.count(BorrowingExtension.id)).where(
                    BorrowingExtension.borrowing_id == borrowing.id
                )
            )
            if result.one() >= self.settings.max_extensions:
                raise ValidationError(
                    f"Borrowing has reached the maximum of {self.settings.max_extensions} extensions"
                )
            if new_due_date <= borrowing.due_date:
                raise ValidationError("New due date must be after the current due date")
            if new_due_date > borrowing.due_date + timedelta(days=self.settings.max_extension_days):
                raise ValidationError(
                    f"Due date can be extended by at most {self.settings.max_extension_days} days"
                )

            previous_due_date = borrowing.due_date
            self.session.add(
                BorrowingExtension(
                    borrowing_id=borrowing.id,
                    extended_at=now,
                    extended_by=staff.id,
                    previous_due_date=previous_due_date,
                    new_due_date=new_due_date,
                    reason=request.reason,
                )
            )
            borrowing.due_date = new_due_date
            if borrowing.status == BorrowingStatusEnum.overdue.value and new_due_date > now:
                borrowing.status = BorrowingStatusEnum.borrowed.value
            self.session.add(borrowing)
            await self.session.commit()
            await self.session.refresh(borrowing)

        audit_event_logger.log_borrowing_operation(
            "extend", borrowing.id, staff.id,
            {"previous_due_date": previous_due_date, "new_due_date": new_due_date, "reason": request.reason}
        )
        await self.notifier.notify(
            borrowing.student_id,
            NotificationTypeEnum.system,
            "Due Date Extended",
            f"Your loan is now due on {format_date(new_due_date)}.",
            sender_id=staff.id,
            related_book_id=borrowing.book_id,
            related_borrowing_id=borrowing.id,
        )
        return borrowing

    async def mark_lost(self, borrowing_id: int, request: MarkLostRequest, staff: User):
        """Returns (borrowing, fine). The copy stays out of circulation."""
        now = self.clock.now()
        amount = Decimal(request.fine_amount)

        async with borrowing_locks.hold(borrowing_id):
            borrowing = await self.get_borrowing(borrowing_id, refresh=True)
            self._require_active(borrowing, "mark as lost")

            borrowing.status = BorrowingStatusEnum.lost.value
            borrowing.fine_amount = amount
            borrowing.fine_paid = False
            borrowing.fine_paid_at = None
            borrowing.return_notes = request.notes or "Book marked as lost"

            fine = await get_fine_for_borrowing(self.session, borrowing.id)
            if fine is None and amount > 0:
                fine = Fine(
                    student_id=borrowing.student_id,
                    borrowing_id=borrowing.id,
                    amount=amount,
                    reason=FineReasonEnum.loss.value,
                    description=borrowing.return_notes,
                    updated_by=staff.id,
                    created_at=now,
                    updated_at=now,
                )
            elif fine is not None:
                fine.reason = FineReasonEnum.loss.value
                fine.amount = amount
                fine.description = borrowing.return_notes
                fine.updated_by = staff.id
                if fine.is_fully_paid:
                    fine.status = FineStatusEnum.paid.value
                    fine.is_paid = True
                    fine.paid_at = fine.paid_at or now
                    borrowing.fine_paid = True
                    borrowing.fine_paid_at = fine.paid_at
                else:
                    fine.status = FineStatusEnum.pending.value
                    fine.is_paid = False
                    fine.paid_at = None
            if fine is not None:
                self.session.add(fine)
            self.session.add(borrowing)
            await commit_or_conflict(self.session)
            await self.session.refresh(borrowing)
            if fine is not None:
                await self.session.refresh(fine)

        audit_event_logger.log_borrowing_operation(
            "mark_lost", borrowing.id, staff.id, {"fine_amount": amount}
        )

        book = await self.session.get(Book, borrowing.book_id)
        await self.notifier.notify(
            borrowing.student_id,
            NotificationTypeEnum.fine,
            "Book Marked as Lost",
            f"\"{book.title}\" has been marked as lost. A fine of {amount} has been issued.",
            sender_id=staff.id,
            related_book_id=book.id,
            related_borrowing_id=borrowing.id,
            related_fine_id=fine.id if fine is not None else None,
            priority=NotificationPriorityEnum.high,
        )
        await record_notice(self.session, borrowing.id, NoticeTypeEnum.fine, now, NoticeChannelEnum.in_app)
        return borrowing, fine

    async def overdue(self) -> List[Borrowing]:
        now = self.clock.now()
        result = await self.session.exec(
            select(Borrowing)
            .where(
                Borrowing.due_date < now,
                Borrowing.returned_at.is_(None),
                Borrowing.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Borrowing.due_date)
        )
        return list(result.all())

    async def due_soon(self, days: Optional[int] = None) -> List[Borrowing]:
        now = self.clock.now()
        window = self.settings.reminder_days_before_due if days is None else days
        result = await self.session.exec(
            select(Borrowing)
            .where(
                Borrowing.due_date >= now,
                Borrowing.due_date <= now + timedelta(days=window),
                Borrowing.returned_at.is_(None),
                Borrowing.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Borrowing.due_date)
        )
        return list(result.all())

    async def student_borrowings(
        self,
        student_id: int,
        requester: User,
        status: Optional[BorrowingStatusEnum] = None,
    ) -> List[Borrowing]:
        if requester.type not in StaffRoleList and requester.id != student_id:
            raise ForbiddenError("You can only view your own borrowings")
        student = await self.session.get(User, student_id)
        if student is None:
            raise NotFoundError("Student", student_id)

        statement = select(Borrowing).where(Borrowing.student_id == student_id)
        if status is not None:
            statement = statement.where(Borrowing.status == status.value)
        result = await self.session.exec(statement.order_by(Borrowing.borrowed_at.desc()))
        return list(result.all())

    async def active_borrowings(self, user: User) -> List[Borrowing]:
        result = await self.session.exec(
            select(Borrowing)
            .where(Borrowing.student_id == user.id, Borrowing.status.in_(ACTIVE_STATUSES))
            .order_by(Borrowing.due_date)
        )
        return list(result.all())

    async def detail(self, borrowing_id: int, requester: User) -> BorrowingDetail:
        borrowing = await self.get_borrowing(borrowing_id)
        if requester.type not in StaffRoleList and requester.id != borrowing.student_id:
            raise ForbiddenError("You can only view your own borrowings")

        book = await self.session.get(Book, borrowing.book_id)
        student = await self.session.get(User, borrowing.student_id)
        extensions = await self.session.exec(
            select(BorrowingExtension)
            .where(BorrowingExtension.borrowing_id == borrowing.id)
            .order_by(BorrowingExtension.extended_at)
        )
        notices = await self.session.exec(
            select(BorrowingNotice)
            .where(BorrowingNotice.borrowing_id == borrowing.id)
            .order_by(BorrowingNotice.sent_at)
        )

        public = self.to_public(borrowing)
        return BorrowingDetail(
            **public.model_dump(),
            book=BookSummary.model_validate(book) if book else None,
            student=UserPublic.model_validate(student) if student else None,
            extensions=[ExtensionPublic.model_validate(e) for e in extensions.all()],
            notifications_sent=[NoticePublic.model_validate(n) for n in notices.all()],
        )


def days_until(due_date: datetime, now: datetime) -> int:
    remaining = (due_date - now).total_seconds() / SECONDS_PER_DAY
    return max(0, math.ceil(remaining))
