"""
Overdue accrual engine.

`run_overdue_accrual` is the only background writer of overdue fines.
Every borrowing is processed in its own session under its borrowing lock,
so one bad record never stops the pass.
"""

from datetime import datetime, timedelta
from typing import Dict

from sqlmodel import select

from app.core.logging import jobs_logger
from app.core.settings import Settings, settings as default_settings
from app.src.models.books import Book
from app.src.models.borrowings import Borrowing
from app.src.models.users import User
from app.src.schema.borrowings import BorrowingStatusEnum, NoticeTypeEnum
from app.src.schema.notifications import NotificationPriorityEnum, NotificationTypeEnum
from app.src.services.borrowings import (
    ACTIVE_STATUSES,
    days_until,
    format_date,
    notice_sent_on,
    record_notice,
)
from app.src.services.fines import commit_or_conflict, fine_summary, upsert_overdue_fine, week_window
from app.src.services.locks import borrowing_locks
from app.src.services.notifications import NotificationService


async def run_overdue_accrual(
    session_factory,
    now: datetime,
    notifier: NotificationService,
    settings: Settings = default_settings,
) -> Dict[str, int]:
    counts = {
        "processed": 0,
        "marked_overdue": 0,
        "fines_created": 0,
        "fines_updated": 0,
        "notices_sent": 0,
        "errors": 0,
    }

    async with session_factory() as session:
        result = await session.exec(
            select(Borrowing.id).where(
                Borrowing.due_date < now,
                Borrowing.returned_at.is_(None),
                Borrowing.status.in_(ACTIVE_STATUSES),
            )
        )
        borrowing_ids = list(result.all())

    for borrowing_id in borrowing_ids:
        try:
            async with session_factory() as session:
                async with borrowing_locks.hold(borrowing_id):
                    accrued = await _accrue_borrowing(session, borrowing_id, now, settings, counts)
                # Notices are sent outside the borrowing lock
                if accrued is not None:
                    await _send_overdue_notice(session, *accrued, now, notifier, settings, counts)
        except Exception as e:
            counts["errors"] += 1
            jobs_logger.error(
                f"Overdue accrual failed for borrowing {borrowing_id}: {e}",
                extra={"event_type": "accrual_error", "borrowing_id": borrowing_id},
                exc_info=e
            )

    jobs_logger.info(
        f"Overdue accrual pass complete: {counts}",
        extra={"event_type": "accrual_pass", **counts}
    )
    return counts


async def _accrue_borrowing(session, borrowing_id: int, now: datetime, settings, counts):
    """Mark one loan overdue and bring its fine up to date; None when it needs nothing."""
    # Re-read under the lock; a return may have landed since the scan
    borrowing = await session.get(Borrowing, borrowing_id)
    if borrowing is None or borrowing.is_terminal or borrowing.due_date >= now:
        return None
    counts["processed"] += 1

    if borrowing.status != BorrowingStatusEnum.overdue.value:
        borrowing.status = BorrowingStatusEnum.overdue.value
        counts["marked_overdue"] += 1

    amount = borrowing.calculated_fine(now, settings.daily_fine_amount)
    borrowing.fine_amount = amount
    session.add(borrowing)
    fine, outcome = await upsert_overdue_fine(session, borrowing, amount, now)
    if outcome == "created":
        counts["fines_created"] += 1
    elif outcome == "updated":
        counts["fines_updated"] += 1
    await commit_or_conflict(session)
    return borrowing, fine


async def _send_overdue_notice(session, borrowing: Borrowing, fine, now: datetime, notifier, settings, counts):
    if await notice_sent_on(session, borrowing.id, NoticeTypeEnum.overdue, now):
        return

    student = await session.get(User, borrowing.student_id)
    book = await session.get(Book, borrowing.book_id)
    days = borrowing.days_overdue(now)
    amount = borrowing.fine_amount

    await notifier.send_email(
        student.email,
        "overdue",
        {
            "student_name": student.name,
            "book_title": book.title,
            "book_author": book.author,
            "due_date": format_date(borrowing.due_date),
            "days_overdue": days,
            "current_fine": amount,
            "daily_fine_rate": settings.daily_fine_amount,
        },
    )
    await notifier.notify(
        student.id,
        NotificationTypeEnum.overdue,
        "Book Overdue",
        f"\"{book.title}\" is {days} day(s) overdue. Current fine: {amount}.",
        related_book_id=book.id,
        related_borrowing_id=borrowing.id,
        related_fine_id=fine.id if fine is not None else None,
        priority=NotificationPriorityEnum.high,
    )
    await record_notice(session, borrowing.id, NoticeTypeEnum.overdue, now)
    counts["notices_sent"] += 1


async def send_due_date_reminders(
    session_factory,
    now: datetime,
    notifier: NotificationService,
    settings: Settings = default_settings,
) -> Dict[str, int]:
    counts = {"reminders_sent": 0, "errors": 0}

    async with session_factory() as session:
        result = await session.exec(
            select(Borrowing.id).where(
                Borrowing.due_date >= now,
                Borrowing.due_date <= now + timedelta(days=settings.reminder_days_before_due),
                Borrowing.returned_at.is_(None),
                Borrowing.status.in_(ACTIVE_STATUSES),
            )
        )
        borrowing_ids = list(result.all())

    for borrowing_id in borrowing_ids:
        try:
            async with session_factory() as session:
                if await notice_sent_on(session, borrowing_id, NoticeTypeEnum.reminder, now):
                    continue
                borrowing = await session.get(Borrowing, borrowing_id)
                student = await session.get(User, borrowing.student_id)
                book = await session.get(Book, borrowing.book_id)
                remaining = days_until(borrowing.due_date, now)

                await notifier.send_email(
                    student.email,
                    "reminder",
                    {
                        "student_name": student.name,
                        "book_title": book.title,
                        "book_author": book.author,
                        "due_date": format_date(borrowing.due_date),
                        "days_remaining": remaining,
                    },
                )
                await notifier.notify(
                    student.id,
                    NotificationTypeEnum.reminder,
                    "Book Due Soon",
                    f"\"{book.title}\" is due on {format_date(borrowing.due_date)}.",
                    related_book_id=book.id,
                    related_borrowing_id=borrowing.id,
                )
                await record_notice(session, borrowing.id, NoticeTypeEnum.reminder, now)
                counts["reminders_sent"] += 1
        except Exception as e:
            counts["errors"] += 1
            jobs_logger.error(
                f"Due date reminder failed for borrowing {borrowing_id}: {e}",
                extra={"event_type": "reminder_error", "borrowing_id": borrowing_id},
                exc_info=e
            )

    jobs_logger.info(
        f"Due date reminders sent: {counts['reminders_sent']}",
        extra={"event_type": "reminder_pass", **counts}
    )
    return counts


async def report_weekly_fines(session_factory, now: datetime) -> Dict:
    since, until = week_window(now)
    async with session_factory() as session:
        summary = await fine_summary(session, since, until)

    jobs_logger.info(
        f"Weekly fine summary: {summary['count']} fines, total {summary['total']}, "
        f"paid {summary['paid']}, unpaid {summary['unpaid']}",
        extra={"event_type": "weekly_fine_summary", "since": since, **summary}
    )
    return summary
