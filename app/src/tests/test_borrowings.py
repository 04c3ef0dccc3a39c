"""
Tests for the borrowing lifecycle: lend, return, extend and mark-lost.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import DateTime
from sqlmodel import select

from app.core.error_handling import ForbiddenError, NotFoundError, ValidationError
from app.src.models.borrowings import Borrowing, BorrowingNotice, days_overdue, overdue_fine
from app.src.models.fines import Fine
from app.src.models.notifications import Notification
from app.src.schema.borrowings import ExtendRequest, LendRequest, MarkLostRequest, ReturnRequest
from app.src.schema.fines import FineStatusUpdate
from app.src.services.borrowings import MAX_BORROWINGS, BorrowingService
from app.src.tests.utils import START


async def lend(service, seed, student=None, book=None):
    return await service.lend(
        LendRequest(student_id=(student or seed.alice).id, book_id=(book or seed.book).id),
        seed.staff,
    )


class TestFineCalculation:
    """days_overdue and overdue_fine"""

    @pytest.mark.parametrize("late,expected_days", [
        (timedelta(0), 0),
        (timedelta(seconds=1), 1),
        (timedelta(hours=23), 1),
        (timedelta(days=1), 1),
        (timedelta(days=1, minutes=1), 2),
        (timedelta(days=3), 3),
    ])
    def test_days_overdue_counts_started_days(self, late, expected_days):
        due = START
        assert days_overdue(due, due + late) == expected_days

    def test_not_yet_due_is_zero(self):
        assert days_overdue(START, START - timedelta(days=4)) == 0
        assert overdue_fine(START, START - timedelta(days=4)) == Decimal("0")

    def test_three_days_late_costs_fifteen(self):
        assert overdue_fine(START - timedelta(days=3), START) == Decimal("15")

    def test_terminal_borrowing_reports_frozen_fine(self):
        borrowing = Borrowing(
            student_id=1, book_id=1, staff_id=1, borrowed_at=START - timedelta(days=20),
            due_date=START - timedelta(days=10), status="returned", returned_at=START - timedelta(days=5),
            fine_amount=Decimal("25"),
        )
        assert borrowing.days_overdue(START) == 0
        assert borrowing.calculated_fine(START) == Decimal("25")


class TestLend:
    """Tests for BorrowingService.lend"""

    async def test_lend_success(self, borrowing_service, session, seed, clock, email_sender):
        """
        Happy path: staff lends an available book to an eligible student.

        Expected behavior:
        - Borrowing is created with status borrowed
        - Due date is borrowed_at plus the book's lending period
        - One copy is taken off the shelf
        - Student's lifetime borrow counter goes up
        - Lend email, in-app notification and lend notice are recorded
        """
        borrowing = await lend(borrowing_service, seed)

        assert borrowing.id is not None
        assert borrowing.status == "borrowed"
        assert borrowing.borrowed_at == clock.now()
        assert borrowing.due_date == clock.now() + timedelta(days=seed.book.lending_period)
        assert borrowing.staff_id == seed.staff.id

        await session.refresh(seed.book)
        await session.refresh(seed.alice)
        assert seed.book.available_copies == 2
        assert seed.alice.total_books_borrowed == 1

        assert email_sender.templates() == ["book-lent"]
        assert email_sender.sent[0]["to"] == "alice@example.com"

        notifications = (await session.exec(select(Notification))).all()
        assert [n.type for n in notifications] == ["lend"]
        notices = (await session.exec(select(BorrowingNotice))).all()
        assert [n.type for n in notices] == ["lend"]

    async def test_lend_uses_book_lending_period(self, borrowing_service, seed, clock):
        borrowing = await lend(borrowing_service, seed, book=seed.short_loan)
        assert borrowing.due_date == clock.now() + timedelta(days=5)

    async def test_lend_unavailable_book_fails_and_leaves_counter(self, borrowing_service, session, seed):
        """
        Edge case: no copies on the shelf.

        Expected behavior:
        - ValidationError "Book is not available for borrowing"
        - available_copies stays at 0
        - No borrowing row is written
        """
        with pytest.raises(ValidationError) as exc_info:
            await lend(borrowing_service, seed, book=seed.no_copies)
        assert exc_info.value.detail == "Book is not available for borrowing"

        await session.refresh(seed.no_copies)
        assert seed.no_copies.available_copies == 0
        assert (await session.exec(select(Borrowing))).all() == []

    async def test_lend_blocked_by_unpaid_fine(self, borrowing_service, test_db, seed):
        old = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=30), START - timedelta(days=10),
            status="returned",
        )
        await test_db.add_fine(old, Decimal("50"))

        with pytest.raises(ValidationError) as exc_info:
            await lend(borrowing_service, seed)
        assert "unpaid fines totaling 50" in exc_info.value.detail
        assert "Please clear fines before borrowing." in exc_info.value.detail

    async def test_lend_blocked_by_disputed_fine(self, borrowing_service, test_db, seed):
        old = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=30), START - timedelta(days=10),
            status="returned",
        )
        await test_db.add_fine(old, Decimal("10"), status="disputed")

        with pytest.raises(ValidationError):
            await lend(borrowing_service, seed)

    @pytest.mark.parametrize("status", ["paid", "waived"])
    async def test_settled_fines_do_not_block(self, borrowing_service, test_db, seed, status):
        old = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=30), START - timedelta(days=10),
            status="returned",
        )
        paid = Decimal("10") if status == "paid" else Decimal("0")
        await test_db.add_fine(old, Decimal("10"), status=status, paid_amount=paid)

        borrowing = await lend(borrowing_service, seed)
        assert borrowing.status == "borrowed"

    async def test_lend_blocked_at_borrowing_limit(self, borrowing_service, test_db, seed):
        """
        Edge case: student already holds MAX_BORROWINGS active loans.

        Expected behavior:
        - ValidationError naming the limit of 5 books
        """
        for _ in range(MAX_BORROWINGS):
            await test_db.add_borrowing(seed.alice, seed.book, seed.staff, START, START + timedelta(days=10))

        with pytest.raises(ValidationError) as exc_info:
            await lend(borrowing_service, seed, book=seed.short_loan)
        assert exc_info.value.detail == "Student has reached the maximum borrowing limit of 5 books"

    async def test_returned_loans_do_not_count_toward_limit(self, borrowing_service, test_db, seed):
        for _ in range(MAX_BORROWINGS):
            await test_db.add_borrowing(
                seed.alice, seed.book, seed.staff, START - timedelta(days=5), START, status="returned"
            )
        borrowing = await lend(borrowing_service, seed)
        assert borrowing.id is not None

    async def test_lend_unknown_student(self, borrowing_service, seed):
        with pytest.raises(NotFoundError):
            await borrowing_service.lend(LendRequest(student_id=9999, book_id=seed.book.id), seed.staff)

    async def test_lend_to_staff_member_is_rejected(self, borrowing_service, seed):
        with pytest.raises(NotFoundError):
            await borrowing_service.lend(LendRequest(student_id=seed.staff.id, book_id=seed.book.id), seed.staff)

    async def test_lend_inactive_student(self, borrowing_service, seed):
        with pytest.raises(ValidationError):
            await lend(borrowing_service, seed, student=seed.inactive_student)

    @pytest.mark.parametrize("book_id", [9999, None])
    async def test_lend_unknown_or_inactive_book(self, borrowing_service, seed, book_id):
        book_id = book_id or seed.retired.id
        with pytest.raises(NotFoundError):
            await borrowing_service.lend(LendRequest(student_id=seed.alice.id, book_id=book_id), seed.staff)

    async def test_lend_race_on_last_copy_has_one_winner(self, session_factory, session, seed, clock, notifier):
        """
        Edge case: two lends race for the last copy.

        The losing request read the book while a copy was still on the
        shelf; the conditional update is what turns it away.

        Expected behavior:
        - Exactly one borrowing exists
        - The loser gets the "not available" ValidationError
        - available_copies ends at 0
        """
        async with session_factory() as winner_session, session_factory() as loser_session:
            winner = BorrowingService(winner_session, clock, notifier)
            loser = BorrowingService(loser_session, clock, notifier)

            # Stale read: the loser already holds the book with one copy available
            stale = await loser_session.get(type(seed.last_copy), seed.last_copy.id)
            assert stale.available_copies == 1

            await winner.lend(LendRequest(student_id=seed.alice.id, book_id=seed.last_copy.id), seed.staff)
            with pytest.raises(ValidationError) as exc_info:
                await loser.lend(LendRequest(student_id=seed.bob.id, book_id=seed.last_copy.id), seed.staff)
            assert exc_info.value.detail == "Book is not available for borrowing"

        await session.refresh(seed.last_copy)
        assert seed.last_copy.available_copies == 0
        borrowings = (await session.exec(select(Borrowing).where(Borrowing.book_id == seed.last_copy.id))).all()
        assert len(borrowings) == 1
        assert borrowings[0].student_id == seed.alice.id

    async def test_concurrent_lends_of_last_copy(self, session_factory, session, seed, clock, notifier):
        async def lend_in_own_session(student):
            async with session_factory() as own_session:
                service = BorrowingService(own_session, clock, notifier)
                return await service.lend(
                    LendRequest(student_id=student.id, book_id=seed.last_copy.id), seed.staff
                )

        results = await asyncio.gather(
            lend_in_own_session(seed.alice), lend_in_own_session(seed.bob), return_exceptions=True
        )

        lent = [r for r in results if isinstance(r, Borrowing)]
        refused = [r for r in results if isinstance(r, ValidationError)]
        assert len(lent) == 1
        assert len(refused) == 1
        assert refused[0].error_code == "BOOK_UNAVAILABLE"

        await session.refresh(seed.last_copy)
        assert seed.last_copy.available_copies == 0

    async def test_concurrent_lends_respect_borrowing_limit(self, session_factory, test_db, session, seed, clock, notifier):
        """
        Edge case: a student one loan short of the limit is served twice at once.

        Expected behavior:
        - One lend goes through, the other hits the limit
        - The student ends with exactly MAX_BORROWINGS active loans
        """
        for _ in range(MAX_BORROWINGS - 1):
            await test_db.add_borrowing(seed.alice, seed.book, seed.staff, START, START + timedelta(days=10))

        async def lend_in_own_session(book):
            async with session_factory() as own_session:
                service = BorrowingService(own_session, clock, notifier)
                return await service.lend(LendRequest(student_id=seed.alice.id, book_id=book.id), seed.staff)

        results = await asyncio.gather(
            lend_in_own_session(seed.book), lend_in_own_session(seed.short_loan), return_exceptions=True
        )

        refused = [r for r in results if isinstance(r, ValidationError)]
        assert len(refused) == 1
        assert refused[0].error_code == "BORROWING_LIMIT"
        active = (await session.exec(
            select(Borrowing).where(Borrowing.student_id == seed.alice.id, Borrowing.status == "borrowed")
        )).all()
        assert len(active) == MAX_BORROWINGS

    async def test_lend_without_email_on_file_still_succeeds(self, borrowing_service, seed, email_sender):
        borrowing = await lend(borrowing_service, seed, student=seed.carol)
        assert borrowing.status == "borrowed"
        assert email_sender.sent == []

    async def test_failing_email_does_not_undo_lend(self, session, seed, clock, session_factory):
        from app.core.error_handling import DependencyFailure
        from app.src.services.notifications import NotificationService

        async def broken_sender(to, template_name, data):
            raise DependencyFailure("smtp", "connection refused")

        service = BorrowingService(session, clock, NotificationService(session_factory, broken_sender))
        borrowing = await lend(service, seed)

        await session.refresh(seed.book)
        assert borrowing.status == "borrowed"
        assert seed.book.available_copies == 2


class TestReturn:
    """Tests for BorrowingService.return_book"""

    async def test_return_on_time(self, borrowing_service, session, seed, clock):
        """
        Happy path: lend then return before the due date.

        Expected behavior:
        - Status returned, returned_at and returned_to set
        - fine_amount frozen at 0 and no fine row
        - Availability is back to its original value
        """
        borrowing = await lend(borrowing_service, seed)
        clock.advance(days=3)

        returned, fine = await borrowing_service.return_book(
            borrowing.id, ReturnRequest(condition="excellent", notes="Fine shape"), seed.staff
        )

        assert returned.status == "returned"
        assert returned.returned_at == clock.now()
        assert returned.returned_to == seed.staff.id
        assert returned.return_condition == "excellent"
        assert returned.return_notes == "Fine shape"
        assert returned.fine_amount == Decimal("0")
        assert fine is None

        await session.refresh(seed.book)
        assert seed.book.available_copies == 3

    async def test_late_return_freezes_fine_and_creates_fine_row(self, borrowing_service, session, seed, clock):
        borrowing = await lend(borrowing_service, seed, book=seed.short_loan)
        clock.advance(days=8)

        returned, fine = await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        assert returned.fine_amount == Decimal("15")
        assert fine is not None
        assert fine.amount == Decimal("15")
        assert fine.reason == "overdue"
        assert fine.status == "pending"

        # Frozen: time passing does not change it
        clock.advance(days=10)
        assert returned.calculated_fine(clock.now()) == Decimal("15")
        assert returned.days_overdue(clock.now()) == 0

    async def test_return_settles_existing_accrual_fine(self, borrowing_service, test_db, session, seed, clock):
        borrowing = await lend(borrowing_service, seed, book=seed.short_loan)
        await test_db.add_fine(borrowing, Decimal("10"))
        clock.advance(days=8)

        _, fine = await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        fines = (await session.exec(select(Fine).where(Fine.borrowing_id == borrowing.id))).all()
        assert len(fines) == 1
        assert fine.id == fines[0].id
        assert fine.amount == Decimal("15")

    async def test_return_twice_fails(self, borrowing_service, session, seed):
        borrowing = await lend(borrowing_service, seed)
        await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        with pytest.raises(ValidationError):
            await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        await session.refresh(seed.book)
        assert seed.book.available_copies == 3

    async def test_return_lost_borrowing_fails(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        await borrowing_service.mark_lost(borrowing.id, MarkLostRequest(fine_amount=Decimal("40")), seed.staff)

        with pytest.raises(ValidationError):
            await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

    async def test_return_unknown_borrowing(self, borrowing_service, seed):
        with pytest.raises(NotFoundError):
            await borrowing_service.return_book(9999, ReturnRequest(), seed.staff)

    async def test_return_notification_mentions_fine(self, borrowing_service, session, seed, clock):
        borrowing = await lend(borrowing_service, seed, book=seed.short_loan)
        clock.advance(days=8)
        await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        result = await session.exec(select(Notification).where(Notification.type == "return"))
        notification = result.one()
        assert "15" in notification.message
        assert notification.related_fine_id is not None

    async def test_return_with_waived_fine_owes_nothing(
        self, borrowing_service, fine_service, test_db, session, seed, clock
    ):
        borrowing = await lend(borrowing_service, seed, book=seed.short_loan)
        clock.advance(days=8)
        existing = await test_db.add_fine(borrowing, Decimal("15"))
        await fine_service.update_status(existing.id, FineStatusUpdate(status="waived", notes="Hardship"), seed.staff)

        _, fine = await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)

        assert fine.status == "waived"
        result = await session.exec(select(Notification).where(Notification.type == "return"))
        assert "fine" not in result.one().message.lower()


class TestExtend:
    """Tests for BorrowingService.extend"""

    async def test_extend_moves_due_date_and_logs_extension(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        previous_due = borrowing.due_date
        new_due = previous_due + timedelta(days=14)

        extended = await borrowing_service.extend(
            borrowing.id, ExtendRequest(new_due_date=new_due, reason="Thesis work"), seed.staff
        )
        assert extended.due_date == new_due

        detail = await borrowing_service.detail(borrowing.id, seed.staff)
        assert len(detail.extensions) == 1
        assert detail.extensions[0].previous_due_date == previous_due
        assert detail.extensions[0].new_due_date == new_due
        assert detail.extensions[0].reason == "Thesis work"

    async def test_extend_overdue_loan_back_to_borrowed(self, borrowing_service, test_db, seed, clock):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=2),
            status="overdue",
        )
        extended = await borrowing_service.extend(
            borrowing.id, ExtendRequest(new_due_date=START + timedelta(days=7), reason="Illness"), seed.staff
        )
        assert extended.status == "borrowed"

    async def test_extend_does_not_reduce_accrued_fine(self, borrowing_service, test_db, session, seed):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=2),
            status="overdue",
        )
        fine = await test_db.add_fine(borrowing, Decimal("10"))
        borrowing.fine_amount = Decimal("10")
        session.add(borrowing)
        await session.commit()

        await borrowing_service.extend(
            borrowing.id, ExtendRequest(new_due_date=START + timedelta(days=7), reason="Illness"), seed.staff
        )
        await session.refresh(fine)
        assert fine.amount == Decimal("10")

        _, returned_fine = await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)
        assert returned_fine.amount == Decimal("10")

    async def test_extend_requires_later_date(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        with pytest.raises(ValidationError):
            await borrowing_service.extend(
                borrowing.id, ExtendRequest(new_due_date=borrowing.due_date, reason="No"), seed.staff
            )

    async def test_extend_capped_in_days(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        with pytest.raises(ValidationError):
            await borrowing_service.extend(
                borrowing.id,
                ExtendRequest(new_due_date=borrowing.due_date + timedelta(days=31), reason="Too long"),
                seed.staff,
            )

    async def test_extend_capped_in_count(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        due = borrowing.due_date
        for _ in range(3):
            due = due + timedelta(days=7)
            await borrowing_service.extend(borrowing.id, ExtendRequest(new_due_date=due, reason="Again"), seed.staff)

        with pytest.raises(ValidationError) as exc_info:
            await borrowing_service.extend(
                borrowing.id, ExtendRequest(new_due_date=due + timedelta(days=7), reason="Again"), seed.staff
            )
        assert "maximum of 3 extensions" in exc_info.value.detail

    async def test_extend_returned_loan_fails(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        await borrowing_service.return_book(borrowing.id, ReturnRequest(), seed.staff)
        with pytest.raises(ValidationError):
            await borrowing_service.extend(
                borrowing.id,
                ExtendRequest(new_due_date=borrowing.due_date + timedelta(days=3), reason="Late"),
                seed.staff,
            )


class TestMarkLost:
    """Tests for BorrowingService.mark_lost"""

    async def test_mark_lost_creates_loss_fine_and_keeps_copy_out(self, borrowing_service, session, seed):
        """
        Happy path: a borrowed book is reported lost.

        Expected behavior:
        - Status lost with the given fine_amount and default notes
        - A pending loss fine exists for the borrowing
        - The copy is not returned to the shelf
        - A high priority fine notification is sent
        """
        borrowing = await lend(borrowing_service, seed)
        lost, fine = await borrowing_service.mark_lost(
            borrowing.id, MarkLostRequest(fine_amount=Decimal("450")), seed.staff
        )

        assert lost.status == "lost"
        assert lost.fine_amount == Decimal("450")
        assert lost.return_notes == "Book marked as lost"
        assert fine.reason == "loss"
        assert fine.amount == Decimal("450")
        assert fine.status == "pending"

        await session.refresh(seed.book)
        assert seed.book.available_copies == 2

        result = await session.exec(select(Notification).where(Notification.type == "fine"))
        assert result.one().priority == "high"

    async def test_mark_lost_converts_existing_overdue_fine(self, borrowing_service, test_db, session, seed):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=3),
            status="overdue",
        )
        existing = await test_db.add_fine(borrowing, Decimal("15"))

        _, fine = await borrowing_service.mark_lost(
            borrowing.id, MarkLostRequest(fine_amount=Decimal("300"), notes="Left on a train"), seed.staff
        )

        assert fine.id == existing.id
        assert fine.reason == "loss"
        assert fine.amount == Decimal("300")
        fines = (await session.exec(select(Fine).where(Fine.borrowing_id == borrowing.id))).all()
        assert len(fines) == 1

    @pytest.mark.parametrize("terminal", ["returned", "lost"])
    async def test_mark_lost_rejects_terminal(self, borrowing_service, test_db, seed, terminal):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=3),
            status=terminal,
        )
        with pytest.raises(ValidationError):
            await borrowing_service.mark_lost(borrowing.id, MarkLostRequest(fine_amount=Decimal("10")), seed.staff)


class TestQueries:
    """Overdue, due-soon and per-student listings"""

    async def test_overdue_and_due_soon_lists(self, borrowing_service, test_db, seed):
        overdue = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=1)
        )
        due_soon = await test_db.add_borrowing(
            seed.bob, seed.book, seed.staff, START - timedelta(days=20), START + timedelta(days=1)
        )
        await test_db.add_borrowing(
            seed.carol, seed.book, seed.staff, START - timedelta(days=20), START + timedelta(days=20)
        )
        await test_db.add_borrowing(
            seed.carol, seed.last_copy, seed.staff, START - timedelta(days=20), START - timedelta(days=3),
            status="returned",
        )

        assert [b.id for b in await borrowing_service.overdue()] == [overdue.id]
        assert [b.id for b in await borrowing_service.due_soon()] == [due_soon.id]
        assert len(await borrowing_service.due_soon(days=30)) == 2

    async def test_public_view_carries_derived_figures(self, borrowing_service, test_db, seed):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=20), START - timedelta(days=3)
        )
        public = borrowing_service.to_public(borrowing)
        assert public.days_overdue == 3
        assert public.calculated_fine == Decimal("15")

    async def test_student_cannot_list_another_students_loans(self, borrowing_service, seed):
        with pytest.raises(ForbiddenError):
            await borrowing_service.student_borrowings(seed.bob.id, seed.alice)

    async def test_student_borrowings_status_filter(self, borrowing_service, test_db, seed):
        await test_db.add_borrowing(seed.alice, seed.book, seed.staff, START, START + timedelta(days=3))
        await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START - timedelta(days=9), START - timedelta(days=2),
            status="returned",
        )
        from app.src.schema.borrowings import BorrowingStatusEnum

        returned = await borrowing_service.student_borrowings(
            seed.alice.id, seed.alice, BorrowingStatusEnum.returned
        )
        assert [b.status for b in returned] == ["returned"]
        assert len(await borrowing_service.active_borrowings(seed.alice)) == 1

    async def test_detail_forbidden_for_other_student(self, borrowing_service, seed):
        borrowing = await lend(borrowing_service, seed)
        with pytest.raises(ForbiddenError):
            await borrowing_service.detail(borrowing.id, seed.bob)

        detail = await borrowing_service.detail(borrowing.id, seed.alice)
        assert detail.book.title == "Clean Code"
        assert [n.type for n in detail.notifications_sent] == ["lend"]


class TestStoredTimestamps:
    """Timestamps are stored as naive UTC"""

    @pytest.mark.parametrize("column", ["borrowed_at", "due_date", "returned_at", "fine_paid_at", "created_at"])
    def test_borrowing_columns_are_naive(self, column):
        column_type = Borrowing.__table__.c[column].type
        assert isinstance(column_type, DateTime)
        assert column_type.timezone is False

    async def test_naive_due_date_round_trips(self, test_db, session, seed):
        borrowing = await test_db.add_borrowing(
            seed.alice, seed.book, seed.staff, START, START + timedelta(days=14)
        )
        await session.refresh(borrowing)
        assert borrowing.due_date == START + timedelta(days=14)
        assert borrowing.due_date.tzinfo is None
