"""
Fine ledger.

Every fine write goes through this module. Callers that may race on the
same borrowing (return, mark-lost, manual creation and the accrual job)
hold `borrowing_locks` for that borrowing around the write and commit.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.clock import Clock
from app.core.error_handling import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.core.logging import audit_event_logger
from app.src.models.books import Book
from app.src.models.borrowings import Borrowing, overdue_fine
from app.src.models.fines import Fine
from app.src.models.users import User
from app.src.schema.fines import (
    FineCreate,
    FineDisputeRequest,
    FinePaymentRequest,
    FineReasonEnum,
    FineStatusEnum,
    FineStatusUpdate,
    UnpaidStatusList,
)
from app.src.schema.notifications import NotificationPriorityEnum, NotificationTypeEnum
from app.src.schema.users import StaffRoleList, UserTypeEnum
from app.src.services.locks import borrowing_locks
from app.src.services.notifications import NotificationService

ZERO = Decimal("0")

# Allowed manual status changes; anything else is rejected
STATUS_TRANSITIONS = {
    FineStatusEnum.pending: {FineStatusEnum.paid, FineStatusEnum.waived, FineStatusEnum.disputed},
    FineStatusEnum.disputed: {FineStatusEnum.pending, FineStatusEnum.paid, FineStatusEnum.waived},
    FineStatusEnum.paid: set(),
    FineStatusEnum.waived: set(),
}


async def commit_or_conflict(session: AsyncSession, detail: str = "A fine already exists for this borrowing"):
    try:
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise ConflictError(detail, resource="fine") from e


async def get_fine_for_borrowing(session: AsyncSession, borrowing_id: int) -> Optional[Fine]:
    result = await session.exec(select(Fine).where(Fine.borrowing_id == borrowing_id))
    return result.first()


async def unpaid_fines(session: AsyncSession, student_id: int) -> List[Fine]:
    result = await session.exec(
        select(Fine).where(
            Fine.student_id == student_id,
            Fine.status.in_([s.value for s in UnpaidStatusList]),
        )
    )
    return list(result.all())


def outstanding_total(fines: List[Fine]) -> Decimal:
    return sum((fine.outstanding_amount for fine in fines), ZERO)


def _mark_fully_paid(fine: Fine, borrowing: Optional[Borrowing], now: datetime):
    fine.paid_amount = Decimal(fine.amount)
    fine.is_paid = True
    fine.status = FineStatusEnum.paid.value
    fine.paid_at = now
    if borrowing is not None:
        borrowing.fine_paid = True
        borrowing.fine_paid_at = now


def _reopen(fine: Fine, borrowing: Optional[Borrowing]):
    fine.is_paid = False
    fine.status = FineStatusEnum.pending.value
    fine.paid_at = None
    if borrowing is not None:
        borrowing.fine_paid = False
        borrowing.fine_paid_at = None


async def upsert_overdue_fine(
    session: AsyncSession,
    borrowing: Borrowing,
    amount: Decimal,
    now: datetime,
    description: Optional[str] = None,
) -> Tuple[Optional[Fine], str]:
    """
    Create the overdue fine for a borrowing or raise it to `amount`.

    The amount never goes down. Waived and disputed fines, and fines
    raised for another reason, are left as they are. A paid fine that
    grows re-opens as pending. Nothing is committed here.

    Returns:
        (fine, outcome) where outcome is one of created, updated,
        unchanged or skipped.
    """
    amount = Decimal(amount)
    fine = await get_fine_for_borrowing(session, borrowing.id)

    if fine is None:
        if amount <= ZERO:
            return None, "skipped"
        fine = Fine(
            student_id=borrowing.student_id,
            borrowing_id=borrowing.id,
            amount=amount,
            reason=FineReasonEnum.overdue.value,
            description=description or f"Overdue fine for borrowing {borrowing.id}",
            created_at=now,
            updated_at=now,
        )
        session.add(fine)
        return fine, "created"

    if fine.reason != FineReasonEnum.overdue.value:
        return fine, "unchanged"
    if fine.status in (FineStatusEnum.waived.value, FineStatusEnum.disputed.value):
        return fine, "unchanged"
    if amount <= Decimal(fine.amount):
        return fine, "unchanged"

    fine.amount = amount
    if not fine.is_fully_paid:
        _reopen(fine, borrowing)
    session.add(fine)
    return fine, "updated"


class FineService:
    def __init__(self, session: AsyncSession, clock: Clock, notifier: NotificationService):
        self.session = session
        self.clock = clock
        self.notifier = notifier

    async def get_fine(self, fine_id: int, requester: Optional[User] = None) -> Fine:
        fine = await self.session.get(Fine, fine_id)
        if fine is None:
            raise NotFoundError("Fine", fine_id)
        if requester is not None and requester.type not in StaffRoleList and fine.student_id != requester.id:
            raise ForbiddenError("You can only view your own fines")
        return fine

    async def list_fines(
        self,
        status: Optional[FineStatusEnum] = None,
        student_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Fine]:
        statement = select(Fine)
        if status is not None:
            statement = statement.where(Fine.status == status.value)
        if student_id is not None:
            statement = statement.where(Fine.student_id == student_id)
        result = await self.session.exec(
            statement.order_by(Fine.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.all())

    async def student_fines(self, student_id: int) -> Dict:
        result = await self.session.exec(
            select(Fine).where(Fine.student_id == student_id).order_by(Fine.created_at.desc())
        )
        fines = list(result.all())
        unpaid = [fine for fine in fines if fine.status in [s.value for s in UnpaidStatusList]]
        return {"fines": fines, "total_outstanding": outstanding_total(unpaid)}

    async def create_fine(self, data: FineCreate, staff: User) -> Fine:
        student = await self.session.get(User, data.student_id)
        if student is None or student.type != UserTypeEnum.student.value:
            raise NotFoundError("Student", data.student_id)

        now = self.clock.now()
        async with borrowing_locks.hold(data.borrowing_id):
            borrowing = await self.session.get(Borrowing, data.borrowing_id, populate_existing=True)
            if borrowing is None:
                raise NotFoundError("Borrowing", data.borrowing_id)
            if borrowing.student_id != student.id:
                raise ValidationError("Borrowing does not belong to this student")
            if await get_fine_for_borrowing(self.session, borrowing.id) is not None:
                raise ConflictError("A fine already exists for this borrowing", resource="fine")

            fine = Fine(
                student_id=student.id,
                borrowing_id=borrowing.id,
                amount=data.amount,
                reason=data.reason.value,
                description=data.description,
                updated_by=staff.id,
                created_at=now,
                updated_at=now,
            )
            self.session.add(fine)
            await commit_or_conflict(self.session)
            await self.session.refresh(fine)

        audit_event_logger.log_fine_operation(
            "create", fine.id, staff.id,
            {"borrowing_id": borrowing.id, "amount": fine.amount, "reason": fine.reason}
        )
        await self.notify_fine_issued(fine, student, staff_id=staff.id)
        return fine

    async def pay_fine(self, fine_id: int, payment: FinePaymentRequest, payer: User) -> Dict:
        fine = await self.get_fine(fine_id)
        is_staff = payer.type in StaffRoleList
        if not is_staff and fine.student_id != payer.id:
            raise ForbiddenError("You can only pay your own fines")
        if fine.is_paid or fine.status == FineStatusEnum.paid.value:
            raise ValidationError("Fine is already paid")
        if fine.status == FineStatusEnum.waived.value:
            raise ValidationError("Fine has been waived")

        outstanding = fine.outstanding_amount
        amount = outstanding if payment.amount is None else Decimal(payment.amount)
        if amount <= ZERO:
            raise ValidationError("Payment amount must be greater than 0")

        applied = min(amount, outstanding)
        change_due = amount - applied
        now = self.clock.now()

        fine.paid_amount = Decimal(fine.paid_amount or 0) + applied
        fine.payment_method = payment.payment_method.value
        fine.transaction_id = payment.transaction_id
        if is_staff:
            fine.paid_to = payer.id
        fine.updated_by = payer.id

        if fine.is_fully_paid:
            borrowing = await self.session.get(Borrowing, fine.borrowing_id)
            _mark_fully_paid(fine, borrowing, now)
            if borrowing is not None:
                self.session.add(borrowing)
        self.session.add(fine)
        await self.session.commit()
        await self.session.refresh(fine)

        audit_event_logger.log_fine_operation(
            "pay", fine.id, payer.id,
            {"applied": applied, "change_due": change_due, "method": fine.payment_method}
        )
        await self.notifier.notify(
            fine.student_id,
            NotificationTypeEnum.fine,
            "Fine Payment Received",
            f"Payment of {applied} received. Outstanding balance: {fine.outstanding_amount}.",
            sender_id=payer.id if is_staff else None,
            related_borrowing_id=fine.borrowing_id,
            related_fine_id=fine.id,
            priority=NotificationPriorityEnum.low,
        )
        return {"fine": fine, "applied_amount": applied, "change_due": change_due}

    async def dispute_fine(self, fine_id: int, request: FineDisputeRequest, student: User) -> Fine:
        fine = await self.get_fine(fine_id)
        if fine.student_id != student.id:
            raise ForbiddenError("You can only dispute your own fines")
        if fine.status != FineStatusEnum.pending.value:
            raise ValidationError(f"Cannot dispute a fine with status '{fine.status}'")

        fine.status = FineStatusEnum.disputed.value
        fine.disputed_at = self.clock.now()
        fine.dispute_reason = request.reason
        self.session.add(fine)
        await self.session.commit()
        await self.session.refresh(fine)

        audit_event_logger.log_fine_operation("dispute", fine.id, student.id, {"reason": request.reason})
        return fine

    async def update_status(self, fine_id: int, update: FineStatusUpdate, staff: User) -> Fine:
        """Waive, dispute, resolve a dispute or mark a fine paid."""
        fine = await self.get_fine(fine_id)
        async with borrowing_locks.hold(fine.borrowing_id):
            await self.session.refresh(fine)
            current = FineStatusEnum(fine.status)
            target = update.status
            if target == current:
                raise ValidationError(f"Fine is already {current.value}")
            if target not in STATUS_TRANSITIONS[current]:
                raise ValidationError(f"Cannot change fine status from '{current.value}' to '{target.value}'")

            now = self.clock.now()
            borrowing = await self.session.get(Borrowing, fine.borrowing_id, populate_existing=True)

            if update.amount is not None:
                if Decimal(update.amount) < Decimal(fine.paid_amount or 0):
                    raise ValidationError("Fine amount cannot be less than the amount already paid")
                fine.amount = Decimal(update.amount)
                if borrowing is not None and borrowing.is_terminal:
                    borrowing.fine_amount = fine.amount
                elif borrowing is not None and fine.reason == FineReasonEnum.overdue.value:
                    # Later accrual adds new days on top of the corrected amount
                    borrowing.fine_adjustment = fine.amount - overdue_fine(borrowing.due_date, now)
                    borrowing.fine_amount = fine.amount

            if current == FineStatusEnum.disputed:
                fine.dispute_resolved_by = staff.id
                fine.dispute_resolved_at = now

            if target == FineStatusEnum.paid:
                _mark_fully_paid(fine, borrowing, now)
                fine.paid_to = staff.id
            elif target == FineStatusEnum.waived:
                fine.status = target.value
                fine.waived_by = staff.id
                fine.waived_at = now
                fine.waiver_reason = update.notes
            elif target == FineStatusEnum.disputed:
                fine.status = target.value
                fine.disputed_at = now
                fine.dispute_reason = update.notes
            else:
                fine.status = target.value

            if update.notes:
                fine.notes = update.notes
            fine.updated_by = staff.id
            self.session.add(fine)
            if borrowing is not None:
                self.session.add(borrowing)
            await self.session.commit()
            await self.session.refresh(fine)

        audit_event_logger.log_fine_operation(
            "status_update", fine.id, staff.id,
            {"from": current.value, "to": target.value, "amount": fine.amount}
        )
        return fine

    async def confirm_payment(self, fine_id: int, admin: User) -> Fine:
        fine = await self.get_fine(fine_id)
        if fine.is_paid or fine.status == FineStatusEnum.paid.value:
            raise ValidationError("Fine is already paid")
        if fine.status == FineStatusEnum.waived.value:
            raise ValidationError("Fine has been waived")

        borrowing = await self.session.get(Borrowing, fine.borrowing_id)
        _mark_fully_paid(fine, borrowing, self.clock.now())
        fine.paid_to = admin.id
        fine.updated_by = admin.id
        self.session.add(fine)
        if borrowing is not None:
            self.session.add(borrowing)
        await self.session.commit()
        await self.session.refresh(fine)

        audit_event_logger.log_fine_operation("confirm_payment", fine.id, admin.id, {"amount": fine.amount})
        return fine

    async def statistics(self) -> Dict:
        result = await self.session.exec(select(Fine))
        fines = result.all()

        by_status = {
            status.value: {"count": 0, "amount": ZERO} for status in FineStatusEnum
        }
        total_amount = ZERO
        total_collected = ZERO
        total_outstanding = ZERO
        for fine in fines:
            bucket = by_status.setdefault(fine.status, {"count": 0, "amount": ZERO})
            bucket["count"] += 1
            bucket["amount"] += Decimal(fine.amount)
            total_amount += Decimal(fine.amount)
            total_collected += Decimal(fine.paid_amount or 0)
            if fine.status in [s.value for s in UnpaidStatusList]:
                total_outstanding += fine.outstanding_amount

        return {
            "total_fines": len(fines),
            "total_amount": total_amount,
            "total_collected": total_collected,
            "total_outstanding": total_outstanding,
            "by_status": by_status,
        }

    async def notify_fine_issued(self, fine: Fine, student: User, staff_id: Optional[int] = None):
        borrowing = await self.session.get(Borrowing, fine.borrowing_id)
        book = await self.session.get(Book, borrowing.book_id) if borrowing else None
        book_title = book.title if book else "a borrowed book"

        await self.notifier.send_email(
            student.email,
            "fine-notice",
            {
                "student_name": student.name,
                "fine_amount": fine.amount,
                "fine_reason": fine.reason,
                "book_title": book_title,
            },
        )
        await self.notifier.notify(
            student.id,
            NotificationTypeEnum.fine,
            "Fine Issued",
            f"A fine of {fine.amount} has been issued for \"{book_title}\" ({fine.reason}).",
            sender_id=staff_id,
            related_book_id=book.id if book else None,
            related_borrowing_id=fine.borrowing_id,
            related_fine_id=fine.id,
            priority=NotificationPriorityEnum.high,
        )


async def fine_summary(session: AsyncSession, since: datetime, until: Optional[datetime] = None) -> Dict:
    """Totals for fines created in [since, until)."""
    statement = select(Fine).where(Fine.created_at >= since)
    if until is not None:
        statement = statement.where(Fine.created_at < until)
    result = await session.exec(statement)
    fines = result.all()
    return {
        "count": len(fines),
        "total": sum((Decimal(f.amount) for f in fines), ZERO),
        "paid": sum((Decimal(f.paid_amount or 0) for f in fines), ZERO),
        "unpaid": sum(
            (f.outstanding_amount for f in fines if f.status in [s.value for s in UnpaidStatusList]),
            ZERO,
        ),
    }


def week_window(now: datetime) -> Tuple[datetime, datetime]:
    return now - timedelta(days=7), now
