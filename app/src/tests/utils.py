from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.authentication import create_access_token
from app.src.models.books import Book
from app.src.models.borrowings import Borrowing
from app.src.models.fines import Fine
from app.src.models.users import User
from app.src.schema.fines import FineReasonEnum
from app.src.schema.users import UserTypeEnum

START = datetime(2026, 3, 2, 9, 0, 0)


class RecordingEmailSender:
    """Stands in for the SMTP sender and remembers what would have been sent."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    async def __call__(self, to: str, template_name: str, data: Dict[str, Any]) -> bool:
        self.sent.append({"to": to, "template": template_name, "data": data})
        return True

    def templates(self) -> List[str]:
        return [message["template"] for message in self.sent]


@dataclass
class SeedData:
    admin: User
    staff: User
    alice: User
    bob: User
    carol: User
    inactive_student: User
    book: Book
    last_copy: Book
    short_loan: Book
    no_copies: Book
    retired: Book
    users: List[User] = field(default_factory=list)


class TestDatabase:
    __test__ = False

    def __init__(self, session: AsyncSession):
        self.session = session

    async def populate_test_data(self) -> SeedData:
        admin = User(username="admin", name="Admin User", email="admin@example.com", type=UserTypeEnum.admin.value)
        staff = User(username="librarian", name="Staff User", email="staff@example.com", type=UserTypeEnum.staff.value)
        alice = User(
            username="alice", name="Alice Student", email="alice@example.com",
            registration_number="REG-001", type=UserTypeEnum.student.value,
        )
        bob = User(
            username="bob", name="Bob Student", email="bob@example.com",
            registration_number="REG-002", type=UserTypeEnum.student.value,
        )
        carol = User(
            username="carol", name="Carol Student", email=None,
            registration_number="REG-003", type=UserTypeEnum.student.value,
        )
        inactive_student = User(
            username="dormant", name="Dormant Student", email="dormant@example.com",
            registration_number="REG-004", type=UserTypeEnum.student.value, is_active=False,
        )
        users = [admin, staff, alice, bob, carol, inactive_student]
        self.session.add_all(users)

        book = Book(isbn="978-0132350884", title="Clean Code", author="Robert C. Martin",
                    total_copies=3, available_copies=3)
        last_copy = Book(isbn="978-0201633610", title="Design Patterns", author="Erich Gamma",
                         total_copies=1, available_copies=1)
        short_loan = Book(isbn="978-0262033848", title="Introduction to Algorithms", author="Thomas H. Cormen",
                          total_copies=2, available_copies=2, lending_period=5)
        no_copies = Book(isbn="978-0135957059", title="The Pragmatic Programmer", author="David Thomas",
                         total_copies=1, available_copies=0)
        retired = Book(isbn="978-0596007126", title="Head First Design Patterns", author="Eric Freeman",
                       total_copies=1, available_copies=1, is_active=False)
        self.session.add_all([book, last_copy, short_loan, no_copies, retired])
        await self.session.commit()

        for obj in users + [book, last_copy, short_loan, no_copies, retired]:
            await self.session.refresh(obj)

        return SeedData(
            admin=admin, staff=staff, alice=alice, bob=bob, carol=carol,
            inactive_student=inactive_student, book=book, last_copy=last_copy,
            short_loan=short_loan, no_copies=no_copies, retired=retired, users=users,
        )

    async def add_borrowing(
        self,
        student: User,
        book: Book,
        staff: User,
        borrowed_at: datetime,
        due_date: datetime,
        status: str = "borrowed",
    ) -> Borrowing:
        borrowing = Borrowing(
            student_id=student.id, book_id=book.id, staff_id=staff.id,
            borrowed_at=borrowed_at, due_date=due_date, status=status,
        )
        self.session.add(borrowing)
        await self.session.commit()
        await self.session.refresh(borrowing)
        return borrowing

    async def add_fine(
        self,
        borrowing: Borrowing,
        amount: Decimal,
        status: str = "pending",
        reason: str = FineReasonEnum.overdue.value,
        paid_amount: Decimal = Decimal("0"),
    ) -> Fine:
        fine = Fine(
            student_id=borrowing.student_id, borrowing_id=borrowing.id, amount=amount,
            reason=reason, status=status, paid_amount=paid_amount, is_paid=status == "paid",
        )
        self.session.add(fine)
        await self.session.commit()
        await self.session.refresh(fine)
        return fine


def auth_headers(user: User, expires_delta=None) -> Dict[str, str]:
    token = create_access_token({"sub": user.username}, expires_delta=expires_delta)
    return {"Authorization": f"Bearer {token['access_token']}"}


def decimal(value: Optional[Any]) -> Decimal:
    """JSON renders amounts as strings or floats depending on the route."""
    return Decimal(str(value))
