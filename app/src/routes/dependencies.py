from typing import Annotated
from fastapi import Depends

from app.core.authorization import require_minimum_role, require_roles
from app.core.clock import Clock, get_clock
from app.core.database import SessionDep
from app.src.models.users import User
from app.src.schema.users import UserTypeEnum
from app.src.services.borrowings import BorrowingService
from app.src.services.fines import FineService
from app.src.services.notifications import NotificationService, get_notifier


async def common_parameters(skip: int = 0, limit: int = 100):
    return {"skip": skip, "limit": limit}


CommonsDependencies = Annotated[dict, Depends(common_parameters)]

ClockDep = Annotated[Clock, Depends(get_clock)]
NotifierDep = Annotated[NotificationService, Depends(get_notifier)]

StaffUser = Annotated[User, Depends(require_minimum_role(UserTypeEnum.staff))]
AdminUser = Annotated[User, Depends(require_roles(UserTypeEnum.admin))]


def get_borrowing_service(session: SessionDep, clock: ClockDep, notifier: NotifierDep) -> BorrowingService:
    return BorrowingService(session, clock, notifier)


def get_fine_service(session: SessionDep, clock: ClockDep, notifier: NotifierDep) -> FineService:
    return FineService(session, clock, notifier)


BorrowingServiceDep = Annotated[BorrowingService, Depends(get_borrowing_service)]
FineServiceDep = Annotated[FineService, Depends(get_fine_service)]
