"""
Notification emitter.

In-app notifications and emails are fire-and-forget: they are written
after the triggering change has committed, in their own session, and a
failure is logged instead of raised.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.database import async_session_maker
from app.core.email import send_templated_email
from app.core.error_handling import DependencyFailure
from app.core.logging import notifications_logger
from app.src.models.notifications import Notification
from app.src.schema.notifications import NotificationPriorityEnum, NotificationTypeEnum

EmailSender = Callable[[str, str, Dict[str, Any]], Awaitable[bool]]


class NotificationService:
    def __init__(
        self,
        session_factory=async_session_maker,
        email_sender: EmailSender = send_templated_email,
    ):
        self.session_factory = session_factory
        self.email_sender = email_sender

    async def notify(
        self,
        recipient_id: int,
        type: NotificationTypeEnum,
        title: str,
        message: str,
        *,
        sender_id: Optional[int] = None,
        related_book_id: Optional[int] = None,
        related_borrowing_id: Optional[int] = None,
        related_fine_id: Optional[int] = None,
        priority: NotificationPriorityEnum = NotificationPriorityEnum.medium,
    ) -> Optional[Notification]:
        notification = Notification(
            recipient_id=recipient_id,
            sender_id=sender_id,
            type=NotificationTypeEnum(type).value,
            title=title,
            message=message,
            related_book_id=related_book_id,
            related_borrowing_id=related_borrowing_id,
            related_fine_id=related_fine_id,
            priority=NotificationPriorityEnum(priority).value,
        )
        try:
            async with self.session_factory() as session:
                session.add(notification)
                await session.commit()
                await session.refresh(notification)
        except SQLAlchemyError as e:
            self._log_failure(DependencyFailure("notifications", str(e)), recipient_id=recipient_id)
            return None

        notifications_logger.info(
            f"Notification '{notification.type}' created for user {recipient_id}",
            extra={
                "event_type": "notification_created",
                "notification_id": notification.id,
                "user_id": recipient_id,
            }
        )
        return notification

    async def send_email(self, to: Optional[str], template_name: str, data: Dict[str, Any]) -> bool:
        if not to:
            notifications_logger.info(
                f"No email address on file, skipped '{template_name}'",
                extra={"event_type": "email_skipped"}
            )
            return False
        try:
            return await self.email_sender(to, template_name, data)
        except DependencyFailure as e:
            self._log_failure(e, template=template_name)
            return False

    def _log_failure(self, failure: DependencyFailure, **context):
        notifications_logger.error(
            f"Notification delivery failed: {failure}",
            extra={"event_type": "notification_failed", "dependency": failure.dependency, **context}
        )


notification_service = NotificationService()


def get_notifier() -> NotificationService:
    return notification_service
