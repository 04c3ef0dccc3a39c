import asyncio
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import smtplib
from typing import Any, Dict

from app.core.error_handling import DependencyFailure
from app.core.logging import notifications_logger
from app.core.settings import settings


EMAIL_TEMPLATES = {
    "book-lent": {
        "subject": "Book Successfully Borrowed",
        "text": (
            "Dear {student_name},\n"
            "You have successfully borrowed \"{book_title}\" by {book_author} (ISBN {book_isbn}).\n"
            "Borrowed on: {borrowed_date}\n"
            "Due on: {due_date}\n"
            "Please return the book on or before the due date to avoid fines."
        ),
    },
    "reminder": {
        "subject": "Book Return Reminder",
        "text": (
            "Dear {student_name},\n"
            "\"{book_title}\" by {book_author} is due on {due_date} "
            "({days_remaining} day(s) remaining).\n"
            "Please return it on time to avoid fines."
        ),
    },
    "overdue": {
        "subject": "Book Overdue Notice",
        "text": (
            "Dear {student_name},\n"
            "\"{book_title}\" by {book_author} was due on {due_date} and is "
            "{days_overdue} day(s) overdue.\n"
            "Current fine: {current_fine}. Daily fine rate: {daily_fine_rate}.\n"
            "Please return the book immediately to stop further fines from accumulating."
        ),
    },
    "fine-notice": {
        "subject": "Fine Notice",
        "text": (
            "Dear {student_name},\n"
            "A fine of {fine_amount} has been issued ({fine_reason}) for \"{book_title}\".\n"
            "Please pay the fine at the library counter to restore your borrowing privileges."
        ),
    },
}


def render_template(template_name: str, data: Dict[str, Any]) -> tuple[str, str, str]:
    """Return (subject, text_body, html_body) for a template."""
    template = EMAIL_TEMPLATES.get(template_name)
    if template is None:
        raise KeyError(f"Unknown email template: {template_name}")

    text_body = template["text"].format(**data)
    paragraphs = "".join(f"<p>{line}</p>" for line in text_body.splitlines())
    html_body = f"""
    <html>
        <body>
            <h2>{template["subject"]}</h2>
            {paragraphs}
        </body>
    </html>
    """
    return template["subject"], text_body, html_body


def _deliver(message: MIMEMultipart):
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_username and settings.smtp_password:
            server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(message)


async def send_templated_email(to: str, template_name: str, data: Dict[str, Any]) -> bool:
    """
    Send a templated email.

    Args:
        to (str): Recipient address
        template_name (str): Key of EMAIL_TEMPLATES
        data (dict): Template values

    Returns:
        True when the message was handed to the SMTP server, False when
        email delivery is disabled.

    Raises:
        DependencyFailure: the SMTP exchange failed.
    """
    subject, text_body, html_body = render_template(template_name, data)

    if not settings.email_enabled:
        notifications_logger.info(
            f"Email delivery disabled, skipped '{template_name}' to {to}",
            extra={"event_type": "email_skipped"}
        )
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from_email
    message["To"] = to

    message.attach(MIMEText(text_body, "plain"))
    message.attach(MIMEText(html_body, "html"))

    try:
        await asyncio.to_thread(_deliver, message)
    except (smtplib.SMTPException, OSError) as e:
        raise DependencyFailure("smtp", f"Failed to send '{template_name}' to {to}: {e}") from e

    notifications_logger.info(
        f"Email '{template_name}' sent to {to}",
        extra={"event_type": "email_sent"}
    )
    return True
