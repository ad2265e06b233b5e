import html
import logging
import smtplib
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from email.message import EmailMessage
from typing import Optional, Tuple
from lending.config import settings

logger = logging.getLogger(__name__)

LOAN_CREATED_BY_ADMIN = "loan_created_by_admin"
LOAN_RETURNED_BY_ADMIN = "loan_returned_by_admin"
LOAN_DELETED_BY_ADMIN = "loan_deleted_by_admin"
LOAN_MARKED_LOST = "loan_marked_lost"
LOAN_REMINDER = "loan_reminder"


@dataclass(frozen=True)
class LoanEvent:
    """Something a borrower should hear about; rendered to an email by EmailService."""
    kind: str
    to: str
    user_name: str
    book_title: str
    due_date: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    days_diff: Optional[int] = None
    penalty_amount: Optional[Decimal] = None
    note: Optional[str] = None


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def _reminder_line(days_diff: int) -> str:
    if days_diff > 0:
        return f"Your borrowed book is due in {days_diff} day{_plural(days_diff)}."
    if days_diff == 0:
        return "Your borrowed book is due today."
    overdue = abs(days_diff)
    return f"Your borrowed book is overdue by {overdue} day{_plural(overdue)}."


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime("%a %b %d %Y") if value else "-"


def _wrap(heading: str, body: str) -> str:
    return f"""
      <div style="font-family: Arial, sans-serif; max-width: 620px; margin: 0 auto; border: 1px solid #e5e7eb; border-radius: 8px; padding: 24px;">
        <h2 style="margin: 0 0 12px 0; color: #111827;">{heading}</h2>
        {body}
      </div>
    """


def render_event(event: LoanEvent) -> Tuple[str, str]:
    """Return (subject, html) for a loan event."""
    name = html.escape(event.user_name or "")
    title = html.escape(event.book_title or "")
    greeting = f'<p style="color: #374151;">Hello {name},</p>'
    book_line = f'<p style="color: #111827;"><strong>Book:</strong> {title}</p>'

    if event.kind == LOAN_REMINDER:
        body = (
            greeting
            + f'<p style="color: #374151;">{_reminder_line(event.days_diff or 0)}</p>'
            + book_line
            + f'<p style="color: #111827;"><strong>Due Date:</strong> {_format_date(event.due_date)}</p>'
            + '<p style="color: #6b7280; margin-top: 20px;">Please return your book as soon as possible '
            + 'or contact the library admin if the book is lost.</p>'
        )
        return f"Loan reminder: {event.book_title}", _wrap("Library Loan Reminder", body)

    if event.kind == LOAN_CREATED_BY_ADMIN:
        body = (
            greeting
            + '<p style="color: #374151;">A library admin has checked out a book for you.</p>'
            + book_line
            + f'<p style="color: #111827;"><strong>Due Date:</strong> {_format_date(event.due_date)}</p>'
        )
        return f"Loan created: {event.book_title}", _wrap("New Library Loan", body)

    if event.kind == LOAN_RETURNED_BY_ADMIN:
        body = (
            greeting
            + '<p style="color: #374151;">Your loan has been marked as returned. Thank you!</p>'
            + book_line
            + f'<p style="color: #111827;"><strong>Returned On:</strong> {_format_date(event.returned_at)}</p>'
        )
        return f"Loan returned: {event.book_title}", _wrap("Return Confirmed", body)

    if event.kind == LOAN_DELETED_BY_ADMIN:
        body = (
            greeting
            + '<p style="color: #374151;">A library admin has removed the following loan from your account.</p>'
            + book_line
        )
        return f"Loan removed: {event.book_title}", _wrap("Loan Removed", body)

    if event.kind == LOAN_MARKED_LOST:
        penalty = f"{event.penalty_amount:.2f}" if event.penalty_amount is not None else "-"
        note = f'<p style="color: #374151;">{html.escape(event.note)}</p>' if event.note else ""
        body = (
            greeting
            + '<p style="color: #374151;">Your borrowed book has been marked as lost.</p>'
            + book_line
            + f'<p style="color: #111827;"><strong>Penalty:</strong> {penalty}</p>'
            + note
        )
        return f"Loan marked lost: {event.book_title}", _wrap("Book Marked As Lost", body)

    raise ValueError(f"Unknown loan event kind: {event.kind}")


class EmailService:
    """SMTP delivery for loan notifications. Failures are logged and reported as False."""

    def __init__(self):
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def send_email(self, to: str, subject: str, html_body: str) -> bool:
        if not settings.smtp_enabled:
            logger.info(f"SMTP disabled, skipping email to {to}: {subject}")
            return True

        message = EmailMessage()
        message["From"] = settings.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
                if settings.smtp_use_tls:
                    smtp.starttls()
                if settings.smtp_username:
                    smtp.login(settings.smtp_username, settings.smtp_password or "")
                smtp.send_message(message)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Email sending failed to {to}: {e}")
            return False

    def notify(self, event: LoanEvent) -> bool:
        """Render and send synchronously; True only if the mail was handed to the server."""
        subject, html_body = render_event(event)
        sent = self.send_email(event.to, subject, html_body)
        if sent:
            logger.info(f"{event.kind} email sent to {event.to}")
        return sent

    def notify_async(self, event: LoanEvent) -> bool:
        """Queue the event on a worker thread and return without waiting."""
        future = self._get_executor().submit(self.notify, event)
        future.add_done_callback(lambda f: self._log_outcome(event, f))
        return True

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=settings.mail_workers,
                    thread_name_prefix="mail",
                )
            return self._executor

    @staticmethod
    def _log_outcome(event: LoanEvent, future: Future):
        error = future.exception()
        if error is not None:
            logger.error(f"{event.kind} email to {event.to} threw unexpectedly: {error}")
        elif not future.result():
            logger.error(f"{event.kind} email failed to send to {event.to}")

    def shutdown(self, wait: bool = True):
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None


email_service = EmailService()
