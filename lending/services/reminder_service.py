import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from lending.config import settings
from lending.database import SessionLocal
from lending.models.loan import Loan, LoanNotification, LoanStatus, status_values
from lending.services.email_service import LOAN_REMINDER, LoanEvent, email_service
from lending.utils.timezone import now_utc, utc_day_diff

logger = logging.getLogger(__name__)

Notifier = Callable[[LoanEvent], bool]

PRE_DUE_DAYS = 2
OVERDUE_FIRST_DAYS = 2
OVERDUE_REPEAT_DAYS = 7


@dataclass(frozen=True)
class ReminderOutcome:
    checked_count: int
    sent_count: int
    promoted_count: int

    def to_dict(self):
        return {
            "checkedCount": self.checked_count,
            "sentCount": self.sent_count,
            "promotedCount": self.promoted_count,
        }


@dataclass(frozen=True)
class _LoanSnapshot:
    loan_id: int
    status: str
    due_date: datetime
    user_email: str
    user_name: str
    book_title: str


def reminder_key_for(days_diff: int) -> Optional[str]:
    """Milestone key for a loan due ``days_diff`` days from today (negative = overdue)."""
    if days_diff == PRE_DUE_DAYS:
        return "pre_due_2"
    if days_diff == 0:
        return "due_day"
    if days_diff == -OVERDUE_FIRST_DAYS:
        return "overdue_2"
    if days_diff < -OVERDUE_FIRST_DAYS:
        overdue_days = abs(days_diff)
        if (overdue_days - OVERDUE_FIRST_DAYS) % OVERDUE_REPEAT_DAYS == 0:
            return f"overdue_weekly_{(overdue_days - OVERDUE_FIRST_DAYS) // OVERDUE_REPEAT_DAYS}"
    return None


def _claim_notification(db: Session, loan_id: int, key: str) -> bool:
    """Insert the dedup marker. False means this milestone was already notified."""
    try:
        db.add(LoanNotification(loan_id=loan_id, notification_key=key, notified_at=now_utc()))
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        return False


def _release_notification(db: Session, loan_id: int, key: str):
    try:
        db.query(LoanNotification).filter(
            LoanNotification.loan_id == loan_id,
            LoanNotification.notification_key == key,
        ).delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise


def _promote_to_overdue(db: Session, loan_id: int) -> int:
    try:
        promoted = db.query(Loan).filter(
            Loan.loan_id == loan_id,
            Loan.status == LoanStatus.ACTIVE.value,
        ).update({Loan.status: LoanStatus.OVERDUE.value}, synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return promoted


def _send(notifier: Notifier, event: LoanEvent) -> bool:
    try:
        return bool(notifier(event))
    except Exception:
        logger.error(f"Reminder to {event.to} threw unexpectedly", exc_info=True)
        return False


def process_loan_reminders(
    db: Session,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> ReminderOutcome:
    """One sweep over ACTIVE/OVERDUE loans.

    Past-due ACTIVE loans become OVERDUE. Each loan gets at most one
    reminder per pass, and each (loan, milestone) pair is mailed at most
    once: the dedup row is inserted before sending and deleted again if
    the send fails so a later sweep retries.
    """
    notifier = notifier or email_service.notify
    now = now or now_utc()

    loans = (
        db.query(Loan)
        .options(joinedload(Loan.user), joinedload(Loan.book))
        .filter(Loan.status.in_(status_values(LoanStatus.checked_out_statuses())))
        .order_by(Loan.loan_id.asc())
        .all()
    )
    snapshots = [
        _LoanSnapshot(
            loan_id=loan.loan_id,
            status=loan.status,
            due_date=loan.due_date,
            user_email=loan.user.email,
            user_name=loan.user.name,
            book_title=loan.book.title,
        )
        for loan in loans
    ]

    sent_count = 0
    promoted_count = 0
    for loan in snapshots:
        days_diff = utc_day_diff(loan.due_date, now)

        if days_diff < 0 and loan.status == LoanStatus.ACTIVE.value:
            promoted_count += _promote_to_overdue(db, loan.loan_id)

        key = reminder_key_for(days_diff)
        if key is None:
            continue

        if not _claim_notification(db, loan.loan_id, key):
            continue

        event = LoanEvent(
            kind=LOAN_REMINDER,
            to=loan.user_email,
            user_name=loan.user_name,
            book_title=loan.book_title,
            due_date=loan.due_date,
            days_diff=days_diff,
        )
        if not _send(notifier, event):
            logger.warning(f"Reminder {key} for loan {loan.loan_id} not sent, will retry next sweep")
            _release_notification(db, loan.loan_id, key)
            continue

        sent_count += 1

    return ReminderOutcome(
        checked_count=len(snapshots),
        sent_count=sent_count,
        promoted_count=promoted_count,
    )


class ReminderScheduler:
    """Runs the reminder sweep on a fixed interval in a background thread."""

    JOB_ID = "loan_reminders"

    def __init__(
        self,
        session_factory=SessionLocal,
        notifier: Optional[Notifier] = None,
        interval_hours: Optional[int] = None,
        initial_delay_seconds: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._notifier = notifier
        self._interval_hours = interval_hours or settings.reminder_interval_hours
        self._initial_delay_seconds = (
            settings.reminder_initial_delay_seconds if initial_delay_seconds is None else initial_delay_seconds
        )
        self._scheduler = BackgroundScheduler(timezone="UTC")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def run_once(self) -> Optional[ReminderOutcome]:
        db = self._session_factory()
        try:
            outcome = process_loan_reminders(db, self._notifier)
        except Exception:
            logger.error("[loan-reminders] processing failed", exc_info=True)
            return None
        finally:
            db.close()

        if outcome.checked_count or outcome.sent_count:
            logger.info(
                f"[loan-reminders] checked={outcome.checked_count} "
                f"sent={outcome.sent_count} promoted={outcome.promoted_count}"
            )
        return outcome

    def start(self):
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self.run_once,
            trigger=IntervalTrigger(
                hours=self._interval_hours,
                start_date=now_utc() + timedelta(seconds=self._initial_delay_seconds),
            ),
            id=self.JOB_ID,
            name="Loan reminder sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Reminder scheduler started (every {self._interval_hours}h)")

    def shutdown(self):
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Reminder scheduler stopped")


reminder_scheduler = ReminderScheduler()
