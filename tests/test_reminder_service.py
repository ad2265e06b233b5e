from datetime import datetime, timedelta

import pytest

from lending.database import SessionLocal
from lending.models.loan import Loan, LoanNotification, LoanStatus
from lending.services.email_service import LOAN_REMINDER
from lending.services.reminder_service import (
    ReminderScheduler,
    process_loan_reminders,
    reminder_key_for,
)
from lending.utils.timezone import UTC

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "days_diff, expected",
    [
        (3, None),
        (2, "pre_due_2"),
        (1, None),
        (0, "due_day"),
        (-1, None),
        (-2, "overdue_2"),
        (-3, None),
        (-9, "overdue_weekly_1"),
        (-16, "overdue_weekly_2"),
    ],
)
def test_reminder_key_milestones(days_diff, expected):
    assert reminder_key_for(days_diff) == expected


def test_sweep_sends_each_milestone_once(db, make_user, make_book, make_loan, notifier):
    reader = make_user()
    book = make_book(title="The Hobbit")
    make_loan(reader, book, due_date=NOW + timedelta(days=2))
    make_loan(reader, book, due_date=NOW + timedelta(hours=3))
    make_loan(reader, book, due_date=NOW - timedelta(days=2))
    make_loan(reader, book, due_date=NOW - timedelta(days=9), status=LoanStatus.OVERDUE)
    make_loan(reader, book, due_date=NOW + timedelta(days=5))

    first = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert first.checked_count == 5
    assert first.sent_count == 4
    assert first.promoted_count == 1
    assert sorted(event.days_diff for event in notifier.events) == [-9, -2, 0, 2]
    assert all(event.kind == LOAN_REMINDER for event in notifier.events)
    assert all(event.to == reader.email for event in notifier.events)

    second = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert second.sent_count == 0
    assert second.promoted_count == 0
    assert len(notifier.events) == 4
    assert db.query(LoanNotification).count() == 4


def test_sweep_promotes_past_due_loans_without_milestone(db, make_user, make_book, make_loan, notifier):
    loan = make_loan(make_user(), make_book(), due_date=NOW - timedelta(days=3))

    outcome = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert outcome.promoted_count == 1
    assert outcome.sent_count == 0
    assert notifier.events == []
    db.expire_all()
    assert db.get(Loan, loan.loan_id).status == LoanStatus.OVERDUE.value


def test_sweep_ignores_loans_that_are_not_checked_out(db, make_user, make_book, make_loan, notifier):
    reader = make_user()
    book = make_book()
    for status in (LoanStatus.PENDING, LoanStatus.RETURNED, LoanStatus.LOST, LoanStatus.REJECTED):
        make_loan(reader, book, status=status, due_date=NOW)

    outcome = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert outcome.checked_count == 0
    assert notifier.events == []


def test_failed_send_releases_marker_for_retry(db, make_user, make_book, make_loan, notifier):
    make_loan(make_user(), make_book(), due_date=NOW)
    notifier.result = False

    failed = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert failed.sent_count == 0
    assert db.query(LoanNotification).count() == 0

    notifier.result = True
    retried = process_loan_reminders(db, notifier=notifier, now=NOW)

    assert retried.sent_count == 1
    assert len(notifier.events) == 2
    assert db.query(LoanNotification).one().notification_key == "due_day"


def test_notifier_exception_counts_as_failed_send(db, make_user, make_book, make_loan):
    def exploding_notifier(event):
        raise RuntimeError("smtp down")

    make_loan(make_user(), make_book(), due_date=NOW)

    outcome = process_loan_reminders(db, notifier=exploding_notifier, now=NOW)

    assert outcome.sent_count == 0
    assert db.query(LoanNotification).count() == 0


def test_scheduler_run_once_uses_fresh_session(db, make_user, make_book, make_loan, notifier):
    make_loan(make_user(), make_book(), due_date=datetime.now(UTC) + timedelta(days=2))
    scheduler = ReminderScheduler(session_factory=SessionLocal, notifier=notifier, interval_hours=1)

    outcome = scheduler.run_once()

    assert outcome.sent_count == 1
    assert notifier.events[0].days_diff == 2
    assert not scheduler.running


def test_scheduler_start_and_shutdown(notifier):
    scheduler = ReminderScheduler(session_factory=SessionLocal, notifier=notifier, interval_hours=1, initial_delay_seconds=3600)

    scheduler.start()
    try:
        assert scheduler.running
    finally:
        scheduler.shutdown()
