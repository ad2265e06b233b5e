import smtplib
from datetime import datetime
from decimal import Decimal

import pytest

from lending.services import email_service as email_module
from lending.services.email_service import (
    LOAN_MARKED_LOST,
    LOAN_REMINDER,
    EmailService,
    LoanEvent,
    render_event,
)
from lending.utils.timezone import UTC


def reminder(days_diff):
    return LoanEvent(
        kind=LOAN_REMINDER,
        to="reader@example.com",
        user_name="Ana <admin>",
        book_title="The Hobbit",
        due_date=datetime(2026, 3, 12, tzinfo=UTC),
        days_diff=days_diff,
    )


def test_reminder_wording_follows_days_until_due():
    subject, body = render_event(reminder(2))

    assert subject == "Loan reminder: The Hobbit"
    assert "due in 2 days" in body
    assert "Ana &lt;admin&gt;" in body
    assert "due today" in render_event(reminder(0))[1]
    assert "overdue by 1 day." in render_event(reminder(-1))[1]


def test_lost_notice_includes_penalty():
    event = LoanEvent(
        kind=LOAN_MARKED_LOST,
        to="reader@example.com",
        user_name="Ana",
        book_title="Dune",
        penalty_amount=Decimal("15"),
        note="Water damage",
    )

    subject, body = render_event(event)

    assert subject == "Loan marked lost: Dune"
    assert "15.00" in body
    assert "Water damage" in body


def test_unknown_event_kind_is_rejected():
    with pytest.raises(ValueError):
        render_event(LoanEvent(kind="bogus", to="reader@example.com", user_name="Ana", book_title="Dune"))


def test_disabled_smtp_only_logs(monkeypatch):
    monkeypatch.setattr(email_module.settings, "smtp_enabled", False)

    assert EmailService().notify(reminder(0)) is True


def test_smtp_failure_is_reported_as_false(monkeypatch):
    class RefusingSMTP:
        def __init__(self, *args, **kwargs):
            raise smtplib.SMTPConnectError(421, "try later")

    monkeypatch.setattr(email_module.settings, "smtp_enabled", True)
    monkeypatch.setattr(email_module.smtplib, "SMTP", RefusingSMTP)

    assert EmailService().notify(reminder(0)) is False


def test_notify_async_returns_immediately(monkeypatch):
    monkeypatch.setattr(email_module.settings, "smtp_enabled", False)
    service = EmailService()

    try:
        assert service.notify_async(reminder(2)) is True
    finally:
        service.shutdown(wait=True)
