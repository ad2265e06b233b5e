import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["REMINDERS_ENABLED"] = "false"
os.environ["SMTP_ENABLED"] = "false"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from lending.database import Base, SessionLocal, engine, get_db
from lending.main import app
from lending.models.book import Book
from lending.models.book_request import BookRequest, BookRequestStatus
from lending.models.loan import Loan, LoanStatus
from lending.models.user import User
from lending.services.auth import create_access_token
from lending.services.request_matching import create_request_key
from lending.utils.timezone import now_utc


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(name=None, role="user", credit_balance=Decimal("100.00")):
        counter["n"] += 1
        user = User(
            name=name or f"Reader {counter['n']}",
            email=f"reader{counter['n']}@example.com",
            role=role,
            credit_balance=credit_balance,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_book(db):
    def _make_book(title="Dune", author="Frank Herbert", available_copies=1, **extra):
        book = Book(title=title, author=author, available_copies=available_copies, **extra)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return _make_book


@pytest.fixture
def make_loan(db):
    """Insert a loan row directly; inventory is left alone."""
    def _make_loan(user, book, status=LoanStatus.ACTIVE, due_date=None, borrowed_at=None):
        now = now_utc()
        loan = Loan(
            user_id=user.user_id,
            book_id=book.book_id,
            status=status.value,
            borrowed_at=borrowed_at or now - timedelta(days=10),
            due_date=due_date or now + timedelta(days=14),
        )
        db.add(loan)
        db.commit()
        db.refresh(loan)
        return loan

    return _make_loan


@pytest.fixture
def make_open_request(db):
    """Insert an OPEN request without running the submit-time matcher."""
    def _make_open_request(user, title=None, author=None, isbn=None):
        key = create_request_key(requested_isbn=isbn, requested_title=title, requested_author=author)
        request = BookRequest(
            requested_by_user_id=user.user_id,
            requested_title=title,
            requested_author=author,
            requested_isbn=isbn,
            normalized_title=key.normalized_title,
            normalized_author=key.normalized_author,
            normalized_isbn=key.normalized_isbn,
            request_key=key.request_key,
            status=BookRequestStatus.OPEN.value,
        )
        db.add(request)
        db.commit()
        db.refresh(request)
        return request

    return _make_open_request


class RecordingNotifier:
    def __init__(self, result=True):
        self.result = result
        self.events = []

    def __call__(self, event):
        self.events.append(event)
        return self.result


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        token = create_access_token({"sub": str(user.user_id)})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
