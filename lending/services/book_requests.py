import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload
from lending.exceptions import Conflict, InvalidInput, NotFound
from lending.models.book import Book
from lending.models.book_request import BookRequest, BookRequestStatus
from lending.models.user import User
from lending.services.request_matching import create_request_key, find_matching_book_for_request
from lending.services.settings_service import get_loan_settings
from lending.utils.timezone import now_utc

logger = logging.getLogger(__name__)

AUTO_FULFILLED_ON_SUBMIT_NOTE = (
    "Automatically marked as fulfilled because this book is already available."
)
ANALYTICS_LIMIT = 20


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def create_book_request(
    db: Session,
    user_id: int,
    title: Optional[str] = None,
    author: Optional[str] = None,
    isbn: Optional[str] = None,
    note: Optional[str] = None,
) -> BookRequest:
    """Record a "please acquire this book" request.

    If an available book already satisfies it, the request is stored
    directly as FULFILLED_AUTO instead of ever being OPEN.
    """
    title, author, isbn, note = _clean(title), _clean(author), _clean(isbn), _clean(note)

    if not isbn and (not title or not author):
        raise InvalidInput("Please provide either ISBN, or both title and author to request a book")

    key = create_request_key(requested_isbn=isbn, requested_title=title, requested_author=author)

    try:
        user = db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")

        loan_settings = get_loan_settings(db)
        current_credit = Decimal(str(user.credit_balance or 0))
        if current_credit < loan_settings.minimum_credit_balance:
            currency = loan_settings.credit_currency
            raise Conflict(
                f"Book requests require at least {currency} {loan_settings.minimum_credit_balance:.2f} credit. "
                f"Your current balance is {currency} {current_credit:.2f}."
            )

        duplicate = db.query(BookRequest.request_id).filter(
            BookRequest.requested_by_user_id == user_id,
            BookRequest.request_key == key.request_key,
            BookRequest.status == BookRequestStatus.OPEN.value,
        ).first()
        if duplicate:
            raise Conflict("You already have an open request for this book")

        matching_book = find_matching_book_for_request(
            db, requested_isbn=isbn, requested_title=title, requested_author=author
        )

        request = BookRequest(
            requested_by_user_id=user_id,
            requested_title=title,
            requested_author=author,
            requested_isbn=isbn,
            normalized_title=key.normalized_title,
            normalized_author=key.normalized_author,
            normalized_isbn=key.normalized_isbn,
            request_key=key.request_key,
            note=note,
        )
        if matching_book:
            request.status = BookRequestStatus.FULFILLED_AUTO.value
            request.matched_book_id = matching_book.book_id
            request.fulfilled_at = now_utc()
            request.fulfillment_note = AUTO_FULFILLED_ON_SUBMIT_NOTE
        else:
            request.status = BookRequestStatus.OPEN.value

        db.add(request)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    logger.info(f"Book request {request.request_id} created by user {user_id} ({request.status})")
    return request


def mark_request_fulfilled_manually(
    db: Session,
    request_id: int,
    admin_id: int,
    book_id: Optional[int] = None,
    note: Optional[str] = None,
) -> BookRequest:
    """Close an OPEN request by hand, e.g. for an alternate edition the matcher cannot see."""
    try:
        request = db.get(BookRequest, request_id)
        if request is None:
            raise NotFound("Request not found")

        if request.status != BookRequestStatus.OPEN.value:
            raise Conflict("Only open requests can be fulfilled manually")

        if book_id is not None and db.get(Book, book_id) is None:
            raise NotFound("Book not found")

        request.status = BookRequestStatus.FULFILLED_MANUAL.value
        request.matched_book_id = book_id
        request.fulfilled_at = now_utc()
        request.fulfilled_by_user_id = admin_id
        request.fulfillment_note = _clean(note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    logger.info(f"Book request {request_id} fulfilled manually by admin {admin_id}")
    return request


def list_requests_for_user(db: Session, user_id: int) -> List[BookRequest]:
    return (
        db.query(BookRequest)
        .options(joinedload(BookRequest.matched_book))
        .filter(BookRequest.requested_by_user_id == user_id)
        .order_by(BookRequest.created_at.desc(), BookRequest.request_id.desc())
        .all()
    )


def list_all_requests(db: Session) -> List[BookRequest]:
    return (
        db.query(BookRequest)
        .options(joinedload(BookRequest.matched_book), joinedload(BookRequest.requested_by))
        .order_by(BookRequest.created_at.desc(), BookRequest.request_id.desc())
        .all()
    )


def request_analytics(db: Session) -> List[dict]:
    """Most requested books, grouped by request key."""
    total = func.count(BookRequest.request_id)
    label = func.coalesce(func.max(BookRequest.requested_title), func.max(BookRequest.requested_isbn), "Unknown")
    open_count = func.sum(case((BookRequest.status == BookRequestStatus.OPEN.value, 1), else_=0))
    fulfilled_count = func.sum(case((BookRequest.status != BookRequestStatus.OPEN.value, 1), else_=0))

    rows = (
        db.query(
            BookRequest.request_key,
            label.label("label"),
            func.max(BookRequest.requested_title).label("requested_title"),
            func.max(BookRequest.requested_author).label("requested_author"),
            func.max(BookRequest.requested_isbn).label("requested_isbn"),
            total.label("total_requests"),
            open_count.label("open_requests"),
            fulfilled_count.label("fulfilled_requests"),
        )
        .group_by(BookRequest.request_key)
        .order_by(total.desc(), label.asc())
        .limit(ANALYTICS_LIMIT)
        .all()
    )

    return [
        {
            "requestKey": row.request_key,
            "label": row.label,
            "requestedTitle": row.requested_title,
            "requestedAuthor": row.requested_author,
            "requestedIsbn": row.requested_isbn,
            "totalRequests": int(row.total_requests or 0),
            "openRequests": int(row.open_requests or 0),
            "fulfilledRequests": int(row.fulfilled_requests or 0),
        }
        for row in rows
    ]
