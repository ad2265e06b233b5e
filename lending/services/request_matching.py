import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy import func, or_
from sqlalchemy.orm import Session
from lending.exceptions import InvalidInput
from lending.models.book import Book
from lending.models.book_request import BookRequest, BookRequestStatus
from lending.utils.normalization import normalize_isbn, normalize_text
from lending.utils.timezone import now_utc

logger = logging.getLogger(__name__)

AUTO_FULFILLED_ON_AVAILABILITY_NOTE = (
    "Automatically marked as fulfilled because the requested book became available."
)


@dataclass(frozen=True)
class RequestKey:
    request_key: str
    normalized_title: Optional[str]
    normalized_author: Optional[str]
    normalized_isbn: Optional[str]


def create_request_key(
    requested_isbn: Optional[str] = None,
    requested_title: Optional[str] = None,
    requested_author: Optional[str] = None,
) -> RequestKey:
    """Derive the duplicate-detection key for a book request.

    An ISBN wins outright; otherwise both title and author must survive
    normalization. Anything else raises InvalidInput.
    """
    normalized_isbn = normalize_isbn(requested_isbn) if requested_isbn else None
    if normalized_isbn:
        return RequestKey(
            request_key=f"isbn:{normalized_isbn}",
            normalized_title=None,
            normalized_author=None,
            normalized_isbn=normalized_isbn,
        )

    normalized_title = normalize_text(requested_title) if requested_title else None
    normalized_author = normalize_text(requested_author) if requested_author else None
    if not normalized_title or not normalized_author:
        raise InvalidInput("Request must include ISBN or both title and author")

    return RequestKey(
        request_key=f"title_author:{normalized_title}|{normalized_author}",
        normalized_title=normalized_title,
        normalized_author=normalized_author,
        normalized_isbn=None,
    )


def _stripped_isbn_column(column):
    return func.replace(func.upper(func.coalesce(column, "")), "-", "")


def find_matching_book_for_request(
    db: Session,
    requested_isbn: Optional[str] = None,
    requested_title: Optional[str] = None,
    requested_author: Optional[str] = None,
) -> Optional[Book]:
    """Lowest-id available book satisfying the request, or None.

    ISBN is tried first against isbn/isbn10/isbn13; title+author is the
    fallback when both are supplied.
    """
    normalized_isbn = normalize_isbn(requested_isbn) if requested_isbn else None

    if normalized_isbn:
        by_isbn = (
            db.query(Book)
            .filter(
                Book.available_copies > 0,
                or_(
                    _stripped_isbn_column(Book.isbn) == normalized_isbn,
                    _stripped_isbn_column(Book.isbn10) == normalized_isbn,
                    _stripped_isbn_column(Book.isbn13) == normalized_isbn,
                ),
            )
            .order_by(Book.book_id.asc())
            .first()
        )
        if by_isbn:
            return by_isbn

    if not requested_title or not requested_author:
        return None

    normalized_title = normalize_text(requested_title)
    normalized_author = normalize_text(requested_author)

    candidates = (
        db.query(Book)
        .filter(Book.available_copies > 0)
        .order_by(Book.book_id.asc())
        .all()
    )
    for book in candidates:
        if (
            normalize_text(book.title or "") == normalized_title
            and normalize_text(book.author or "") == normalized_author
        ):
            return book
    return None


def _request_matches_book(request: BookRequest, book_isbns: set, book_title: str, book_author: str) -> bool:
    isbn_matched = bool(request.normalized_isbn) and request.normalized_isbn in book_isbns
    title_author_matched = (
        bool(request.normalized_title)
        and bool(request.normalized_author)
        and request.normalized_title == book_title
        and request.normalized_author == book_author
    )
    return isbn_matched or title_author_matched


def auto_fulfill_requests_for_book(db: Session, book_id: int) -> int:
    """Flip every OPEN request this book satisfies to FULFILLED_AUTO, oldest first.

    Returns the number of requests fulfilled. A book without available
    copies fulfils nothing. Safe to call repeatedly.
    """
    book = db.get(Book, book_id)
    if book is None or not book.available_copies or book.available_copies <= 0:
        return 0

    book_isbns = book.normalized_isbns
    book_title = normalize_text(book.title or "")
    book_author = normalize_text(book.author or "")

    try:
        open_requests = (
            db.query(BookRequest)
            .filter(BookRequest.status == BookRequestStatus.OPEN.value)
            .order_by(BookRequest.created_at.asc(), BookRequest.request_id.asc())
            .all()
        )

        fulfilled_at = now_utc()
        fulfilled_count = 0
        for request in open_requests:
            if not _request_matches_book(request, book_isbns, book_title, book_author):
                continue
            request.status = BookRequestStatus.FULFILLED_AUTO.value
            request.matched_book_id = book.book_id
            request.fulfilled_at = fulfilled_at
            request.fulfillment_note = AUTO_FULFILLED_ON_AVAILABILITY_NOTE
            fulfilled_count += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    if fulfilled_count:
        logger.info(f"Auto-fulfilled {fulfilled_count} open request(s) with book {book_id}")
    return fulfilled_count
