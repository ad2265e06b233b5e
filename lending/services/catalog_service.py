import logging
from sqlalchemy.orm import Session
from lending.exceptions import Conflict, NotFound
from lending.models.book import Book
from lending.services.request_matching import auto_fulfill_requests_for_book

logger = logging.getLogger(__name__)

BOOK_FIELDS = ("title", "author", "isbn", "isbn10", "isbn13", "publish_year", "description", "available_copies")


def _check_isbns_unique(db: Session, values: dict, exclude_book_id=None):
    for field in ("isbn", "isbn10", "isbn13"):
        value = values.get(field)
        if not value:
            continue
        query = db.query(Book.book_id).filter(getattr(Book, field) == value)
        if exclude_book_id is not None:
            query = query.filter(Book.book_id != exclude_book_id)
        if query.first():
            raise Conflict(f"A book with {field} {value} already exists")


def _fulfill_waiting_requests(db: Session, book_id: int):
    # Catalog writes succeed even if matching fails
    try:
        auto_fulfill_requests_for_book(db, book_id)
    except Exception:
        logger.warning(f"Failed to auto-fulfill matching requests for book {book_id}", exc_info=True)


def create_book(db: Session, **values) -> Book:
    values = {key: value for key, value in values.items() if key in BOOK_FIELDS}
    try:
        _check_isbns_unique(db, values)
        book = Book(**values)
        db.add(book)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(book)
    logger.info(f"Book {book.book_id} created: {book.title}")
    _fulfill_waiting_requests(db, book.book_id)
    return book


def update_book(db: Session, book_id: int, **values) -> Book:
    """Apply the given fields; None means "leave unchanged"."""
    values = {key: value for key, value in values.items() if key in BOOK_FIELDS and value is not None}
    try:
        book = db.get(Book, book_id)
        if book is None:
            raise NotFound("Book not found")

        _check_isbns_unique(db, values, exclude_book_id=book_id)
        for key, value in values.items():
            setattr(book, key, value)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(book)
    logger.info(f"Book {book_id} updated")
    _fulfill_waiting_requests(db, book_id)
    return book
