"""Loan lifecycle: the state machine over book_loan rows and the book inventory counter.

Every public operation runs in one transaction on the given session. A
loan holds one unit of ``Book.available_copies`` exactly while it is
ACTIVE or OVERDUE; the unit is withheld at approval (or admin create)
and given back at return or admin deletion. LOST never gives it back.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, List, Optional
from sqlalchemy.orm import Session, joinedload
from lending.exceptions import Conflict, InvalidInput, LendingError, NotFound, PermissionDenied
from lending.models.book import Book
from lending.models.loan import Loan, LoanStatus, status_values
from lending.models.user import User
from lending.services.email_service import (
    LOAN_CREATED_BY_ADMIN,
    LOAN_DELETED_BY_ADMIN,
    LOAN_MARKED_LOST,
    LOAN_RETURNED_BY_ADMIN,
    LoanEvent,
)
from lending.services.settings_service import get_loan_settings
from lending.utils.timezone import as_utc, now_utc

logger = logging.getLogger(__name__)

Notifier = Callable[[LoanEvent], bool]

_USER_RETURN_REFUSALS = {
    LoanStatus.RETURNED: "Loan is already returned",
    LoanStatus.LOST: "Loan is marked as lost and cannot be returned",
    LoanStatus.PENDING: "Pending loan request cannot be returned",
    LoanStatus.REJECTED: "Rejected loan request cannot be returned",
}


def _count_loans(db: Session, user_id: int, statuses: Iterable[LoanStatus]) -> int:
    return db.query(Loan).filter(
        Loan.user_id == user_id,
        Loan.status.in_(status_values(statuses)),
    ).count()


def _has_open_loan(db: Session, user_id: int, book_id: int) -> bool:
    return db.query(Loan.loan_id).filter(
        Loan.user_id == user_id,
        Loan.book_id == book_id,
        Loan.status.in_(status_values(LoanStatus.open_statuses())),
    ).first() is not None


def _withhold_copy(db: Session, book_id: int, message: str):
    """Atomically take one copy out of the pool; zero rows updated means none left."""
    updated = db.query(Book).filter(
        Book.book_id == book_id,
        Book.available_copies > 0,
    ).update(
        {Book.available_copies: Book.available_copies - 1},
        synchronize_session=False,
    )
    if updated == 0:
        raise Conflict(message)


def _restore_copy(db: Session, book_id: int):
    db.query(Book).filter(Book.book_id == book_id).update(
        {Book.available_copies: Book.available_copies + 1},
        synchronize_session=False,
    )


def _get_loan_for_update(db: Session, loan_id: int) -> Optional[Loan]:
    return db.query(Loan).filter(Loan.loan_id == loan_id).with_for_update().first()


def _notify(notifier: Optional[Notifier], event: LoanEvent):
    """Hand an event to the notifier; its failures never reach the caller."""
    if notifier is None:
        return
    try:
        if not notifier(event):
            logger.error(f"{event.kind} notification failed for {event.to}")
    except Exception:
        logger.error(f"{event.kind} notification threw unexpectedly", exc_info=True)


def _event_for(kind: str, loan: Loan, **extra) -> LoanEvent:
    return LoanEvent(
        kind=kind,
        to=loan.user.email,
        user_name=loan.user.name,
        book_title=loan.book.title,
        **extra,
    )


def borrow_book(db: Session, user_id: int, book_id: int) -> Loan:
    """Queue a PENDING loan request. No copy is withheld until approval."""
    loan_settings = get_loan_settings(db)
    if not loan_settings.loans_enabled:
        raise PermissionDenied("Loan system is currently disabled by admin")

    try:
        if _count_loans(db, user_id, LoanStatus.open_statuses()) >= loan_settings.max_concurrent_loans:
            raise Conflict(f"You have reached the maximum of {loan_settings.max_concurrent_loans} active loans")

        book = db.get(Book, book_id)
        if book is None:
            raise NotFound("Book not found")

        if not book.available_copies or book.available_copies <= 0:
            raise Conflict("Book is currently not available for loan")

        if _has_open_loan(db, user_id, book_id):
            raise Conflict("You already have a pending or active loan for this book")

        now = now_utc()
        loan = Loan(
            user_id=user_id,
            book_id=book_id,
            status=LoanStatus.PENDING.value,
            borrowed_at=now,
            due_date=now + timedelta(days=loan_settings.default_loan_duration_days),
        )
        db.add(loan)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    logger.info(f"Loan {loan.loan_id} requested by user {user_id} for book {book_id}")
    return loan


def borrow_books_batch(db: Session, user_id: int, book_ids: Iterable) -> List[dict]:
    """Borrow several books in order, one transaction per book.

    Returns one result per distinct valid id: BORROWED with the loan id,
    or FAILED with the reason.
    """
    distinct_ids = []
    for raw in book_ids:
        # JSON true and 1.9 are not book ids
        if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
            continue
        try:
            book_id = int(raw)
        except (TypeError, ValueError):
            continue
        if book_id > 0 and book_id not in distinct_ids:
            distinct_ids.append(book_id)

    if not distinct_ids:
        raise InvalidInput("bookIds contains no valid values")

    if not get_loan_settings(db).loans_enabled:
        raise PermissionDenied("Loan system is currently disabled by admin")

    results = []
    for book_id in distinct_ids:
        try:
            loan = borrow_book(db, user_id, book_id)
        except LendingError as e:
            results.append({"bookId": book_id, "status": "FAILED", "reason": e.message})
            continue
        results.append({"bookId": book_id, "status": "BORROWED", "loanId": loan.loan_id})
    return results


def approve_loan_request(db: Session, loan_id: int, admin_id: int) -> Loan:
    """PENDING -> ACTIVE. Withholds one copy and restarts the due-date clock."""
    loan_settings = get_loan_settings(db)

    try:
        loan = _get_loan_for_update(db, loan_id)
        if loan is None:
            raise NotFound("Loan request not found")

        if not loan.loan_status.can_transition_to(LoanStatus.ACTIVE):
            raise Conflict("Only pending loan requests can be approved")

        book = db.get(Book, loan.book_id)
        if book is None:
            raise NotFound("Book not found")

        no_copies = "Book is currently not available for loan approval"
        if not book.available_copies or book.available_copies <= 0:
            raise Conflict(no_copies)

        if _count_loans(db, loan.user_id, LoanStatus.checked_out_statuses()) >= loan_settings.max_concurrent_loans:
            raise Conflict(f"User has reached the maximum of {loan_settings.max_concurrent_loans} active loans")

        # The read above can be stale under concurrent approvals; the decrement is the real check
        _withhold_copy(db, loan.book_id, no_copies)

        now = now_utc()
        loan.status = LoanStatus.ACTIVE.value
        loan.approved_at = now
        loan.due_date = now + timedelta(days=loan_settings.default_loan_duration_days)
        loan.reviewed_by_user_id = admin_id
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} approved by admin {admin_id}")
    return loan


def reject_loan_request(db: Session, loan_id: int, admin_id: int, reason: Optional[str] = None) -> Loan:
    """PENDING -> REJECTED. Nothing was withheld, so inventory is untouched."""
    try:
        loan = _get_loan_for_update(db, loan_id)
        if loan is None:
            raise NotFound("Loan request not found")

        if not loan.loan_status.can_transition_to(LoanStatus.REJECTED):
            raise Conflict("Only pending loan requests can be rejected")

        loan.status = LoanStatus.REJECTED.value
        loan.rejected_at = now_utc()
        loan.rejection_reason = reason.strip() if reason and reason.strip() else None
        loan.reviewed_by_user_id = admin_id
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} rejected by admin {admin_id}")
    return loan


def return_loan(db: Session, loan_id: int, user_id: int) -> Loan:
    """Borrower returns their own ACTIVE/OVERDUE loan; the copy goes back to the pool."""
    try:
        loan = db.query(Loan).filter(
            Loan.loan_id == loan_id,
            Loan.user_id == user_id,
        ).with_for_update().first()
        if loan is None:
            raise NotFound("Loan not found")

        if not loan.loan_status.can_transition_to(LoanStatus.RETURNED):
            raise Conflict(_USER_RETURN_REFUSALS[loan.loan_status])

        loan.status = LoanStatus.RETURNED.value
        loan.returned_at = now_utc()
        _restore_copy(db, loan.book_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} returned by user {user_id}")
    return loan


def admin_mark_loan_returned(
    db: Session,
    loan_id: int,
    admin_id: int,
    return_date: Optional[datetime] = None,
    notifier: Optional[Notifier] = None,
) -> Loan:
    """Admin records a return (optionally back-dated) and the borrower is told."""
    returned_at = as_utc(return_date) if return_date else now_utc()

    try:
        loan = _get_loan_for_update(db, loan_id)
        if loan is None:
            raise NotFound("Loan not found")

        if not loan.loan_status.can_transition_to(LoanStatus.RETURNED):
            raise Conflict("Only active or overdue loans can be marked as returned")

        loan.status = LoanStatus.RETURNED.value
        loan.returned_at = returned_at
        loan.reviewed_by_user_id = admin_id
        _restore_copy(db, loan.book_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} marked returned by admin {admin_id}")
    _notify(notifier, _event_for(LOAN_RETURNED_BY_ADMIN, loan, returned_at=returned_at))
    return loan


def mark_loan_as_lost(
    db: Session,
    loan_id: int,
    penalty_amount: Optional[Decimal] = None,
    note: Optional[str] = None,
    admin_id: Optional[int] = None,
    notifier: Optional[Notifier] = None,
) -> Loan:
    """ACTIVE/OVERDUE -> LOST. The withheld copy is written off, not restored."""
    try:
        loan = _get_loan_for_update(db, loan_id)
        if loan is None:
            raise NotFound("Loan not found")

        if not loan.loan_status.can_transition_to(LoanStatus.LOST):
            raise Conflict("Only active or overdue loans can be marked as lost")

        loan.status = LoanStatus.LOST.value
        loan.lost_at = now_utc()
        loan.penalty_amount = penalty_amount
        loan.admin_note = note.strip() if note and note.strip() else None
        if admin_id is not None:
            loan.reviewed_by_user_id = admin_id
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} marked lost (penalty={penalty_amount})")
    _notify(notifier, _event_for(LOAN_MARKED_LOST, loan, penalty_amount=penalty_amount, note=loan.admin_note))
    return loan


def admin_create_loan(
    db: Session,
    admin_id: int,
    user_id: int,
    book_id: int,
    due_date: datetime,
    notifier: Optional[Notifier] = None,
) -> Loan:
    """Walk-in checkout: insert an ACTIVE loan directly and withhold the copy."""
    due_date = as_utc(due_date)
    now = now_utc()
    if due_date <= now:
        raise InvalidInput("dueDate must be in the future")

    loan_settings = get_loan_settings(db)

    try:
        if db.get(User, user_id) is None:
            raise NotFound("User not found")

        book = db.get(Book, book_id)
        if book is None:
            raise NotFound("Book not found")

        if not book.available_copies or book.available_copies <= 0:
            raise Conflict("Book is currently not available for loan")

        if _count_loans(db, user_id, LoanStatus.checked_out_statuses()) >= loan_settings.max_concurrent_loans:
            raise Conflict(f"User has reached the maximum of {loan_settings.max_concurrent_loans} active loans")

        if _has_open_loan(db, user_id, book_id):
            raise Conflict("User already has an active loan for this book")

        _withhold_copy(db, book_id, "Book is currently not available for loan")

        loan = Loan(
            user_id=user_id,
            book_id=book_id,
            status=LoanStatus.ACTIVE.value,
            borrowed_at=now,
            approved_at=now,
            due_date=due_date,
            reviewed_by_user_id=admin_id,
        )
        db.add(loan)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(loan)
    logger.info(f"Loan {loan.loan_id} created by admin {admin_id} for user {user_id}, book {book_id}")
    _notify(notifier, _event_for(LOAN_CREATED_BY_ADMIN, loan, due_date=due_date))
    return loan


def admin_delete_loan(
    db: Session,
    loan_id: int,
    admin_id: int,
    notifier: Optional[Notifier] = None,
):
    """Hard-delete a loan; a checked-out copy is put back in the pool."""
    try:
        loan = _get_loan_for_update(db, loan_id)
        if loan is None:
            raise NotFound("Loan not found")

        event = _event_for(LOAN_DELETED_BY_ADMIN, loan)
        restore_copy = loan.loan_status in LoanStatus.checked_out_statuses()
        book_id = loan.book_id

        db.delete(loan)
        if restore_copy:
            _restore_copy(db, book_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Loan {loan_id} deleted by admin {admin_id} (copy restored: {restore_copy})")
    _notify(notifier, event)


def promote_overdue_loans(db: Session, user_id: Optional[int] = None, now: Optional[datetime] = None) -> int:
    """ACTIVE -> OVERDUE for every loan already past its due date."""
    now = now or now_utc()
    try:
        query = db.query(Loan).filter(
            Loan.status == LoanStatus.ACTIVE.value,
            Loan.due_date < now,
        )
        if user_id is not None:
            query = query.filter(Loan.user_id == user_id)
        promoted = query.update({Loan.status: LoanStatus.OVERDUE.value}, synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return promoted


def list_loans_for_user(db: Session, user_id: int) -> List[Loan]:
    promote_overdue_loans(db, user_id=user_id)
    return (
        db.query(Loan)
        .options(joinedload(Loan.book))
        .filter(Loan.user_id == user_id)
        .order_by(Loan.borrowed_at.desc(), Loan.loan_id.desc())
        .all()
    )


def list_all_loans(db: Session, status: Optional[LoanStatus] = None) -> List[Loan]:
    promote_overdue_loans(db)
    query = db.query(Loan).options(joinedload(Loan.book), joinedload(Loan.user))
    if status is not None:
        query = query.filter(Loan.status == status.value)
    return query.order_by(Loan.borrowed_at.desc(), Loan.loan_id.desc()).all()
