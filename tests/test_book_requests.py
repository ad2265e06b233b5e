from decimal import Decimal

import pytest

from lending.exceptions import Conflict, InvalidInput, NotFound
from lending.models.book_request import BookRequest, BookRequestStatus
from lending.services import book_requests, catalog_service
from lending.services.settings_service import update_loan_settings


def test_request_without_match_stays_open(db, make_user):
    reader = make_user()

    request = book_requests.create_book_request(db, reader.user_id, isbn="978-1-4028-9462-6", note=" first edition ")

    assert request.status == BookRequestStatus.OPEN.value
    assert request.request_key == "isbn:9781402894626"
    assert request.matched_book_id is None
    assert request.note == "first edition"


def test_request_for_available_book_is_fulfilled_on_submit(db, make_user, make_book):
    book = make_book(title="The Hobbit", author="J.R.R. Tolkien")
    reader = make_user()

    request = book_requests.create_book_request(db, reader.user_id, title="the hobbit", author="j r r tolkien")

    assert request.status == BookRequestStatus.FULFILLED_AUTO.value
    assert request.matched_book_id == book.book_id
    assert request.fulfilled_at is not None
    assert request.fulfillment_note == book_requests.AUTO_FULFILLED_ON_SUBMIT_NOTE


def test_request_needs_isbn_or_title_and_author(db, make_user):
    reader = make_user()

    with pytest.raises(InvalidInput):
        book_requests.create_book_request(db, reader.user_id, title="Only title")
    with pytest.raises(InvalidInput):
        book_requests.create_book_request(db, reader.user_id, title="   ", author="   ")


def test_duplicate_open_request_is_rejected(db, make_user):
    reader = make_user()
    book_requests.create_book_request(db, reader.user_id, title="Dune", author="Frank Herbert")

    with pytest.raises(Conflict, match="already have an open request"):
        book_requests.create_book_request(db, reader.user_id, title="DUNE!", author="frank herbert")

    assert db.query(BookRequest).count() == 1


def test_other_users_may_request_the_same_book(db, make_user):
    book_requests.create_book_request(db, make_user().user_id, isbn="9780441013593")
    book_requests.create_book_request(db, make_user().user_id, isbn="978-0-441-01359-3")

    assert db.query(BookRequest).count() == 2


def test_request_requires_minimum_credit(db, make_user):
    poor_reader = make_user(credit_balance=Decimal("10.00"))

    with pytest.raises(Conflict, match="USD 50.00"):
        book_requests.create_book_request(db, poor_reader.user_id, isbn="9780441013593")

    update_loan_settings(db, minimum_credit_balance=Decimal("5.00"))
    request = book_requests.create_book_request(db, poor_reader.user_id, isbn="9780441013593")
    assert request.status == BookRequestStatus.OPEN.value


def test_manual_fulfillment(db, make_user, make_book):
    admin = make_user(role="admin")
    book = make_book()
    request = book_requests.create_book_request(db, make_user().user_id, isbn="9780441013593")

    fulfilled = book_requests.mark_request_fulfilled_manually(
        db, request.request_id, admin.user_id, book_id=book.book_id, note="Paperback edition"
    )

    assert fulfilled.status == BookRequestStatus.FULFILLED_MANUAL.value
    assert fulfilled.fulfilled_by_user_id == admin.user_id
    assert fulfilled.matched_book_id == book.book_id
    assert fulfilled.fulfillment_note == "Paperback edition"

    with pytest.raises(Conflict):
        book_requests.mark_request_fulfilled_manually(db, request.request_id, admin.user_id)


def test_manual_fulfillment_of_missing_request_or_book(db, make_user):
    admin = make_user(role="admin")
    request = book_requests.create_book_request(db, make_user().user_id, isbn="9780441013593")

    with pytest.raises(NotFound):
        book_requests.mark_request_fulfilled_manually(db, 9999, admin.user_id)
    with pytest.raises(NotFound, match="Book not found"):
        book_requests.mark_request_fulfilled_manually(db, request.request_id, admin.user_id, book_id=9999)


def test_new_catalog_book_fulfils_waiting_requests(db, make_user):
    request = book_requests.create_book_request(db, make_user().user_id, title="Dune", author="Frank Herbert")

    catalog_service.create_book(db, title="Dune", author="Frank Herbert", available_copies=2)

    db.expire_all()
    assert db.get(BookRequest, request.request_id).status == BookRequestStatus.FULFILLED_AUTO.value


def test_restock_fulfils_waiting_requests(db, make_user, make_book):
    book = make_book(isbn="9780441013593", available_copies=0)
    request = book_requests.create_book_request(db, make_user().user_id, isbn="9780441013593")
    assert request.status == BookRequestStatus.OPEN.value

    catalog_service.update_book(db, book.book_id, available_copies=1)

    db.expire_all()
    assert db.get(BookRequest, request.request_id).status == BookRequestStatus.FULFILLED_AUTO.value


def test_request_analytics_groups_by_key(db, make_user):
    for _ in range(3):
        book_requests.create_book_request(db, make_user().user_id, title="Dune", author="Frank Herbert")
    book_requests.create_book_request(db, make_user().user_id, isbn="9781402894626")

    items = book_requests.request_analytics(db)

    assert items[0]["requestKey"] == "title_author:dune|frank herbert"
    assert items[0]["label"] == "Dune"
    assert items[0]["totalRequests"] == 3
    assert items[0]["openRequests"] == 3
    assert items[0]["fulfilledRequests"] == 0
    assert items[1]["label"] == "9781402894626"
