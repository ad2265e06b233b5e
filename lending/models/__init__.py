from .user import User
from .book import Book
from .loan import Loan, LoanNotification, LoanStatus
from .book_request import BookRequest, BookRequestStatus
from .site_settings import SiteSettings

__all__ = [
    "User",
    "Book",
    "Loan",
    "LoanNotification",
    "LoanStatus",
    "BookRequest",
    "BookRequestStatus",
    "SiteSettings",
]
