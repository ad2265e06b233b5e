from .book import BookBase, BookCreate, BookUpdate, BookResponse
from .loan import (
    BorrowRequest, BatchBorrowRequest, RejectLoanRequest, MarkLostRequest,
    AdminReturnRequest, AdminCreateLoanRequest,
    LoanResponse, LoanActionResponse, LoanListResponse, AdminCreateLoanResponse,
    BatchBorrowResult, BatchBorrowResponse, ReminderRunResponse
)
from .book_request import (
    BookRequestCreate, ManualFulfillRequest, ManualFulfillResponse,
    BookRequestResponse, BookRequestCreatedResponse, BookRequestListResponse,
    RequestAnalyticsItem, RequestAnalyticsResponse, AutoFulfillResponse
)
from .settings import LoanSettingsUpdate, LoanSettingsResponse

__all__ = [
    "BookBase", "BookCreate", "BookUpdate", "BookResponse",
    "BorrowRequest", "BatchBorrowRequest", "RejectLoanRequest", "MarkLostRequest",
    "AdminReturnRequest", "AdminCreateLoanRequest",
    "LoanResponse", "LoanActionResponse", "LoanListResponse", "AdminCreateLoanResponse",
    "BatchBorrowResult", "BatchBorrowResponse", "ReminderRunResponse",
    "BookRequestCreate", "ManualFulfillRequest", "ManualFulfillResponse",
    "BookRequestResponse", "BookRequestCreatedResponse", "BookRequestListResponse",
    "RequestAnalyticsItem", "RequestAnalyticsResponse", "AutoFulfillResponse",
    "LoanSettingsUpdate", "LoanSettingsResponse",
]
