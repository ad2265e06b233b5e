from pydantic import BaseModel, Field
from typing import Any, List, Optional
from datetime import datetime
from decimal import Decimal

class BorrowRequest(BaseModel):
    bookId: int = Field(..., gt=0)

class BatchBorrowRequest(BaseModel):
    bookIds: List[Any] = Field(..., min_length=1)

class RejectLoanRequest(BaseModel):
    reason: Optional[str] = None

class MarkLostRequest(BaseModel):
    penaltyAmount: Optional[Decimal] = Field(None, ge=0)
    note: Optional[str] = None

class AdminReturnRequest(BaseModel):
    returnDate: Optional[datetime] = None

class AdminCreateLoanRequest(BaseModel):
    userId: int = Field(..., gt=0)
    bookId: int = Field(..., gt=0)
    dueDate: datetime

class LoanResponse(BaseModel):
    id: str
    userId: str
    bookId: str
    status: str
    borrowedAt: datetime
    dueDate: datetime
    approvedAt: Optional[datetime] = None
    rejectedAt: Optional[datetime] = None
    rejectionReason: Optional[str] = None
    returnedAt: Optional[datetime] = None
    lostAt: Optional[datetime] = None
    penaltyAmount: Optional[float] = None
    adminNote: Optional[str] = None
    reviewedByUserId: Optional[str] = None
    bookTitle: Optional[str] = None
    bookAuthor: Optional[str] = None
    userName: Optional[str] = None
    userEmail: Optional[str] = None

    class Config:
        from_attributes = True

class LoanActionResponse(BaseModel):
    message: str
    loan: Optional[LoanResponse] = None

class LoanListResponse(BaseModel):
    loans: List[LoanResponse]

class AdminCreateLoanResponse(BaseModel):
    message: str
    loanId: str

class BatchBorrowResult(BaseModel):
    bookId: int
    status: str  # BORROWED or FAILED
    reason: Optional[str] = None
    loanId: Optional[int] = None

class BatchBorrowResponse(BaseModel):
    message: str
    successCount: int
    failedCount: int
    results: List[BatchBorrowResult]

class ReminderRunResponse(BaseModel):
    message: str
    checkedCount: int
    sentCount: int
    promotedCount: int
