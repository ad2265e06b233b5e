from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from lending.database import get_db
from lending.models.user import User
from lending.services.auth import get_current_user
from lending.services import loan_service
from lending.schemas.loan import (
    BorrowRequest,
    BatchBorrowRequest,
    BatchBorrowResponse,
    LoanActionResponse,
    LoanListResponse,
    LoanResponse,
)

router = APIRouter(prefix="/api/loans", tags=["Loans"])

@router.get("/me", response_model=LoanListResponse)
async def get_my_loans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get all loans for current user, newest first."""
    loans = loan_service.list_loans_for_user(db, current_user.user_id)
    return LoanListResponse(loans=[LoanResponse.model_validate(loan.to_dict()) for loan in loans])

@router.post("/", response_model=LoanActionResponse, status_code=status.HTTP_201_CREATED)
async def borrow_book(
    request: BorrowRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Request to borrow a book. The loan stays PENDING until an admin approves it."""
    loan = loan_service.borrow_book(db, current_user.user_id, request.bookId)
    return LoanActionResponse(
        message="Loan request submitted. Awaiting admin approval.",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )

@router.post("/batch", response_model=BatchBorrowResponse, status_code=status.HTTP_201_CREATED)
async def borrow_books_batch(
    request: BatchBorrowRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Request several books at once; each book succeeds or fails on its own."""
    results = loan_service.borrow_books_batch(db, current_user.user_id, request.bookIds)
    success_count = sum(1 for result in results if result["status"] == "BORROWED")
    failed_count = len(results) - success_count

    body = BatchBorrowResponse(
        message=(
            f"Processed batch borrow request: {success_count} succeeded, {failed_count} failed"
            if success_count
            else "No books could be borrowed from the batch request"
        ),
        successCount=success_count,
        failedCount=failed_count,
        results=results,
    )
    if not success_count:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=body.model_dump())
    return body

@router.post("/{loan_id}/return", response_model=LoanActionResponse)
async def return_loan(
    loan_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Return one of your own active or overdue loans."""
    loan = loan_service.return_loan(db, loan_id, current_user.user_id)
    return LoanActionResponse(
        message="Loan returned successfully",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )
