from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from lending.database import get_db
from lending.models.loan import LoanStatus
from lending.models.user import User
from lending.services.auth import require_admin
from lending.services import loan_service
from lending.services.email_service import email_service
from lending.services.reminder_service import process_loan_reminders
from lending.schemas.loan import (
    AdminCreateLoanRequest,
    AdminCreateLoanResponse,
    AdminReturnRequest,
    LoanActionResponse,
    LoanListResponse,
    LoanResponse,
    MarkLostRequest,
    RejectLoanRequest,
    ReminderRunResponse,
)

router = APIRouter(prefix="/api/admin/loans", tags=["Admin Loans"])

@router.get("/", response_model=LoanListResponse)
async def get_all_loans(
    status_filter: Optional[LoanStatus] = Query(None, alias="status", description="Filter by loan status"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """List every loan with borrower and book details, optionally by status."""
    loans = loan_service.list_all_loans(db, status_filter)
    return LoanListResponse(loans=[LoanResponse.model_validate(loan.to_dict()) for loan in loans])

@router.post("/", response_model=AdminCreateLoanResponse, status_code=status.HTTP_201_CREATED)
async def admin_create_loan(
    request: AdminCreateLoanRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Check out a book directly for a user (walk-in), skipping approval."""
    loan = loan_service.admin_create_loan(
        db,
        admin_id=admin.user_id,
        user_id=request.userId,
        book_id=request.bookId,
        due_date=request.dueDate,
        notifier=email_service.notify_async,
    )
    return AdminCreateLoanResponse(message="Loan created successfully", loanId=str(loan.loan_id))

@router.post("/process-reminders", response_model=ReminderRunResponse)
def process_reminders_now(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Run the reminder sweep immediately. Plain def: sends block on SMTP, so this runs in the threadpool."""
    outcome = process_loan_reminders(db)
    return ReminderRunResponse(message="Loan reminders processed", **outcome.to_dict())

@router.delete("/{loan_id}", response_model=LoanActionResponse)
async def admin_delete_loan(
    loan_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Delete a loan; a checked-out copy goes back on the shelf."""
    loan_service.admin_delete_loan(db, loan_id, admin.user_id, notifier=email_service.notify_async)
    return LoanActionResponse(message="Loan deleted successfully")

@router.post("/{loan_id}/approve", response_model=LoanActionResponse)
async def approve_loan_request(
    loan_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = loan_service.approve_loan_request(db, loan_id, admin.user_id)
    return LoanActionResponse(
        message="Loan request approved successfully",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )

@router.post("/{loan_id}/reject", response_model=LoanActionResponse)
async def reject_loan_request(
    loan_id: int,
    request: Optional[RejectLoanRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = loan_service.reject_loan_request(
        db, loan_id, admin.user_id, reason=request.reason if request else None
    )
    return LoanActionResponse(
        message="Loan request rejected successfully",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )

@router.post("/{loan_id}/lost", response_model=LoanActionResponse)
async def mark_loan_as_lost(
    loan_id: int,
    request: Optional[MarkLostRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Write off a checked-out copy as lost. Inventory is not restored."""
    loan = loan_service.mark_loan_as_lost(
        db,
        loan_id,
        penalty_amount=request.penaltyAmount if request else None,
        note=request.note if request else None,
        admin_id=admin.user_id,
        notifier=email_service.notify_async,
    )
    return LoanActionResponse(
        message="Loan marked as lost",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )

@router.post("/{loan_id}/return", response_model=LoanActionResponse)
async def admin_mark_loan_returned(
    loan_id: int,
    request: Optional[AdminReturnRequest] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    loan = loan_service.admin_mark_loan_returned(
        db,
        loan_id,
        admin.user_id,
        return_date=request.returnDate if request else None,
        notifier=email_service.notify_async,
    )
    return LoanActionResponse(
        message="Loan marked as returned and user notified",
        loan=LoanResponse.model_validate(loan.to_dict()),
    )
