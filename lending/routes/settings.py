from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from lending.database import get_db
from lending.models.user import User
from lending.services.auth import require_admin
from lending.services.settings_service import get_loan_settings, update_loan_settings
from lending.schemas.settings import LoanSettingsResponse, LoanSettingsUpdate

router = APIRouter(prefix="/api/admin/settings", tags=["Admin Settings"])

@router.get("/loans", response_model=LoanSettingsResponse)
async def get_loan_policy(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return LoanSettingsResponse(**get_loan_settings(db).to_dict())

@router.put("/loans", response_model=LoanSettingsResponse)
async def update_loan_policy(
    request: LoanSettingsUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Change the lending policy. Omitted fields keep their current value."""
    updated = update_loan_settings(
        db,
        loans_enabled=request.loansEnabled,
        max_concurrent_loans=request.maxConcurrentLoans,
        default_loan_duration_days=request.defaultLoanDurationDays,
        minimum_credit_balance=request.minimumCreditBalance,
        credit_currency=request.creditCurrency,
    )
    return LoanSettingsResponse(**updated.to_dict())
