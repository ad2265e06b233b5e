import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.orm import Session
from lending.models.site_settings import SiteSettings

logger = logging.getLogger(__name__)

DEFAULT_LOANS_ENABLED = True
DEFAULT_MAX_CONCURRENT_LOANS = 3
DEFAULT_LOAN_DURATION_DAYS = 14
DEFAULT_MINIMUM_CREDIT_BALANCE = Decimal("50.00")
DEFAULT_CREDIT_CURRENCY = "USD"


@dataclass(frozen=True)
class LoanSettings:
    loans_enabled: bool = DEFAULT_LOANS_ENABLED
    max_concurrent_loans: int = DEFAULT_MAX_CONCURRENT_LOANS
    default_loan_duration_days: int = DEFAULT_LOAN_DURATION_DAYS
    minimum_credit_balance: Decimal = DEFAULT_MINIMUM_CREDIT_BALANCE
    credit_currency: str = DEFAULT_CREDIT_CURRENCY

    def to_dict(self):
        return {
            "loansEnabled": self.loans_enabled,
            "maxConcurrentLoans": self.max_concurrent_loans,
            "defaultLoanDurationDays": self.default_loan_duration_days,
            "minimumCreditBalance": float(self.minimum_credit_balance),
            "creditCurrency": self.credit_currency,
        }


def _pick(value, default):
    return default if value is None else value


def get_loan_settings(db: Session) -> LoanSettings:
    """Read the lending policy, falling back to defaults for a missing row or NULL columns."""
    row = db.get(SiteSettings, 1)
    if row is None:
        return LoanSettings()

    return LoanSettings(
        loans_enabled=bool(_pick(row.loans_enabled, DEFAULT_LOANS_ENABLED)),
        max_concurrent_loans=int(_pick(row.max_concurrent_loans, DEFAULT_MAX_CONCURRENT_LOANS)),
        default_loan_duration_days=int(_pick(row.default_loan_duration_days, DEFAULT_LOAN_DURATION_DAYS)),
        minimum_credit_balance=Decimal(str(_pick(row.minimum_credit_balance, DEFAULT_MINIMUM_CREDIT_BALANCE))),
        credit_currency=_pick(row.credit_currency, DEFAULT_CREDIT_CURRENCY).upper(),
    )


def update_loan_settings(
    db: Session,
    loans_enabled: Optional[bool] = None,
    max_concurrent_loans: Optional[int] = None,
    default_loan_duration_days: Optional[int] = None,
    minimum_credit_balance: Optional[Decimal] = None,
    credit_currency: Optional[str] = None,
) -> LoanSettings:
    """Apply the given fields to the settings row, creating it on first write."""
    try:
        row = db.get(SiteSettings, 1)
        if row is None:
            row = SiteSettings(id=1)
            db.add(row)

        if loans_enabled is not None:
            row.loans_enabled = loans_enabled
        if max_concurrent_loans is not None:
            row.max_concurrent_loans = max_concurrent_loans
        if default_loan_duration_days is not None:
            row.default_loan_duration_days = default_loan_duration_days
        if minimum_credit_balance is not None:
            row.minimum_credit_balance = minimum_credit_balance
        if credit_currency is not None:
            row.credit_currency = credit_currency.upper()

        db.commit()
    except Exception:
        db.rollback()
        raise

    updated = get_loan_settings(db)
    logger.info(f"Loan settings updated: {updated}")
    return updated
