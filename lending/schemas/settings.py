from pydantic import BaseModel, Field
from typing import Optional
from decimal import Decimal

class LoanSettingsUpdate(BaseModel):
    loansEnabled: Optional[bool] = None
    maxConcurrentLoans: Optional[int] = Field(None, ge=1)
    defaultLoanDurationDays: Optional[int] = Field(None, ge=1)
    minimumCreditBalance: Optional[Decimal] = Field(None, ge=0)
    creditCurrency: Optional[str] = Field(None, min_length=3, max_length=8)

class LoanSettingsResponse(BaseModel):
    loansEnabled: bool
    maxConcurrentLoans: int
    defaultLoanDurationDays: int
    minimumCreditBalance: float
    creditCurrency: str
