from sqlalchemy import Column, String, DateTime, Integer, Numeric, Boolean, CheckConstraint
from sqlalchemy.sql import func
from lending.database import Base

class SiteSettings(Base):
    """Single-row table (id = 1) holding the lending policy."""
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True, default=1)
    loans_enabled = Column(Boolean, default=True, nullable=True)
    max_concurrent_loans = Column(Integer, default=3, nullable=True)
    default_loan_duration_days = Column(Integer, default=14, nullable=True)
    minimum_credit_balance = Column(Numeric(10, 2), default=50.00, nullable=True)
    credit_currency = Column(String(8), default='USD', nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("id = 1", name="chk_site_settings_single_row"),
    )
