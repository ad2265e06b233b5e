import enum
from sqlalchemy import Column, String, DateTime, Integer, Numeric, Text, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lending.database import Base


class LoanStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"
    LOST = "LOST"
    REJECTED = "REJECTED"

    @classmethod
    def open_statuses(cls):
        """Statuses that count against the per-user loan cap at borrow time."""
        return (cls.PENDING, cls.ACTIVE, cls.OVERDUE)

    @classmethod
    def checked_out_statuses(cls):
        """Statuses that hold one unit of the book's available_copies."""
        return (cls.ACTIVE, cls.OVERDUE)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "LoanStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    LoanStatus.PENDING: frozenset({LoanStatus.ACTIVE, LoanStatus.REJECTED}),
    LoanStatus.ACTIVE: frozenset({LoanStatus.OVERDUE, LoanStatus.RETURNED, LoanStatus.LOST}),
    LoanStatus.OVERDUE: frozenset({LoanStatus.RETURNED, LoanStatus.LOST}),
    LoanStatus.RETURNED: frozenset(),
    LoanStatus.LOST: frozenset(),
    LoanStatus.REJECTED: frozenset(),
}


def status_values(statuses):
    return [status.value for status in statuses]


class Loan(Base):
    __tablename__ = "book_loan"

    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Integer, ForeignKey("book.book_id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), default=LoanStatus.PENDING.value, nullable=False, index=True)
    borrowed_at = Column(DateTime(timezone=True), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)
    lost_at = Column(DateTime(timezone=True), nullable=True)
    penalty_amount = Column(Numeric(10, 2), nullable=True)
    admin_note = Column(Text, nullable=True)
    reviewed_by_user_id = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="loans", foreign_keys=[user_id])
    book = relationship("Book", back_populates="loans")
    reviewed_by = relationship("User", foreign_keys=[reviewed_by_user_id])
    notifications = relationship("LoanNotification", back_populates="loan", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'ACTIVE', 'OVERDUE', 'RETURNED', 'LOST', 'REJECTED')",
            name="chk_loan_status",
        ),
    )

    @property
    def loan_status(self) -> LoanStatus:
        return LoanStatus(self.status)

    def to_dict(self):
        return {
            "id": str(self.loan_id),
            "userId": str(self.user_id),
            "bookId": str(self.book_id),
            "status": self.status,
            "borrowedAt": self.borrowed_at.isoformat() if self.borrowed_at else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "approvedAt": self.approved_at.isoformat() if self.approved_at else None,
            "rejectedAt": self.rejected_at.isoformat() if self.rejected_at else None,
            "rejectionReason": self.rejection_reason,
            "returnedAt": self.returned_at.isoformat() if self.returned_at else None,
            "lostAt": self.lost_at.isoformat() if self.lost_at else None,
            "penaltyAmount": float(self.penalty_amount) if self.penalty_amount is not None else None,
            "adminNote": self.admin_note,
            "reviewedByUserId": str(self.reviewed_by_user_id) if self.reviewed_by_user_id else None,
            "bookTitle": self.book.title if self.book else None,
            "bookAuthor": self.book.author if self.book else None,
            "userName": self.user.name if self.user else None,
            "userEmail": self.user.email if self.user else None,
        }


class LoanNotification(Base):
    """Dedup marker: one row per (loan, reminder milestone) already emailed."""
    __tablename__ = "loan_notification"

    notification_id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(Integer, ForeignKey("book_loan.loan_id", ondelete="CASCADE"), nullable=False, index=True)
    notification_key = Column(String(64), nullable=False)
    notified_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    loan = relationship("Loan", back_populates="notifications")

    __table_args__ = (
        UniqueConstraint("loan_id", "notification_key", name="uq_loan_notification_key"),
    )
