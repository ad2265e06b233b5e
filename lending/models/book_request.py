import enum
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lending.database import Base


class BookRequestStatus(str, enum.Enum):
    OPEN = "OPEN"
    FULFILLED_AUTO = "FULFILLED_AUTO"
    FULFILLED_MANUAL = "FULFILLED_MANUAL"


class BookRequest(Base):
    __tablename__ = "book_request"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    requested_by_user_id = Column(Integer, ForeignKey("user.user_id", ondelete="CASCADE"), nullable=False, index=True)
    requested_title = Column(String(255), nullable=True)
    requested_author = Column(String(255), nullable=True)
    requested_isbn = Column(String(32), nullable=True)
    normalized_title = Column(String(255), nullable=True)
    normalized_author = Column(String(255), nullable=True)
    normalized_isbn = Column(String(32), nullable=True)
    request_key = Column(String(600), nullable=False, index=True)
    note = Column(Text, nullable=True)
    status = Column(String(20), default=BookRequestStatus.OPEN.value, nullable=False, index=True)
    matched_book_id = Column(Integer, ForeignKey("book.book_id", ondelete="SET NULL"), nullable=True)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
    fulfilled_by_user_id = Column(Integer, ForeignKey("user.user_id", ondelete="SET NULL"), nullable=True)
    fulfillment_note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    requested_by = relationship("User", back_populates="book_requests", foreign_keys=[requested_by_user_id])
    fulfilled_by = relationship("User", foreign_keys=[fulfilled_by_user_id])
    matched_book = relationship("Book")

    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'FULFILLED_AUTO', 'FULFILLED_MANUAL')",
            name="chk_book_request_status",
        ),
    )

    def to_dict(self):
        return {
            "id": str(self.request_id),
            "requestedByUserId": str(self.requested_by_user_id),
            "requestedTitle": self.requested_title,
            "requestedAuthor": self.requested_author,
            "requestedIsbn": self.requested_isbn,
            "normalizedTitle": self.normalized_title,
            "normalizedAuthor": self.normalized_author,
            "normalizedIsbn": self.normalized_isbn,
            "requestKey": self.request_key,
            "note": self.note,
            "status": self.status,
            "matchedBookId": str(self.matched_book_id) if self.matched_book_id else None,
            "matchedBookTitle": self.matched_book.title if self.matched_book else None,
            "fulfilledAt": self.fulfilled_at.isoformat() if self.fulfilled_at else None,
            "fulfilledByUserId": str(self.fulfilled_by_user_id) if self.fulfilled_by_user_id else None,
            "fulfillmentNote": self.fulfillment_note,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "requestedByName": self.requested_by.name if self.requested_by else None,
            "requestedByEmail": self.requested_by.email if self.requested_by else None,
        }
