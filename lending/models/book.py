from sqlalchemy import Column, String, DateTime, Integer, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lending.database import Base
from lending.utils.normalization import normalize_isbn

class Book(Base):
    __tablename__ = "book"

    book_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=True)
    isbn = Column(String(20), unique=True, nullable=True)
    isbn10 = Column(String(20), unique=True, nullable=True)
    isbn13 = Column(String(20), unique=True, nullable=True)
    publish_year = Column(Integer, nullable=True)
    description = Column(Text, nullable=True)
    available_copies = Column(Integer, default=1, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="book", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint("available_copies >= 0", name="chk_book_available_copies"),
    )

    @property
    def normalized_isbns(self) -> set:
        """Every non-empty ISBN column, normalized for comparison."""
        return {normalize_isbn(value) for value in (self.isbn, self.isbn10, self.isbn13) if value}

    def to_dict(self):
        return {
            "id": str(self.book_id),
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "isbn10": self.isbn10,
            "isbn13": self.isbn13,
            "publishYear": self.publish_year,
            "description": self.description,
            "availableCopies": self.available_copies,
        }
