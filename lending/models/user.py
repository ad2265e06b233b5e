from sqlalchemy import Column, String, DateTime, Integer, Numeric
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from lending.database import Base

class User(Base):
    __tablename__ = "user"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(50), default='user', nullable=False)  # user, admin
    credit_balance = Column(Numeric(10, 2), default=0.00, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    loans = relationship("Loan", back_populates="user", foreign_keys="Loan.user_id", cascade="all, delete-orphan")
    book_requests = relationship(
        "BookRequest",
        back_populates="requested_by",
        foreign_keys="BookRequest.requested_by_user_id",
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    def to_dict(self):
        return {
            "id": str(self.user_id),
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "creditBalance": float(self.credit_balance or 0),
        }
