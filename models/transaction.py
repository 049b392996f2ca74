from enum import Enum

from sqlalchemy import Column, String, Numeric, Date, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.types import Enum as SAEnum

from models.base_model import BaseModel, Base


class TransactionKind(str, Enum):
    EXPENSE = "EXPENSE"
    INCOME = "INCOME"


class Transaction(BaseModel, Base):
    """An expense or income entry owned by a single user."""
    __tablename__ = "transactions"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    kind = Column(SAEnum(TransactionKind, name="transaction_kind", native_enum=False), nullable=False)
    category = Column(String(64), nullable=False)
    description = Column(String(255), nullable=False, default="")
    occurred_on = Column(Date, nullable=False)

    user = relationship("User", back_populates="transactions")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        Index("ix_transactions_user_occurred", "user_id", "occurred_on"),
    )
