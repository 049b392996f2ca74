from models.base_model import Base, BaseModel
from sqlalchemy import Column, String
from sqlalchemy.orm import relationship


class User(BaseModel, Base):
    __tablename__ = "users"
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=False, default="")
    # Stored as submitted (trimmed); lookups are case-sensitive.
    email = Column(String(255), nullable=False, unique=True, index=True)

    # Deleting a user removes everything it owns, at the ORM level and via
    # ON DELETE CASCADE on each child FK.
    account = relationship(
        "Account",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    activation_token = relationship(
        "ActivationToken",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    transactions = relationship(
        "Transaction",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_verified(self) -> bool:
        return bool(self.account and self.account.is_verified)
