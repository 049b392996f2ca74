from sqlalchemy import Column, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class Account(BaseModel, Base):
    """Credentials for a user (1:1). Never serialized to clients."""
    __tablename__ = "accounts"

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )
    password_hash = Column(String(255), nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="account")

    def __repr__(self):
        return f"<Account user={self.user_id} verified={self.is_verified}>"
