from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class ActivationToken(BaseModel, Base):
    """
    Single-use email verification token. One per user; reissuing replaces it.
    is_expired is terminal: once set the token can never be consumed again.
    """
    __tablename__ = "activation_tokens"

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_expired = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="activation_token")

    def __repr__(self):
        return f"<ActivationToken user={self.user_id} expired={self.is_expired}>"
