"""
RefreshToken model: one row per issued refresh token so we can revoke and rotate them.
Fields:
- id (primary key, the `rid` claim; never the raw signed token)
- user_id (String(36)) - FK to users.id
- created_at, expires_at
- revoked_at (null while the token is live)
- replaced_by (id of the row minted when this one was rotated)
- ip, user_agent (audit metadata)

At most one live row per user: the partial unique index below covers rows
with revoked_at IS NULL, revoked rows are kept as history.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by = Column(String(36), nullable=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index(
            "uq_refresh_tokens_live_user",
            "user_id",
            unique=True,
            sqlite_where=text("revoked_at IS NULL"),
            postgresql_where=text("revoked_at IS NULL"),
        ),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def __repr__(self):
        return f"<RefreshToken id={self.id} user={self.user_id} revoked={self.is_revoked}>"
