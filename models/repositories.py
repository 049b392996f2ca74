"""
Repository classes for the auth tables.

Each repository wraps a DBStorage handle and exposes the queries the auth
service needs. Repositories never commit: the caller groups their writes in
DBStorage.atomic() so related changes land in one transaction.

Conditional updates (revoke_if_active, consume) return the affected-row count;
callers treat anything other than 1 as "someone else got there first".
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, List

from sqlalchemy.orm import joinedload

from models.db_storage import DBStorage
from models.user import User
from models.account import Account
from models.refresh_token import RefreshToken
from models.activation_token import ActivationToken


class BaseRepository:
    def __init__(self, storage: DBStorage) -> None:
        self._storage = storage

    @property
    def session(self):
        return self._storage.get_session()


class UserRepository(BaseRepository):
    def get_by_email(self, email: str) -> Optional[User]:
        return (
            self.session.query(User)
            .options(joinedload(User.account))
            .populate_existing()
            .filter(User.email == email)
            .first()
        )

    def email_exists(self, email: str) -> bool:
        return self.session.query(User.id).filter(User.email == email).first() is not None

    def add(self, user: User, account: Account) -> User:
        user.account = account
        self.session.add(user)
        return user

    def mark_verified(self, user_id: str) -> int:
        return (
            self.session.query(Account)
            .filter(Account.user_id == user_id)
            .update({Account.is_verified: True}, synchronize_session="fetch")
        )


class RefreshTokenStore(BaseRepository):
    """Access contract for persisted refresh tokens."""

    def get(self, token_id: str) -> Optional[RefreshToken]:
        return self.session.get(RefreshToken, token_id, populate_existing=True)

    def create(
        self,
        *,
        token_id: str,
        user_id: str,
        created_at: datetime,
        expires_at: datetime,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RefreshToken:
        row = RefreshToken(
            id=token_id,
            user_id=user_id,
            created_at=created_at,
            updated_at=created_at,
            expires_at=expires_at,
            revoked_at=None,
            ip=ip or "",
            user_agent=user_agent or "",
        )
        self.session.add(row)
        return row

    def revoke_if_active(
        self,
        token_id: str,
        now: datetime,
        *,
        user_id: Optional[str] = None,
        replaced_by: Optional[str] = None,
    ) -> int:
        """UPDATE ... SET revoked_at = now WHERE id = :id AND revoked_at IS NULL."""
        query = self.session.query(RefreshToken).filter(
            RefreshToken.id == token_id,
            RefreshToken.revoked_at.is_(None),
        )
        if user_id is not None:
            query = query.filter(RefreshToken.user_id == user_id)
        values = {RefreshToken.revoked_at: now, RefreshToken.updated_at: now}
        if replaced_by is not None:
            values[RefreshToken.replaced_by] = replaced_by
        return query.update(values, synchronize_session="fetch")

    def revoke_all_for_user(self, user_id: str, now: datetime) -> int:
        return (
            self.session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .update({RefreshToken.revoked_at: now, RefreshToken.updated_at: now}, synchronize_session="fetch")
        )

    def live_for_user(self, user_id: str) -> List[RefreshToken]:
        return (
            self.session.query(RefreshToken)
            .populate_existing()
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
            .all()
        )


class ActivationTokenStore(BaseRepository):
    """Access contract for pending email-verification tokens."""

    def get_by_token(self, token: str) -> Optional[ActivationToken]:
        return (
            self.session.query(ActivationToken)
            .populate_existing()
            .filter(ActivationToken.token == token)
            .first()
        )

    def issue(self, *, user: User, token: str, expires_at: datetime) -> ActivationToken:
        """Attach a fresh token to the user, replacing any previous one (1:1)."""
        existing = user.activation_token
        if existing is not None:
            existing.token = token
            existing.expires_at = expires_at
            existing.is_expired = False
            return existing
        row = ActivationToken(token=token, expires_at=expires_at, is_expired=False)
        user.activation_token = row
        self.session.add(row)
        return row

    def consume(self, token_id: str) -> int:
        """Flip the terminal flag; returns 0 if it was already consumed."""
        return (
            self.session.query(ActivationToken)
            .filter(ActivationToken.id == token_id, ActivationToken.is_expired.is_(False))
            .update({ActivationToken.is_expired: True}, synchronize_session="fetch")
        )
