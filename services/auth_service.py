"""
Authentication service: registration, email verification, login,
refresh-token rotation and logout.

Design:
- The service owns no globals. Storage, hasher and token codecs are passed in,
  so tests can build it over an in-memory database.
- Expected failures come back as Err values (services.results); only broken
  configuration raises.
- Refresh tokens are JWTs whose `rid` claim points at a RefreshToken row. The
  signature proves we minted it; the row decides whether it is still valid.
- Every write that has to happen together goes through DBStorage.atomic(),
  and every "use once" transition is a conditional UPDATE whose row count is
  checked, so two racing requests cannot both win.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from argon2 import PasswordHasher
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.account import Account
from models.db_storage import DBStorage
from models.repositories import ActivationTokenStore, RefreshTokenStore, UserRepository
from models.user import User
from services.results import Err, ErrorKind, Ok, Result
from utils.security import (
    TokenCodec,
    TokenError,
    generate_activation_token,
    generate_token_id,
    hash_password,
    verify_password,
)
from utils.timeutils import as_utc, parse_duration, utcnow

logger = logging.getLogger(__name__)


class StaleRowError(Exception):
    """A conditional update matched no row: another request got there first."""


@dataclass(frozen=True)
class AuthSettings:
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    activation_ttl: timedelta = timedelta(hours=24)
    reuse_revokes_sessions: bool = False

    @classmethod
    def from_config(cls, config) -> "AuthSettings":
        return cls(
            access_ttl=parse_duration(config.get("ACCESS_TOKEN_EXPIRES"), cls.access_ttl),
            refresh_ttl=parse_duration(config.get("REFRESH_TOKEN_EXPIRES"), cls.refresh_ttl),
            activation_ttl=parse_duration(config.get("ACTIVATION_TOKEN_EXPIRES"), cls.activation_ttl),
            reuse_revokes_sessions=bool(config.get("REFRESH_REUSE_REVOKES_SESSIONS", False)),
        )


def _is_email_conflict(exc: IntegrityError) -> bool:
    """True when the violated constraint is the unique email on users."""
    message = str(getattr(exc, "orig", exc)).lower()
    # SQLite: "UNIQUE constraint failed: users.email"; PostgreSQL names the index and key
    return "users.email" in message or "ix_users_email" in message or "(email)" in message


def sanitize_user(user: User) -> Dict[str, Any]:
    """Public projection of a user. Never includes credentials."""
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name or "",
        "email": user.email,
    }


class AuthService:
    def __init__(
        self,
        storage: DBStorage,
        password_hasher: PasswordHasher,
        access_codec: TokenCodec,
        refresh_codec: TokenCodec,
        settings: Optional[AuthSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage
        self.password_hasher = password_hasher
        self.access_codec = access_codec
        self.refresh_codec = refresh_codec
        self.settings = settings or AuthSettings()
        self.clock = clock

        self.users = UserRepository(storage)
        self.refresh_tokens = RefreshTokenStore(storage)
        self.activation_tokens = ActivationTokenStore(storage)
        self._dummy_hash: Optional[str] = None

    # -- helpers ---------------------------------------------------------

    def _fail(self, kind: ErrorKind, internal: str, code: Optional[int] = None, message: Optional[str] = None) -> Err:
        logger.warning("%s: %s", kind.value, internal)
        return Err.of(kind, message=message, code=code, internal=internal)

    def _internal(self, operation: str, exc: Exception, message: Optional[str] = None) -> Err:
        # Driver text stays in the log; clients get the generic message.
        logger.exception("%s failed: store error", operation, exc_info=exc)
        return Err.of(ErrorKind.INTERNAL_ERROR, message=message, internal=f"{operation}: {exc.__class__.__name__}")

    def _burn_password_check(self, password: str) -> None:
        """Spend the same hashing work for unknown emails as for real ones."""
        if self._dummy_hash is None:
            self._dummy_hash = hash_password(self.password_hasher, generate_token_id())
        verify_password(self.password_hasher, password, self._dummy_hash)

    def issue_tokens(self, user_id: str, now: datetime) -> Dict[str, str]:
        """Mint an access/refresh pair; `refresh_id` is the row id for the new refresh token."""
        refresh_id = generate_token_id()
        access_token = self.access_codec.encode({"sub": user_id}, self.settings.access_ttl, now=now)
        refresh_token = self.refresh_codec.encode(
            {"sub": user_id, "rid": refresh_id}, self.settings.refresh_ttl, now=now
        )
        return {"access_token": access_token, "refresh_token": refresh_token, "refresh_id": refresh_id}

    # -- registration / verification -------------------------------------

    def register(self, first_name: str, email: str, password: str, last_name: Optional[str] = None) -> Result:
        if not first_name or not email or not password:
            return Err.of(ErrorKind.VALIDATION_ERROR)
        email = email.strip()
        last_name = last_name or ""

        try:
            if self.users.email_exists(email):
                return self._fail(ErrorKind.EMAIL_IN_USE, "registration with an existing email")
        except SQLAlchemyError as exc:
            return self._internal("register", exc)

        password_hash = hash_password(self.password_hasher, password)
        now = self.clock()
        token = generate_activation_token()

        try:
            with self.storage.atomic():
                user = User(first_name=first_name, last_name=last_name, email=email)
                self.users.add(user, Account(password_hash=password_hash, is_verified=False))
                self.activation_tokens.issue(user=user, token=token, expires_at=now + self.settings.activation_ttl)
        except IntegrityError as exc:
            if _is_email_conflict(exc):
                return self._fail(ErrorKind.EMAIL_IN_USE, "unique constraint on users.email at commit")
            return self._internal("register", exc)
        except SQLAlchemyError as exc:
            return self._internal("register", exc)

        logger.info("Registered user %s", user.id)
        return Ok(data={"user": sanitize_user(user), "activation_token": token}, code=201)

    def verify(self, token: str) -> Result:
        if not token:
            return self._fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, "activation token missing")
        now = self.clock()
        try:
            row = self.activation_tokens.get_by_token(token)
        except SQLAlchemyError as exc:
            return self._internal("verify", exc)

        if row is None:
            return self._fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, "activation token not found")
        if row.is_expired:
            return self._fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, f"activation token already used (user {row.user_id})")
        if as_utc(row.expires_at) < now:
            return self._fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, f"activation token expired (user {row.user_id})")

        try:
            with self.storage.atomic():
                if self.activation_tokens.consume(row.id) != 1:
                    raise StaleRowError("activation token consumed concurrently")
                self.users.mark_verified(row.user_id)
        except StaleRowError as exc:
            return self._fail(ErrorKind.INVALID_OR_EXPIRED_TOKEN, str(exc))
        except SQLAlchemyError as exc:
            return self._internal("verify", exc)

        logger.info("Verified account for user %s", row.user_id)
        return Ok(data={"message": "Account verified"})

    def resend_verification(self, email: str) -> Result:
        """
        Replace the activation token of an unverified account.
        Answers Ok either way so the endpoint cannot be used to probe emails;
        `data` is None when nothing was issued.
        """
        if not email:
            return Err.of(ErrorKind.VALIDATION_ERROR)
        now = self.clock()
        try:
            user = self.users.get_by_email(email.strip())
            if user is None or user.is_verified:
                logger.info("Verification resend skipped: no pending account")
                return Ok(data=None)
            token = generate_activation_token()
            with self.storage.atomic():
                self.activation_tokens.issue(user=user, token=token, expires_at=now + self.settings.activation_ttl)
        except SQLAlchemyError as exc:
            return self._internal("resend_verification", exc)
        return Ok(data={"user": sanitize_user(user), "activation_token": token})

    # -- sessions --------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Result:
        if not email or not password:
            return Err.of(ErrorKind.VALIDATION_ERROR)

        try:
            user = self.users.get_by_email(email.strip())
        except SQLAlchemyError as exc:
            return self._internal("login", exc)

        # Same message for unknown email and wrong password; the log keeps the reason.
        if user is None or user.account is None:
            self._burn_password_check(password)
            return self._fail(ErrorKind.AUTHENTICATION_FAILED, "login for unknown email")
        if not verify_password(self.password_hasher, password, user.account.password_hash):
            return self._fail(ErrorKind.AUTHENTICATION_FAILED, f"password mismatch for user {user.id}")

        now = self.clock()
        tokens = self.issue_tokens(user.id, now)
        try:
            with self.storage.atomic():
                # One live session per user: a new login replaces the previous one.
                replaced = self.refresh_tokens.revoke_all_for_user(user.id, now)
                self.refresh_tokens.create(
                    token_id=tokens["refresh_id"],
                    user_id=user.id,
                    created_at=now,
                    expires_at=now + self.settings.refresh_ttl,
                    ip=ip,
                    user_agent=user_agent,
                )
        except SQLAlchemyError as exc:
            return self._internal("login", exc)

        if replaced:
            logger.info("Login for user %s replaced %d live session(s)", user.id, replaced)
        logger.info("User %s logged in", user.id)
        return Ok(
            data={
                "user": sanitize_user(user),
                "access_token": tokens["access_token"],
                "refresh_token": tokens["refresh_token"],
            }
        )

    def refresh(self, raw_refresh: str) -> Result:
        if not raw_refresh:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, "no refresh token provided")
        now = self.clock()
        try:
            claims = self.refresh_codec.decode(raw_refresh, now=now)
        except TokenError as exc:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"refresh token rejected: {exc}")

        sub = claims.get("sub")
        rid = claims.get("rid")
        if not sub or not rid:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, "refresh token missing sub/rid")

        try:
            row = self.refresh_tokens.get(rid)
        except SQLAlchemyError as exc:
            return self._internal("refresh", exc)

        # Absent, foreign and revoked rows all fail the same way.
        if row is None:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"refresh token {rid} not found")
        if row.user_id != sub:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"refresh token {rid} owner mismatch")
        if row.revoked_at is not None:
            if row.replaced_by:
                self._handle_reuse(sub, rid, now)
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"refresh token {rid} already revoked")
        if as_utc(row.expires_at) < now:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"refresh token {rid} expired in store")

        ip, user_agent = row.ip, row.user_agent
        tokens = self.issue_tokens(sub, now)
        try:
            with self.storage.atomic():
                if self.refresh_tokens.revoke_if_active(rid, now, user_id=sub, replaced_by=tokens["refresh_id"]) != 1:
                    raise StaleRowError(f"refresh token {rid} rotated concurrently")
                self.refresh_tokens.create(
                    token_id=tokens["refresh_id"],
                    user_id=sub,
                    created_at=now,
                    expires_at=now + self.settings.refresh_ttl,
                    ip=ip,
                    user_agent=user_agent,
                )
        except StaleRowError as exc:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, str(exc))
        except SQLAlchemyError as exc:
            # Nothing was committed, so the presented token is still usable.
            return self._internal("refresh", exc, message="Failed to refresh session")

        logger.info("Rotated refresh token for user %s", sub)
        return Ok(data={"access_token": tokens["access_token"], "refresh_token": tokens["refresh_token"]})

    def _handle_reuse(self, user_id: str, rid: str, now: datetime) -> None:
        logger.warning("Reuse of rotated refresh token %s for user %s", rid, user_id)
        if not self.settings.reuse_revokes_sessions:
            return
        try:
            with self.storage.atomic():
                revoked = self.refresh_tokens.revoke_all_for_user(user_id, now)
        except SQLAlchemyError:
            logger.exception("Could not revoke sessions for user %s after token reuse", user_id)
            return
        logger.warning("Revoked %d live session(s) for user %s after token reuse", revoked, user_id)

    def logout(self, raw_refresh: str) -> Result:
        if not raw_refresh:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, "no refresh token provided", code=400)
        try:
            # Expired cookies may still log out; only the signature matters here.
            claims = self.refresh_codec.decode(raw_refresh, verify_exp=False)
        except TokenError as exc:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, f"logout token rejected: {exc}", code=400)

        rid = claims.get("rid")
        if not rid:
            return self._fail(ErrorKind.INVALID_REFRESH_TOKEN, "logout token missing rid", code=400)

        now = self.clock()
        try:
            with self.storage.atomic():
                revoked = self.refresh_tokens.revoke_if_active(rid, now, user_id=claims.get("sub"))
        except SQLAlchemyError as exc:
            return self._internal("logout", exc, message="Failed to logout")

        if not revoked:
            logger.info("Logout for refresh token %s: already revoked", rid)
        return Ok(data={"already_revoked": revoked == 0})
