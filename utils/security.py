"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT signing/verification via PyJWT (TokenCodec, one instance per token class)
- random identifiers for refresh token rows and activation tokens
"""
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from typing import Dict, Any, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError

from utils.timeutils import utcnow

REQUIRED_CLAIMS = ["sub", "iat", "exp"]


def make_password_hasher(time_cost: int = 3) -> PasswordHasher:
    """Build the argon2 hasher; time_cost is the deployment-tuned work factor."""
    return PasswordHasher(time_cost=int(time_cost))


def hash_password(ph: PasswordHasher, password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(ph: PasswordHasher, password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_token_id() -> str:
    """Opaque, unpredictable id for a refresh token row (the `rid` claim)."""
    return str(uuid.uuid4())


def generate_activation_token() -> str:
    return secrets.token_urlsafe(32)


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenSignatureInvalid(TokenError):
    pass


class TokenExpired(TokenError):
    pass


class TokenMalformed(TokenError):
    pass


class TokenCodec:
    """
    Signs claims into a compact JWT and verifies them back.

    Verification depends only on (token, secret, now): no database access.
    Access and refresh tokens use separate codecs with separate secrets, so a
    leaked access secret cannot mint refresh tokens and vice versa.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("TokenCodec requires a secret")
        self._secret = secret
        self.algorithm = algorithm

    def encode(self, claims: Dict[str, Any], expires_in: timedelta, now: Optional[datetime] = None) -> str:
        now = now or utcnow()
        payload = dict(claims)
        payload["sub"] = str(payload["sub"])
        payload["iat"] = int(now.timestamp())
        payload["exp"] = int((now + expires_in).timestamp())
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def decode(self, token: str, now: Optional[datetime] = None, verify_exp: bool = True) -> Dict[str, Any]:
        """
        Decode and validate a token. Raises TokenSignatureInvalid, TokenMalformed
        or TokenExpired. Expiry is checked against `now` so callers (and tests)
        control the clock.
        """
        if not token or not isinstance(token, str):
            raise TokenMalformed("Token is empty")
        try:
            decoded = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidSignatureError as exc:
            raise TokenSignatureInvalid("Invalid token signature") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenMalformed(f"Malformed token: {exc}") from exc

        exp = decoded.get("exp")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise TokenMalformed("Malformed token: exp must be numeric")
        if verify_exp:
            current = (now or utcnow()).timestamp()
            if current >= exp:
                raise TokenExpired("Token expired")
        return decoded
