from __future__ import annotations
import logging
from functools import wraps
from flask import request, g, abort, current_app
from utils.security import TokenError

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid or expired token"


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    parts = auth.strip().split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def access_token_required():
    """
    Gate for protected routes. Verifies the bearer access token with the
    access codec only: no database lookup, so a logged-out user's access
    token keeps working until it expires.
    On success g.current_user_id and g.token_claims are set.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if not token:
                abort(401, description="Unauthorized: Missing or invalid Authorization header")
            codec = current_app.extensions["access_codec"]
            try:
                decoded = codec.decode(token)
            except TokenError as e:
                logger.info("Rejected access token: %s", e)
                abort(401, description=UNAUTHORIZED_MESSAGE)

            g.token_claims = {k: decoded.get(k) for k in ("sub", "iat", "exp")}
            g.current_user_id = decoded["sub"]
            return fn(*args, **kwargs)

        return wrapper

    return decorator
