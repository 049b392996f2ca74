"""
Authentication blueprint:
- POST /auth/register
- GET  /auth/verify?token=...   (link from the verification email)
- POST /auth/verify
- POST /auth/verify/resend
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout

Handlers stay thin: validate input, call AuthService, map the result to a
status code, and move the refresh token in and out of its HttpOnly cookie.
"""
from __future__ import annotations

import logging
from flask import Blueprint, request, jsonify, current_app

from api.errors import result_error_response
from models.schemas.user import (
    UserCreateSchema,
    UserOutSchema,
    UserLoginSchema,
    VerifySchema,
    ResendVerificationSchema,
)
from services.notifier import verification_notification
from utils.timeutils import parse_duration

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
verify_schema = VerifySchema()
resend_schema = ResendVerificationSchema()

# Refresh cookie is only sent to the two endpoints that consume it
COOKIE_ENDPOINTS = ("refresh", "logout")


def _service():
    return current_app.extensions["auth_service"]


def _cookie_paths():
    return [f"{current_app.config.get('API_PREFIX', '/api/v1')}/auth/{name}" for name in COOKIE_ENDPOINTS]


def _set_refresh_cookie(response, refresh_token: str):
    max_age = int(parse_duration(current_app.config["REFRESH_TOKEN_EXPIRES"]).total_seconds())
    for path in _cookie_paths():
        response.set_cookie(
            current_app.config["REFRESH_COOKIE_NAME"],
            refresh_token,
            max_age=max_age,
            httponly=True,
            secure=bool(current_app.config.get("COOKIE_SECURE")),
            samesite="Lax",
            path=path,
        )
    return response


def _clear_refresh_cookie(response):
    for path in _cookie_paths():
        response.delete_cookie(
            current_app.config["REFRESH_COOKIE_NAME"],
            path=path,
            httponly=True,
            secure=bool(current_app.config.get("COOKIE_SECURE")),
            samesite="Lax",
        )
    return response


def _dispatch_verification(user: dict, token: str):
    """Fire-and-forget; a notifier failure never fails the request."""
    notifier = current_app.extensions["notifier"]
    try:
        notifier.notify(
            verification_notification(
                email=user["email"],
                first_name=user["first_name"],
                token=token,
                verify_url_base=current_app.config["VERIFY_URL_BASE"],
            )
        )
    except Exception:
        logger.exception("Could not dispatch verification email for user %s", user.get("id"))


@bp.post("/register")
def register():
    """
    Register a new user and send a verification email.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [firstName, email, password]
          properties:
            firstName: { type: string }
            lastName: { type: string }
            email: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created
      400:
        description: Required fields missing
      409:
        description: Email already in use
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)

    result = _service().register(
        first_name=data["first_name"],
        last_name=data.get("last_name"),
        email=data["email"],
        password=data["password"],
    )
    if not result.ok:
        return result_error_response(result)

    _dispatch_verification(result.data["user"], result.data["activation_token"])
    return jsonify({"user": user_out_schema.dump(result.data["user"])}), result.code


@bp.route("/verify", methods=["GET", "POST"])
def verify():
    """
    Consume an email verification token.
    ---
    tags:
      - Auth
    parameters:
      - in: query
        name: token
        type: string
      - in: body
        name: body
        schema:
          type: object
          properties:
            token: { type: string }
    responses:
      200:
        description: Account verified
      400:
        description: Invalid or expired token
    """
    if request.method == "GET":
        payload = {"token": request.args.get("token", "")}
    else:
        payload = request.get_json(silent=True) or {}
    data = verify_schema.load(payload)

    result = _service().verify(data["token"])
    if not result.ok:
        return result_error_response(result)
    return jsonify({"message": "Account verified"}), 200


@bp.post("/verify/resend")
def resend_verification():
    """
    Issue a replacement verification token for an unverified account.
    Always answers 200 so it cannot be used to discover registered emails.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      200:
        description: Accepted
    """
    payload = request.get_json(silent=True) or {}
    data = resend_schema.load(payload)

    result = _service().resend_verification(data["email"])
    if not result.ok:
        return result_error_response(result)
    if result.data:
        _dispatch_verification(result.data["user"], result.data["activation_token"])
    return jsonify(
        {"message": "If the account exists and is not verified, a new verification email has been sent"}
    ), 200


@bp.post("/login")
def login():
    """
    Login: returns an access token and sets the refresh token cookie
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns accessToken and user)
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}
    data = user_login_schema.load(payload)

    result = _service().login(
        email=data["email"],
        password=data["password"],
        ip=request.remote_addr,
        user_agent=request.headers.get("User-Agent", ""),
    )
    if not result.ok:
        return result_error_response(result)

    response = jsonify(
        {
            "accessToken": result.data["access_token"],
            "user": user_out_schema.dump(result.data["user"]),
        }
    )
    return _set_refresh_cookie(response, result.data["refresh_token"]), 200


@bp.post("/refresh")
def refresh():
    """
    Rotate the refresh token cookie and return a new access token
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK (returns accessToken)
      401:
        description: Invalid refresh token
    """
    raw = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not raw:
        return jsonify({"error": "INVALID_REFRESH_TOKEN", "message": "No refresh token provided", "status": 401}), 401

    result = _service().refresh(raw)
    if not result.ok:
        return result_error_response(result)

    response = jsonify({"accessToken": result.data["access_token"]})
    return _set_refresh_cookie(response, result.data["refresh_token"]), 200


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token and clears its cookie.
    The access token stays valid until it expires.
    ---
    tags:
      - Auth
    responses:
      200:
        description: Logged out
      400:
        description: Missing or invalid refresh token
    """
    raw = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not raw:
        return jsonify({"error": "INVALID_REFRESH_TOKEN", "message": "No refresh token provided", "status": 400}), 400

    result = _service().logout(raw)
    if not result.ok:
        return result_error_response(result)

    response = jsonify({"message": "Logged out successfully"})
    return _clear_refresh_cookie(response), 200
