from __future__ import annotations

import logging
from flask import Blueprint, request, jsonify, g, abort, current_app

from models.user import User
from models.schemas.user import UserOutSchema, UserUpdateSchema
from utils.decorators import access_token_required

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
user_update_schema = UserUpdateSchema()


def _storage():
    return current_app.extensions["storage"]


def _current_user() -> User:
    user = _storage().get(User, g.current_user_id)
    if not user:
        # Token outlived its user (account deleted)
        abort(404, description="User not found")
    return user


@bp.get("/users/me")
@access_token_required()
def get_profile():
    """
    Get the current user's profile
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = _current_user()
    return jsonify({"user": user_out_schema.dump(user), "verified": user.is_verified}), 200


@bp.put("/users/me")
@access_token_required()
def update_profile():
    """
    Update first/last name. Email is immutable.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            firstName: { type: string }
            lastName: { type: string }
    responses:
      200:
        description: OK
      400:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = user_update_schema.load(payload)
    user = _current_user()

    if "first_name" in data:
        user.first_name = data["first_name"]
    if "last_name" in data:
        user.last_name = data["last_name"] or ""

    storage = _storage()
    storage.new(user)
    storage.save()
    return jsonify({"user": user_out_schema.dump(user)}), 200


@bp.delete("/users/me")
@access_token_required()
def delete_profile():
    """
    Delete the current user with its account, sessions, tokens and transactions
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      204:
        description: Deleted
    """
    user = _current_user()
    storage = _storage()
    storage.delete(user)
    storage.save()
    logger.info("Deleted user %s", g.current_user_id)
    return ("", 204)
