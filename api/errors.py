from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
import logging

from services.results import Err

logger = logging.getLogger(__name__)


def error_response(error: str, message: str, status: int, details: dict | None = None):
    payload = {"error": error, "message": message, "status": status}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def result_error_response(result: Err):
    """Map a service Err to the envelope; the internal reason is not included."""
    return error_response(result.kind.value, result.message, result.code)


def register_error_handlers(app):
    # 400 Bad Request (generic)
    @app.errorhandler(400)
    def bad_request(e):
        message = getattr(e, "description", "Bad request")
        return error_response("BAD_REQUEST", message, 400)

    # 401 Unauthorized
    @app.errorhandler(401)
    def unauthorized(e):
        message = getattr(e, "description", "Unauthorized")
        return error_response("UNAUTHORIZED", message, 401)

    # 404 Not Found
    @app.errorhandler(404)
    def not_found(e):
        message = getattr(e, "description", None) or "Resource not found"
        if not isinstance(message, str) or message.startswith("The requested URL"):
            message = "Resource not found"
        return error_response("NOT_FOUND", message, 404)

    # 405 Method Not Allowed
    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response("METHOD_NOT_ALLOWED", "Method not allowed", 405)

    # 409 Conflict
    @app.errorhandler(409)
    def conflict(e):
        message = getattr(e, "description", "Conflict")
        return error_response("CONFLICT", message, 409)

    # 422 Unprocessable Entity
    @app.errorhandler(422)
    def unprocessable(e):
        message = getattr(e, "description", "Unprocessable entity")
        return error_response("VALIDATION_ERROR", message, 422)

    # Marshmallow validation errors: missing/invalid input is a 400
    @app.errorhandler(ValidationError)
    def handle_validation_error(err: ValidationError):
        # err.messages contains field-level details
        return error_response("VALIDATION_ERROR", "Required fields missing or invalid.", 400, details=err.messages)

    # Integrity errors (unique constraints, FK violations, check constraints)
    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        # Driver text is logged, never echoed to the client
        message = str(getattr(err, "orig", err))
        lower_msg = message.lower()
        logger.warning("Integrity error: %s", message)
        if "unique" in lower_msg:
            return error_response("CONFLICT", "Unique constraint violated.", 409)
        if "foreign key" in lower_msg:
            return error_response("BAD_REQUEST", "Foreign key constraint failed.", 400)
        if "check constraint" in lower_msg or "constraint failed" in lower_msg:
            return error_response("BAD_REQUEST", "Check constraint failed.", 400)
        return error_response("BAD_REQUEST", "Integrity error.", 400)

    @app.errorhandler(SQLAlchemyError)
    def handle_db_error(err: SQLAlchemyError):
        logger.exception("Database error", exc_info=err)
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500)

    # Werkzeug HTTPExceptions map to their status codes
    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        return error_response(err.name.upper().replace(" ", "_"), err.description, err.code or 400)

    # 500 Internal Error (catch-all)
    @app.errorhandler(Exception)
    def internal_error(err: Exception):
        logger.exception("Unhandled exception", exc_info=err)
        # In dev, include exception details to speed up debugging
        details = None
        if current_app and current_app.debug:
            details = {"type": err.__class__.__name__, "message": str(err)}
        return error_response("INTERNAL_ERROR", "An unexpected error occurred", 500, details=details)
