from services.results import Ok, Err, ErrorKind, Result
from services.auth_service import AuthService, AuthSettings, sanitize_user

__all__ = ["Ok", "Err", "ErrorKind", "Result", "AuthService", "AuthSettings", "sanitize_user"]
