from .api import ApiClient, ApiError, AuthenticationRequired
from .permissions import ClientPermissions
from .session import SessionStore, TokenCleanup, check_and_clean_expired_token, jwt_is_expired, jwt_payload

__all__ = [
    "ApiClient",
    "ApiError",
    "AuthenticationRequired",
    "ClientPermissions",
    "SessionStore",
    "TokenCleanup",
    "check_and_clean_expired_token",
    "jwt_is_expired",
    "jwt_payload",
]
