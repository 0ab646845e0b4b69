import json
from typing import Any, Optional


GENERIC_ERROR_MESSAGE = "Error inesperado. Intenta nuevamente"
NETWORK_ERROR_MESSAGE = "Error de conexión. Verifica tu internet"
TIMEOUT_ERROR_MESSAGE = "Tiempo de espera agotado. Intenta nuevamente"
RESERVATION_FAILED_MESSAGE = "No se pudo completar la reserva. Intenta nuevamente."

# Backend error bodies use one of these keys depending on the endpoint
ERROR_MESSAGE_KEYS = ("message", "error", "detail")


def extract_error_message(
    body: Any,
    default: Optional[str] = None,
    keys: tuple = ERROR_MESSAGE_KEYS,
) -> Optional[str]:
    """
    Pull the human readable message out of a backend error body.

    Accepts the raw response text or an already decoded dict. FastAPI style
    validation errors (``detail`` as a list of ``{"msg": ...}``) are joined.
    """
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except (TypeError, ValueError):
            return default
    if not isinstance(body, dict):
        return default

    for key in keys:
        value = body.get(key)
        if not value:
            continue
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            parts = [item.get("msg", "") if isinstance(item, dict) else str(item) for item in value]
            joined = "; ".join(p for p in parts if p)
            if joined:
                return joined
        if isinstance(value, dict) and value.get("message"):
            return str(value["message"])
    return default


class InmeroError(Exception):
    """Base class for every error raised by inmero_client"""
    pass


class ValidationError(InmeroError):
    """Malformed or missing user input, caught before any network call"""

    def __init__(self, message: str, field: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.status_code = status_code


class IncompleteSelection(InmeroError):
    """Booking submitted without a resolved slot and table"""
    pass


class NetworkError(InmeroError):
    """Connectivity or timeout failure talking to the backend"""

    def __init__(self, message: str, endpoint: Optional[str] = None, timeout: bool = False):
        super().__init__(message)
        self.endpoint = endpoint
        self.timeout = timeout

    @property
    def user_message(self) -> str:
        return TIMEOUT_ERROR_MESSAGE if self.timeout else NETWORK_ERROR_MESSAGE


class ApiError(InmeroError):
    """Backend answered with a non-2xx status"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.endpoint = endpoint

    @property
    def user_message(self) -> str:
        return extract_error_message(self.response_body, GENERIC_ERROR_MESSAGE)


class AuthError(ApiError):
    """401/403 from an endpoint"""
    pass


class SessionExpired(ApiError):
    """Token refresh failed or no tokens were available; local session was cleared"""
    pass


class InvalidCredentials(ApiError):
    pass


class AccountNotFound(ApiError):
    pass


class RateLimited(ApiError):
    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class ServerError(ApiError):
    pass


class ReservationFailed(ApiError):
    @property
    def user_message(self) -> str:
        return extract_error_message(self.response_body, RESERVATION_FAILED_MESSAGE, keys=("detail", "message", "error"))


class MenuUnavailable(InmeroError):
    """Location has no menu to preorder from"""
    pass
