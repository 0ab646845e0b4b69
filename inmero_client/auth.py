import logging
from typing import Any, Dict, Optional

from .api_access import InmeroApiAccess
from .constants import DEFAULT_TOKEN_TYPE
from .errors import (
    AccountNotFound,
    ApiError,
    InvalidCredentials,
    RateLimited,
    ServerError,
    ValidationError,
)
from .models import (
    ChangePasswordRequestBody,
    ForgotPasswordRequestBody,
    LoginRequestBody,
    LogoutRequestBody,
    Session,
    SignupRequestBody,
)
from .session import SessionStore
from .storage import forget_last_login_email, save_last_login_email
from .tokens import decode_claims
from .validation import (
    require,
    validate_document_number,
    validate_email,
    validate_email_or_document,
    validate_password_confirmation,
    validate_password_strength,
)

logger = logging.getLogger(__name__)


def _map_login_error(e: ApiError) -> Exception:
    """Translate a failed /users/login response into the login error taxonomy."""
    kwargs = dict(status_code=e.status_code, response_body=e.response_body, endpoint=e.endpoint)
    status = e.status_code
    if status == 401:
        return InvalidCredentials("Credenciales incorrectas", **kwargs)
    if status == 404:
        return AccountNotFound("Usuario no encontrado", **kwargs)
    if status in (400, 422):
        message = e.user_message if e.response_body else "Datos inválidos"
        return ValidationError(message, status_code=status)
    if status == 429 and not isinstance(e, RateLimited):
        return RateLimited(str(e), **kwargs)
    if isinstance(e, (RateLimited, ServerError)):
        return e
    return ServerError(str(e), **kwargs)


class AuthManager:
    """
    Login, logout and account flows on top of the SessionStore.

    Input is validated before any request is made. Login errors are mapped to
    InvalidCredentials, AccountNotFound, ValidationError, RateLimited or
    ServerError; NetworkError propagates as raised by the transport.
    """

    def __init__(self, api_access: InmeroApiAccess, store: SessionStore):
        self.api_access = api_access
        self.store = store

    def login(self, email_or_document: str, password: str, remember_email: bool = False) -> Session:
        identifier = validate_email_or_document(email_or_document)
        require(password, "password", "Contraseña requerida")

        try:
            response = self.api_access.login(
                LoginRequestBody(email_or_document_number=identifier, password=password)
            )
        except ApiError as e:
            logger.warning("Login failed for %s: status=%s", identifier, e.status_code)
            raise _map_login_error(e) from e

        if not response.access_token:
            raise ServerError("Error: No se recibió token del servidor", endpoint="/users/login")

        claims = decode_claims(response.access_token)
        user = response.user
        user_id = claims.user_id if claims and claims.user_id is not None else (user.id if user else None)
        username = (user.email or user.username if user else None) or identifier

        session = Session(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            token_type=response.token_type or DEFAULT_TOKEN_TYPE,
            user_id=user_id,
            username=username,
            email=user.email if user else None,
        )
        self.store.save_session(session)

        if remember_email:
            save_last_login_email(self.store.storage, identifier)
        else:
            forget_last_login_email(self.store.storage)

        logger.info("Logged in user_id=%s", user_id)
        return session

    def logout(self) -> None:
        """Best-effort server-side revoke, then unconditional local clear."""
        refresh_token = self.store.refresh_token
        if refresh_token:
            try:
                self.api_access.logout(LogoutRequestBody(refresh_token=refresh_token))
                logger.info("Server-side logout succeeded")
            except Exception as e:
                logger.warning("Server-side logout failed, clearing local session anyway: %s", e)
        self.store.clear()

    def is_authenticated(self) -> bool:
        return self.store.is_authenticated()

    def refresh_profile(self) -> Optional[str]:
        """Fetch the user record and store "first_name first_last_name" as username."""
        user_id = self.store.user_id
        if user_id is None:
            return None
        profile = self.api_access.get_user(user_id)
        if profile.full_name:
            self.store.set_username(profile.full_name)
        return profile.full_name or None

    def signup(
        self,
        email: str,
        password: str,
        confirm_password: str,
        first_name: str,
        first_last_name: str,
        document_number: str,
        second_name: Optional[str] = None,
        second_last_name: Optional[str] = None,
        document_type_id: int = 1,
        gender_id: int = 1,
    ) -> Dict[str, Any]:
        email = validate_email(email)
        validate_password_strength(password)
        validate_password_confirmation(password, confirm_password)
        first_name = require(first_name, "first_name", "Primer nombre es requerido")
        first_last_name = require(first_last_name, "first_last_name", "Primer apellido es requerido")
        document_number = validate_document_number(document_number)

        body = SignupRequestBody(
            first_name=first_name,
            second_name=(second_name or "").strip() or None,
            first_last_name=first_last_name,
            second_last_name=(second_last_name or "").strip() or None,
            document_type_id=document_type_id,
            document_number=document_number,
            email=email.lower(),
            gender_id=gender_id,
            password=password,
            confirm_password=confirm_password,
        )
        return self.api_access.signup(body)

    def forgot_password(self, email: str) -> None:
        email = validate_email(email)
        self.api_access.forgot_password(ForgotPasswordRequestBody(email=email.lower()))

    def change_password(self, current_password: str, new_password: str, confirm_password: str) -> None:
        if not current_password:
            raise ValidationError("Contraseña actual es requerida", field="current_password")
        validate_password_strength(new_password, field="new_password")
        validate_password_confirmation(new_password, confirm_password)
        self.api_access.change_password(
            ChangePasswordRequestBody(
                current_password=current_password,
                new_password=new_password,
                confirm_password=confirm_password,
            )
        )
