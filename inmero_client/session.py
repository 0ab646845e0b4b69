import logging
import threading
import time
from typing import Optional

from .constants import DEFAULT_TOKEN_TYPE, SESSION_KEYS, StorageKeys
from .models import Session, TokenClaims
from .storage import KeyValueStorage
from .tokens import decode_claims

logger = logging.getLogger(__name__)


def _parse_user_id(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric stored user id %r", raw)
        return None


class SessionStore:
    """
    Owner of the token pair and user identity.

    Every read and write goes through the lock, and every write lands in
    storage before the in-memory copy changes. The transport reads the
    access token before each request; only login, logout and the refresh
    cycle write it.
    """

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._lock = threading.RLock()
        self._session: Optional[Session] = None

    def load(self) -> Optional[Session]:
        """Restore the session persisted by a previous run."""
        keys = [k.value for k in SESSION_KEYS]
        values = dict(self.storage.multi_get(keys))
        access_token = values.get(StorageKeys.ACCESS_TOKEN.value)

        with self._lock:
            if not access_token:
                self._session = None
                return None

            user_id = _parse_user_id(values.get(StorageKeys.USER_ID.value))
            if user_id is None:
                claims = decode_claims(access_token)
                if claims and claims.user_id is not None:
                    user_id = claims.user_id
                    self.storage.set_item(StorageKeys.USER_ID.value, str(user_id))

            self._session = Session(
                access_token=access_token,
                refresh_token=values.get(StorageKeys.REFRESH_TOKEN.value) or None,
                token_type=values.get(StorageKeys.TOKEN_TYPE.value) or DEFAULT_TOKEN_TYPE,
                user_id=user_id,
                username=values.get(StorageKeys.USERNAME.value) or None,
                email=values.get(StorageKeys.USER_EMAIL.value) or None,
            )
            logger.info("Restored session for user_id=%s", user_id)
            return self._session

    def save_session(self, session: Session) -> None:
        entries = [
            (StorageKeys.ACCESS_TOKEN.value, session.access_token),
            (StorageKeys.TOKEN_TYPE.value, session.token_type),
        ]
        if session.refresh_token:
            entries.append((StorageKeys.REFRESH_TOKEN.value, session.refresh_token))
        if session.user_id is not None:
            entries.append((StorageKeys.USER_ID.value, str(session.user_id)))
        if session.username:
            entries.append((StorageKeys.USERNAME.value, session.username))
        if session.email:
            entries.append((StorageKeys.USER_EMAIL.value, session.email))

        with self._lock:
            self.storage.multi_set(entries)
            self._session = session

    def save_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        token_type: Optional[str] = None,
    ) -> None:
        """Store a new token pair; keeps the current refresh token when none is given."""
        with self._lock:
            current = self._session
            refresh_token = refresh_token or (current.refresh_token if current else None)
            token_type = token_type or DEFAULT_TOKEN_TYPE

            entries = [
                (StorageKeys.ACCESS_TOKEN.value, access_token),
                (StorageKeys.TOKEN_TYPE.value, token_type),
            ]
            if refresh_token:
                entries.append((StorageKeys.REFRESH_TOKEN.value, refresh_token))
            self.storage.multi_set(entries)

            if current is None:
                self._session = Session(
                    access_token=access_token,
                    refresh_token=refresh_token,
                    token_type=token_type,
                )
            else:
                self._session = current.model_copy(
                    update={
                        "access_token": access_token,
                        "refresh_token": refresh_token,
                        "token_type": token_type,
                    }
                )

    def set_username(self, username: str) -> None:
        with self._lock:
            self.storage.set_item(StorageKeys.USERNAME.value, username)
            if self._session is not None:
                self._session = self._session.model_copy(update={"username": username})

    def clear(self) -> None:
        with self._lock:
            self.storage.multi_remove([k.value for k in SESSION_KEYS])
            self._session = None
        logger.info("Session cleared")

    def snapshot(self) -> Optional[Session]:
        with self._lock:
            return self._session

    @property
    def access_token(self) -> Optional[str]:
        with self._lock:
            return self._session.access_token if self._session else None

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._session.refresh_token if self._session else None

    @property
    def token_type(self) -> str:
        with self._lock:
            return self._session.token_type if self._session else DEFAULT_TOKEN_TYPE

    @property
    def user_id(self) -> Optional[int]:
        with self._lock:
            return self._session.user_id if self._session else None

    def authorization_header(self) -> Optional[str]:
        with self._lock:
            if not self._session:
                return None
            return f"{self._session.token_type} {self._session.access_token}"

    def claims(self) -> Optional[TokenClaims]:
        return decode_claims(self.access_token)

    def is_authenticated(self, now: Optional[float] = None) -> bool:
        claims = self.claims()
        if claims is None or claims.exp is None:
            return False
        return claims.exp > (time.time() if now is None else now)
