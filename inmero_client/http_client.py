"""
Centralized HTTP transport for all Inmero API calls.
Single point for request execution, credential attachment, token refresh,
error normalization, and logging.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests
import sentry_sdk
from requests import Session

from .constants import (
    INMERO_BASE_URL,
    PRIVATE_REQUEST_TIMEOUT,
    PUBLIC_REQUEST_TIMEOUT,
    InmeroEndpoints,
)
from .errors import (
    ApiError,
    AuthError,
    InmeroError,
    NetworkError,
    RateLimited,
    ServerError,
    SessionExpired,
)
from .models import ClientConfig, RefreshResponseBody
from .session import SessionStore

logger = logging.getLogger(__name__)

# Redact keys that may appear in logged params/body
REDACT_KEYS = frozenset({"password", "confirm_password", "current_password", "new_password", "refresh_token"})

# Max chars of response body to log on error
ERROR_BODY_TRUNCATE = 500

SERVER_ERROR_STATUSES = frozenset({500, 502, 503, 504})


def _build_session() -> Session:
    session = Session()
    session.headers.update({"Accept": "application/json"})
    return session


def _redact_for_log(obj: dict | None) -> dict | None:
    """Return a copy of obj with sensitive values redacted for logging."""
    if obj is None:
        return None
    out = {}
    for k, v in obj.items():
        key_lower = k.lower() if isinstance(k, str) else ""
        if key_lower in REDACT_KEYS or any(r in key_lower for r in ("token", "password")):
            out[k] = "[REDACTED]"
        elif isinstance(v, dict):
            out[k] = _redact_for_log(v)
        else:
            out[k] = v
    return out


def _truncate(text: str | None, max_len: int = ERROR_BODY_TRUNCATE) -> str:
    """Truncate string for error logging."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def _rewind_files(files: Any) -> None:
    """Seek file objects in a requests `files` argument back to the start before a resend."""
    if not files:
        return
    entries = files.values() if isinstance(files, dict) else (value for _, value in files)
    for value in entries:
        handle = value[1] if isinstance(value, tuple) and len(value) > 1 else value
        if hasattr(handle, "seek"):
            handle.seek(0)


@dataclass
class OutboundCall:
    """One logical request. `retried` is set once a 401 has been handled for it."""
    method: str
    endpoint: str
    params: dict[str, Any] | None = None
    json: Any = None
    data: dict[str, Any] | None = None
    files: Any = None
    extra_headers: dict[str, str] | None = None
    timeout: tuple[int, int] | None = None
    retried: bool = False
    sent_token: str | None = None


class RefreshCoordinator:
    """
    Single-flight guard around the token refresh call.

    The first caller starts the refresh; callers arriving while it is pending
    wait on the same Future and get its outcome. The pending marker is cleared
    once the refresh settles, success or failure, so the next 401 can start a
    new cycle. A caller whose stale token was already replaced by a settled
    cycle gets the current token without starting another one.
    """

    def __init__(self, refresh_fn: Callable[[], str], current_token_fn: Callable[[], Optional[str]]):
        self._refresh_fn = refresh_fn
        self._current_token_fn = current_token_fn
        self._lock = threading.Lock()
        self._pending: Optional[Future] = None

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._pending is not None

    def refresh(self, stale_token: Optional[str] = None) -> str:
        with self._lock:
            pending = self._pending
            is_owner = pending is None
            if is_owner:
                current = self._current_token_fn()
                if stale_token and current and current != stale_token:
                    return current
                pending = Future()
                self._pending = pending

        if not is_owner:
            logger.info("Waiting for in-flight token refresh")
            return pending.result()

        try:
            new_token = self._refresh_fn()
        except BaseException as e:
            pending.set_exception(e)
            raise
        else:
            pending.set_result(new_token)
            return new_token
        finally:
            with self._lock:
                self._pending = None


class InmeroHttpClient:
    """
    Single HTTP transport for the Inmero API. All calls go through _request.

    Built with a SessionStore it is the authenticated client: it attaches the
    stored credentials to every call and transparently refreshes them once on
    a 401. Without a store it is the public client used for login, signup and
    the refresh call itself.
    """

    def __init__(
        self,
        session: Session,
        base_url: str = INMERO_BASE_URL,
        timeout: tuple[int, int] = PUBLIC_REQUEST_TIMEOUT,
        store: SessionStore | None = None,
        refresh_client: Optional["InmeroHttpClient"] = None,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.store = store
        self.refresh_client = refresh_client
        self.refresher = (
            RefreshCoordinator(self._perform_refresh, lambda: store.access_token) if store is not None else None
        )

    @classmethod
    def build_public(cls, config: ClientConfig) -> "InmeroHttpClient":
        return cls(_build_session(), base_url=config.base_url, timeout=config.public_timeout)

    @classmethod
    def build_private(cls, config: ClientConfig, store: SessionStore) -> "InmeroHttpClient":
        return cls(
            _build_session(),
            base_url=config.base_url,
            timeout=config.private_timeout,
            store=store,
            refresh_client=cls.build_public(config),
        )

    @property
    def authenticated(self) -> bool:
        return self.store is not None

    def get(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs) -> requests.Response:
        """GET request. Raises ApiError subclasses on non-2xx."""
        return self._request(OutboundCall("GET", endpoint, params=params, **kwargs))

    def post_json(
        self,
        endpoint: str,
        body: Any = None,
        params: dict[str, Any] | None = None,
        **kwargs,
    ) -> requests.Response:
        """POST with JSON body. Raises ApiError subclasses on non-2xx."""
        return self._request(OutboundCall("POST", endpoint, params=params, json=body, **kwargs))

    def put_json(self, endpoint: str, body: Any = None, **kwargs) -> requests.Response:
        return self._request(OutboundCall("PUT", endpoint, json=body, **kwargs))

    def delete(self, endpoint: str, params: dict[str, Any] | None = None, **kwargs) -> requests.Response:
        return self._request(OutboundCall("DELETE", endpoint, params=params, **kwargs))

    def post_multipart(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        files: Any = None,
        **kwargs,
    ) -> requests.Response:
        """POST multipart/form-data; requests sets the boundary header."""
        return self._request(OutboundCall("POST", endpoint, data=data, files=files, **kwargs))

    def put_multipart(
        self,
        endpoint: str,
        data: dict[str, Any] | None = None,
        files: Any = None,
        **kwargs,
    ) -> requests.Response:
        return self._request(OutboundCall("PUT", endpoint, data=data, files=files, **kwargs))

    # --- Credentials ---

    def attach_credentials(self, headers: dict[str, str]) -> str | None:
        """
        Set Authorization from the stored token pair. No-op when nothing is stored;
        the request then goes out unauthenticated. Returns the token attached.
        """
        if self.store is None:
            return None
        token = self.store.access_token
        if not token:
            return None
        headers["Authorization"] = f"{self.store.token_type} {token}"
        return token

    def handle_unauthorized(self, call: OutboundCall, error: ApiError) -> bool:
        """
        Decide what to do with a 401. Returns True when `call` should be resent
        with the current credentials; raises SessionExpired when the session is gone.
        """
        if self.store is None or error.status_code != 401:
            return False

        if call.retried:
            logger.warning("401 on retried request %s %s; ending session", call.method, call.endpoint)
            self.store.clear()
            raise SessionExpired(
                "Session expired",
                status_code=401,
                response_body=error.response_body,
                endpoint=call.endpoint,
            ) from error

        call.retried = True

        current = self.store.access_token
        if current and call.sent_token and current != call.sent_token:
            # Credentials were already replaced while this call was in flight
            logger.info("Token changed since %s %s was sent; retrying", call.method, call.endpoint)
            return True

        self.refresher.refresh(call.sent_token)
        return True

    def _perform_refresh(self) -> str:
        store = self.store
        refresh_token = store.refresh_token
        access_token = store.access_token
        endpoint = InmeroEndpoints.REFRESH.value

        if not refresh_token or not access_token:
            logger.error("No tokens available for refresh")
            store.clear()
            raise SessionExpired("No tokens available for refresh", status_code=401, endpoint=endpoint)

        logger.info("Refreshing access token")
        try:
            resp = self.refresh_client.post_json(
                endpoint,
                body={},
                params={"refresh_token": refresh_token},
                extra_headers={"Authorization": f"{store.token_type} {access_token}"},
            )
            body = RefreshResponseBody(**resp.json())
        except (InmeroError, ValueError) as e:
            logger.error("Token refresh failed: %s", e)
            store.clear()
            raise SessionExpired(
                "Token refresh failed",
                status_code=getattr(e, "status_code", None),
                response_body=getattr(e, "response_body", None),
                endpoint=endpoint,
            ) from e

        if not body.access_token:
            logger.error("Token refresh response carried no access_token")
            store.clear()
            raise SessionExpired("Token refresh returned no access token", endpoint=endpoint)

        store.save_tokens(body.access_token, body.refresh_token, body.token_type or store.token_type)
        logger.info("Access token refreshed")
        return body.access_token

    # --- Transport ---

    def _request(self, call: OutboundCall) -> requests.Response:
        while True:
            headers = dict(call.extra_headers) if call.extra_headers else {}
            call.sent_token = self.attach_credentials(headers)
            try:
                return self._send(call, headers)
            except AuthError as e:
                if not self.handle_unauthorized(call, e):
                    raise
                _rewind_files(call.files)

    def _send(self, call: OutboundCall, headers: dict[str, str]) -> requests.Response:
        method, endpoint = call.method, call.endpoint
        url = self.base_url + endpoint
        timeout = call.timeout or self.timeout
        log_params = _redact_for_log(call.params)
        log_body = _redact_for_log(call.json if isinstance(call.json, dict) else call.data)

        with sentry_sdk.start_span(op="http.client", name=f"inmero {method} {endpoint}") as span:
            span.set_tag("http.url", url)
            span.set_tag("http.method", method)
            span.set_tag("inmero.endpoint", endpoint)
            span.set_tag("inmero.authenticated", self.authenticated)

            if call.json is not None:
                headers.setdefault("Content-Type", "application/json")

            logger.info(
                "Inmero request %s %s params=%s body=%s retried=%s",
                method,
                endpoint,
                log_params,
                log_body,
                call.retried,
            )

            try:
                resp = self.session.request(
                    method,
                    url,
                    params=call.params,
                    json=call.json,
                    data=call.data,
                    files=call.files,
                    headers=headers if headers else None,
                    timeout=timeout,
                )
            except requests.exceptions.Timeout as e:
                logger.error("Inmero request timed out %s %s: %s", method, endpoint, e)
                span.set_status("deadline_exceeded")
                raise NetworkError(f"Request timed out: {method} {endpoint}", endpoint=endpoint, timeout=True) from e
            except requests.exceptions.RequestException as e:
                logger.error("Inmero request failed %s %s: %s", method, endpoint, e)
                span.set_status("internal_error")
                raise NetworkError(f"Request failed: {method} {endpoint}: {e}", endpoint=endpoint) from e

            span.set_tag("http.status_code", resp.status_code)

            resp_body_preview = resp.text
            if not resp.ok and resp_body_preview:
                resp_body_preview = _truncate(resp_body_preview)
            logger.info(
                "Inmero response %s %s status=%s body=%s",
                method,
                endpoint,
                resp.status_code,
                resp_body_preview if not resp.ok else "(success)",
            )

            if resp.ok:
                span.set_status("ok")
                return resp

            # Normalize errors with status_code, response_body, endpoint
            status = resp.status_code
            body = resp.text or ""
            body_truncated = _truncate(body)

            if status == 429:
                retry_after_header = resp.headers.get("Retry-After")
                try:
                    retry_after = float(retry_after_header) if retry_after_header else None
                except ValueError:
                    retry_after = None
                logger.warning("Inmero rate limit (429) %s Retry-After=%s", endpoint, retry_after_header)
                span.set_status("resource_exhausted")
                raise RateLimited(
                    f"Rate limit exceeded: {body_truncated}",
                    retry_after=retry_after,
                    status_code=429,
                    response_body=body,
                    endpoint=endpoint,
                )

            if status in (401, 403):
                logger.warning("Inmero auth error %s %s: %s", status, endpoint, body_truncated)
                span.set_status("unauthenticated" if status == 401 else "permission_denied")
                raise AuthError(
                    f"Auth error {status}: {body_truncated}",
                    status_code=status,
                    response_body=body,
                    endpoint=endpoint,
                )

            if status in SERVER_ERROR_STATUSES:
                logger.warning("Inmero server error %s %s: %s", status, endpoint, body_truncated)
                span.set_status("internal_error")
                raise ServerError(
                    f"Server error {status}: {body_truncated}",
                    status_code=status,
                    response_body=body,
                    endpoint=endpoint,
                )

            span.set_status("invalid_argument" if status < 500 else "internal_error")
            raise ApiError(
                f"Inmero API error {status}: {body_truncated}",
                status_code=status,
                response_body=body,
                endpoint=endpoint,
            )
