"""
Tests for InmeroHttpClient - centralized HTTP transport.

Covers: error normalization (429, 401/403, 5xx, other 4xx, network failures),
credential attachment, refresh-and-retry on 401, retry-once, forced logout on
refresh failure, and single-flight refresh under concurrent 401s.
"""
import io
import json
import threading
from concurrent.futures import ThreadPoolExecutor
from urllib.parse import parse_qs, urlparse

import pytest
import requests
import responses

from inmero_client.constants import StorageKeys
from inmero_client.errors import (
    ApiError,
    AuthError,
    NetworkError,
    RateLimited,
    ServerError,
    SessionExpired,
)
from inmero_client.http_client import InmeroHttpClient, RefreshCoordinator


def _url(config, endpoint):
    return config.base_url + endpoint


def _refresh_calls():
    return [c for c in responses.calls if "/auth/refresh" in c.request.url]


# =============================================================================
# Error normalization
# =============================================================================


class TestErrorMapping:
    @responses.activate
    def test_get_success(self, config, public_client):
        responses.add(responses.GET, _url(config, "/restaurants/locations/"), json={"data": []}, status=200)
        resp = public_client.get("/restaurants/locations/", params={"limit": 50})
        assert resp.status_code == 200
        assert resp.json() == {"data": []}

    @responses.activate
    def test_429_raises_rate_limited_with_retry_after(self, config, public_client):
        responses.add(
            responses.POST,
            _url(config, "/users/login"),
            json={"detail": "Demasiados intentos"},
            status=429,
            headers={"Retry-After": "30"},
        )
        with pytest.raises(RateLimited) as exc_info:
            public_client.post_json("/users/login", {"email_or_document_number": "a@b.co", "password": "x"})
        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 30.0
        assert exc_info.value.endpoint == "/users/login"
        assert exc_info.value.user_message == "Demasiados intentos"

    @responses.activate
    def test_403_raises_auth_error_without_refresh(self, config, private_client):
        responses.add(responses.GET, _url(config, "/users/users/42"), body="Forbidden", status=403)
        with pytest.raises(AuthError) as exc_info:
            private_client.get("/users/users/42")
        assert exc_info.value.status_code == 403
        assert _refresh_calls() == []

    @responses.activate
    def test_401_on_public_client_raises_auth_error(self, config, public_client):
        responses.add(responses.POST, _url(config, "/users/login"), json={"detail": "bad"}, status=401)
        with pytest.raises(AuthError):
            public_client.post_json("/users/login", {})
        assert len(responses.calls) == 1

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    @responses.activate
    def test_5xx_raises_server_error(self, config, public_client, status):
        responses.add(responses.GET, _url(config, "/restaurants/locations/"), body="boom", status=status)
        with pytest.raises(ServerError) as exc_info:
            public_client.get("/restaurants/locations/")
        assert exc_info.value.status_code == status
        assert exc_info.value.response_body == "boom"

    @responses.activate
    def test_404_raises_api_error(self, config, public_client):
        responses.add(responses.GET, _url(config, "/restaurant/locations/9"), json={"message": "No existe"}, status=404)
        with pytest.raises(ApiError) as exc_info:
            public_client.get("/restaurant/locations/9")
        assert not isinstance(exc_info.value, (AuthError, ServerError, RateLimited))
        assert exc_info.value.user_message == "No existe"

    @pytest.mark.parametrize(
        "body,expected",
        [
            ({"message": "m"}, "m"),
            ({"error": "e"}, "e"),
            ({"detail": "d"}, "d"),
            ({"detail": [{"msg": "campo requerido"}]}, "campo requerido"),
            ({"other": "x"}, "Error inesperado. Intenta nuevamente"),
        ],
    )
    @responses.activate
    def test_user_message_checks_all_error_shapes(self, config, public_client, body, expected):
        responses.add(responses.POST, _url(config, "/users/signup"), json=body, status=400)
        with pytest.raises(ApiError) as exc_info:
            public_client.post_json("/users/signup", {})
        assert exc_info.value.user_message == expected

    @responses.activate
    def test_connection_error_raises_network_error(self, config, public_client):
        responses.add(
            responses.GET,
            _url(config, "/restaurants/locations/"),
            body=requests.exceptions.ConnectionError("unreachable"),
        )
        with pytest.raises(NetworkError) as exc_info:
            public_client.get("/restaurants/locations/")
        assert exc_info.value.timeout is False
        assert exc_info.value.endpoint == "/restaurants/locations/"

    @responses.activate
    def test_timeout_raises_network_error(self, config, public_client):
        responses.add(
            responses.GET,
            _url(config, "/restaurants/locations/"),
            body=requests.exceptions.ReadTimeout("slow"),
        )
        with pytest.raises(NetworkError) as exc_info:
            public_client.get("/restaurants/locations/")
        assert exc_info.value.timeout is True
        assert "Tiempo de espera" in exc_info.value.user_message


# =============================================================================
# Credentials
# =============================================================================


class TestAttachCredentials:
    @responses.activate
    def test_private_client_sends_stored_token(self, config, private_client, access_token):
        responses.add(responses.GET, _url(config, "/users/users/42"), json={"id": 42}, status=200)
        private_client.get("/users/users/42")
        assert responses.calls[0].request.headers["Authorization"] == f"bearer {access_token}"

    @responses.activate
    def test_no_stored_token_sends_unauthenticated(self, config, empty_store):
        client = InmeroHttpClient.build_private(config, empty_store)
        responses.add(responses.GET, _url(config, "/restaurants/locations/"), json={"data": []}, status=200)
        client.get("/restaurants/locations/")
        assert "Authorization" not in responses.calls[0].request.headers

    @responses.activate
    def test_public_client_never_sends_authorization(self, config, public_client):
        responses.add(responses.POST, _url(config, "/users/login"), json={}, status=200)
        public_client.post_json("/users/login", {})
        assert "Authorization" not in responses.calls[0].request.headers


# =============================================================================
# Refresh and retry
# =============================================================================


class TestRefreshOnUnauthorized:
    @responses.activate
    def test_401_refreshes_and_retries_with_new_token(self, config, private_client, store, access_token, token_factory):
        new_token = token_factory(jti="refreshed")
        responses.add(responses.GET, _url(config, "/users/users/42"), json={"detail": "expired"}, status=401)
        responses.add(responses.GET, _url(config, "/users/users/42"), json={"id": 42}, status=200)
        responses.add(
            responses.POST,
            _url(config, "/auth/refresh"),
            json={"access_token": new_token, "token_type": "bearer"},
            status=200,
        )

        resp = private_client.get("/users/users/42")

        assert resp.json() == {"id": 42}
        assert len(_refresh_calls()) == 1

        refresh_request = _refresh_calls()[0].request
        query = parse_qs(urlparse(refresh_request.url).query)
        assert query["refresh_token"] == ["refresh-original"]
        assert refresh_request.headers["Authorization"] == f"bearer {access_token}"

        user_calls = [c for c in responses.calls if "/users/users/42" in c.request.url]
        assert user_calls[0].request.headers["Authorization"] == f"bearer {access_token}"
        assert user_calls[1].request.headers["Authorization"] == f"bearer {new_token}"
        assert store.access_token == new_token

    @responses.activate
    def test_retry_resends_original_payload(self, config, private_client, token_factory):
        responses.add(responses.POST, _url(config, "/reservation/reservations/"), status=401)
        responses.add(responses.POST, _url(config, "/reservation/reservations/"), json={"id": 9}, status=201)
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"access_token": token_factory(jti="n")})

        body = {"table_id": 3, "number_of_guests": 2}
        private_client.post_json("/reservation/reservations/", body)

        sent = [c for c in responses.calls if "/reservation/reservations/" in c.request.url]
        assert [json.loads(c.request.body) for c in sent] == [body, body]

    @responses.activate
    def test_retry_resends_review_photos(self, config, api_access, token_factory, tmp_path):
        photo = tmp_path / "plato.png"
        photo.write_bytes(b"PHOTO-BYTES-1234")
        responses.add(responses.POST, _url(config, "/review/reviews/"), status=401)
        responses.add(responses.POST, _url(config, "/review/reviews/"), json={"id": 13}, status=201)
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"access_token": token_factory(jti="n")})

        assert api_access.create_review(42, 7, 5, photos=[photo]) == {"id": 13}

        sent = [c for c in responses.calls if "/review/reviews/" in c.request.url]
        assert len(sent) == 2
        assert all(b"PHOTO-BYTES-1234" in c.request.body for c in sent)

    @responses.activate
    def test_retry_rewinds_caller_file_objects(self, config, private_client, token_factory):
        responses.add(responses.PUT, _url(config, "/review/reviews/12"), status=401)
        responses.add(responses.PUT, _url(config, "/review/reviews/12"), json={"id": 12})
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"access_token": token_factory(jti="n")})

        handle = io.BytesIO(b"PHOTO-BYTES-5678")
        private_client.put_multipart(
            "/review/reviews/12",
            data={"rating": "4.0"},
            files=[("files", ("photo_0.jpg", handle, "image/jpeg"))],
        )

        sent = [c for c in responses.calls if "/review/reviews/12" in c.request.url]
        assert all(b"PHOTO-BYTES-5678" in c.request.body for c in sent)

    @responses.activate
    def test_rotated_refresh_token_is_persisted(self, config, private_client, store, storage, token_factory):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.GET, _url(config, "/users/users/42"), json={"id": 42})
        responses.add(
            responses.POST,
            _url(config, "/auth/refresh"),
            json={"access_token": token_factory(jti="n"), "refresh_token": "refresh-rotated"},
        )

        private_client.get("/users/users/42")

        assert store.refresh_token == "refresh-rotated"
        assert storage.get_item(StorageKeys.REFRESH_TOKEN.value) == "refresh-rotated"

    @responses.activate
    def test_refresh_without_rotation_keeps_old_refresh_token(self, config, private_client, store, token_factory):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.GET, _url(config, "/users/users/42"), json={"id": 42})
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"access_token": token_factory(jti="n")})

        private_client.get("/users/users/42")

        assert store.refresh_token == "refresh-original"

    @responses.activate
    def test_401_after_retry_raises_session_expired_without_second_refresh(
        self, config, private_client, store, token_factory
    ):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"access_token": token_factory(jti="n")})

        with pytest.raises(SessionExpired):
            private_client.get("/users/users/42")

        assert len(_refresh_calls()) == 1
        user_calls = [c for c in responses.calls if "/users/users/42" in c.request.url]
        assert len(user_calls) == 2
        assert store.snapshot() is None

    @responses.activate
    def test_refresh_failure_forces_logout(self, config, private_client, store, storage):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"detail": "invalid"}, status=401)

        with pytest.raises(SessionExpired) as exc_info:
            private_client.get("/users/users/42")

        assert exc_info.value.status_code == 401
        assert store.snapshot() is None
        assert storage.get_item(StorageKeys.ACCESS_TOKEN.value) is None
        assert storage.get_item(StorageKeys.REFRESH_TOKEN.value) is None
        # Original request is not resent after a failed refresh
        assert len([c for c in responses.calls if "/users/users/42" in c.request.url]) == 1

    @responses.activate
    def test_refresh_response_without_access_token_forces_logout(self, config, private_client, store):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.POST, _url(config, "/auth/refresh"), json={"token_type": "bearer"})

        with pytest.raises(SessionExpired):
            private_client.get("/users/users/42")
        assert store.snapshot() is None

    @responses.activate
    def test_refresh_network_error_forces_logout(self, config, private_client, store):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(
            responses.POST,
            _url(config, "/auth/refresh"),
            body=requests.exceptions.ConnectionError("down"),
        )

        with pytest.raises(SessionExpired):
            private_client.get("/users/users/42")
        assert store.snapshot() is None

    @responses.activate
    def test_missing_refresh_token_raises_session_expired(self, config, empty_store, token_factory):
        empty_store.save_tokens(token_factory())
        client = InmeroHttpClient.build_private(config, empty_store)
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)

        with pytest.raises(SessionExpired):
            client.get("/users/users/42")

        assert _refresh_calls() == []
        assert empty_store.snapshot() is None

    @responses.activate
    def test_refresh_marker_cleared_after_failure(self, config, private_client, store, token_factory):
        responses.add(responses.GET, _url(config, "/users/users/42"), status=401)
        responses.add(responses.POST, _url(config, "/auth/refresh"), status=500)

        with pytest.raises(SessionExpired):
            private_client.get("/users/users/42")

        assert private_client.refresher.in_flight is False


# =============================================================================
# Single-flight
# =============================================================================


def _response(status, body=None):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = "OK" if status < 400 else "Unauthorized"
    resp._content = json.dumps(body or {}).encode()
    resp.headers["Content-Type"] = "application/json"
    return resp


class RejectStaleTokenSession:
    """Fake requests.Session: 401 for `stale_token`, 200 for anything else."""

    def __init__(self, stale_token, expected_rejections):
        self.stale_token = stale_token
        self.expected_rejections = expected_rejections
        self.all_rejected = threading.Event()
        self.sent_authorizations = []
        self._lock = threading.Lock()

    def request(self, method, url, headers=None, **kwargs):
        authorization = (headers or {}).get("Authorization", "")
        with self._lock:
            self.sent_authorizations.append(authorization)
            if authorization.endswith(self.stale_token):
                rejected = sum(1 for a in self.sent_authorizations if a.endswith(self.stale_token))
                if rejected >= self.expected_rejections:
                    self.all_rejected.set()
                return _response(401, {"detail": "expired"})
        return _response(200, {"ok": True})


class GatedRefreshSession:
    """Fake refresh endpoint that answers only once every caller has seen its 401."""

    def __init__(self, gate, new_token):
        self.gate = gate
        self.new_token = new_token
        self.calls = 0
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls += 1
        self.gate.wait(timeout=5)
        return _response(200, {"access_token": self.new_token})


class TestSingleFlightRefresh:
    @pytest.mark.parametrize("n_requests", [2, 5, 10])
    def test_concurrent_401s_trigger_exactly_one_refresh(self, config, store, access_token, token_factory, n_requests):
        new_token = token_factory(jti="single-flight")
        api_session = RejectStaleTokenSession(access_token, n_requests)
        refresh_session = GatedRefreshSession(api_session.all_rejected, new_token)

        refresh_client = InmeroHttpClient(refresh_session, base_url=config.base_url)
        client = InmeroHttpClient(api_session, base_url=config.base_url, store=store, refresh_client=refresh_client)

        with ThreadPoolExecutor(max_workers=n_requests) as executor:
            futures = [executor.submit(client.get, "/users/users/42") for _ in range(n_requests)]
            results = [f.result(timeout=10) for f in futures]

        assert refresh_session.calls == 1
        assert all(r.json() == {"ok": True} for r in results)
        retried = [a for a in api_session.sent_authorizations if a == f"bearer {new_token}"]
        assert len(retried) == n_requests
        assert store.access_token == new_token

    def test_waiters_receive_the_owner_failure(self):
        release = threading.Event()
        started = threading.Event()

        def failing_refresh():
            started.set()
            release.wait(timeout=5)
            raise SessionExpired("Token refresh failed", status_code=401)

        coordinator = RefreshCoordinator(failing_refresh, lambda: "old-token")
        with ThreadPoolExecutor(max_workers=2) as executor:
            owner = executor.submit(coordinator.refresh)
            started.wait(timeout=5)
            release.set()
            with pytest.raises(SessionExpired):
                owner.result(timeout=5)

        assert coordinator.in_flight is False

    def test_new_cycle_starts_after_settle(self):
        tokens = iter(["first", "second"])
        coordinator = RefreshCoordinator(lambda: next(tokens), lambda: "old-token")

        assert coordinator.refresh("old-token") == "first"
        assert coordinator.refresh("old-token") == "second"

    def test_already_replaced_token_skips_refresh(self):
        calls = []

        def refresh():
            calls.append(1)
            return "unused"

        coordinator = RefreshCoordinator(refresh, lambda: "new-token")

        assert coordinator.refresh("old-token") == "new-token"
        assert calls == []
