"""
Shared pytest fixtures for inmero_client tests.

This module provides reusable fixtures for:
- Configuration and storage objects
- Access token factories (real signed tokens, decoded unverified)
- Slot/table factories
- Transport and API access objects wired to a test base URL
"""
from __future__ import annotations

import time
from datetime import date
from typing import Dict, List, Sequence
from unittest.mock import MagicMock

import jwt
import pytest

from inmero_client.api_access import InmeroApiAccess
from inmero_client.http_client import InmeroHttpClient
from inmero_client.models import AvailableSlot, ClientConfig, Session, Table
from inmero_client.session import SessionStore
from inmero_client.storage import InMemoryStorage

BASE_URL = "https://api.test.inmero.co/restpaid"
SIGNING_KEY = "inmero-test-signing-key-0123456789abcdef"
TEST_USER_ID = 42


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(base_url=BASE_URL)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


# =============================================================================
# Token Factory
# =============================================================================

def make_token(user_id: int | None = TEST_USER_ID, expires_in: int = 3600, exp: int | None = None, **claims) -> str:
    """Signed access token; the client never verifies the signature."""
    payload: Dict = dict(claims)
    if user_id is not None:
        payload["user_id"] = user_id
    payload["exp"] = exp if exp is not None else int(time.time()) + expires_in
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def token_factory():
    return make_token


@pytest.fixture
def access_token() -> str:
    return make_token(jti="original")


@pytest.fixture
def store(storage, access_token) -> SessionStore:
    """SessionStore holding a logged-in session."""
    store = SessionStore(storage)
    store.save_session(
        Session(
            access_token=access_token,
            refresh_token="refresh-original",
            token_type="bearer",
            user_id=TEST_USER_ID,
            username="ana@example.com",
            email="ana@example.com",
        )
    )
    return store


@pytest.fixture
def empty_store(storage) -> SessionStore:
    return SessionStore(storage)


# =============================================================================
# Transport Fixtures
# =============================================================================

@pytest.fixture
def public_client(config) -> InmeroHttpClient:
    return InmeroHttpClient.build_public(config)


@pytest.fixture
def private_client(config, store) -> InmeroHttpClient:
    return InmeroHttpClient.build_private(config, store)


@pytest.fixture
def api_access(config, store) -> InmeroApiAccess:
    return InmeroApiAccess.build(config, store)


@pytest.fixture
def mock_api_access() -> MagicMock:
    """Collaborator double for managers that only need the API surface."""
    return MagicMock(spec=InmeroApiAccess)


# =============================================================================
# Slot Factory and Fixtures
# =============================================================================

class SlotFactory:
    """Factory for creating test AvailableSlot objects."""

    @staticmethod
    def create(time_str: str, capacities: Sequence[int] = (2, 4), first_table_id: int = 100) -> AvailableSlot:
        tables = [
            Table(table_id=first_table_id + i, capacity=capacity, table_number=i + 1)
            for i, capacity in enumerate(capacities)
        ]
        return AvailableSlot(time=time_str, available_tables=tables)

    @staticmethod
    def create_batch(times: Sequence[str], capacities: Sequence[int] = (2, 4)) -> List[AvailableSlot]:
        return [SlotFactory.create(t, capacities, first_table_id=100 + 10 * i) for i, t in enumerate(times)]

    @staticmethod
    def as_json(slots: Sequence[AvailableSlot]) -> Dict:
        """Response body of the available_slots endpoint."""
        return {"available_slots": [slot.model_dump() for slot in slots]}


@pytest.fixture
def slot_factory() -> SlotFactory:
    return SlotFactory()


@pytest.fixture
def booking_date() -> date:
    return date(2026, 3, 14)
