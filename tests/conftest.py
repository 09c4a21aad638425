from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from booking_fsm.api.app import create_app
from booking_fsm.application.booking_service import BookingService
from booking_fsm.application.fsm_engine import BookingFSMEngine
from booking_fsm.config.settings import Settings, get_settings
from booking_fsm.infra.booking_store_memory import InMemoryBookingStateStore
from booking_fsm.security.codec import StateDataCodec
from booking_fsm.security.keys import StateMachineKeys
from booking_fsm.security.tokens import StateTokenService

FIXED_NOW = datetime(2026, 3, 10, 14, 30, tzinfo=UTC)
FIXED_NOW_MS = int(FIXED_NOW.timestamp() * 1000)


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def fixed_now_ms() -> int:
    return FIXED_NOW_MS


@pytest.fixture()
def keys() -> StateMachineKeys:
    return StateMachineKeys(
        encryption_key="test-encryption-key-0123456789abcdef",
        token_secret="test-token-secret-0123456789abcdef",
        token_max_age_seconds=3600,
    )


@pytest.fixture()
def codec(keys: StateMachineKeys) -> StateDataCodec:
    return StateDataCodec(keys)


@pytest.fixture()
def token_service(keys: StateMachineKeys) -> StateTokenService:
    return StateTokenService(keys, clock=lambda: FIXED_NOW_MS)


@pytest.fixture()
def engine(codec: StateDataCodec, token_service: StateTokenService) -> BookingFSMEngine:
    return BookingFSMEngine(codec, token_service=token_service, clock=lambda: FIXED_NOW)


@pytest.fixture()
def store() -> InMemoryBookingStateStore:
    return InMemoryBookingStateStore()


@pytest.fixture()
def service(
    store: InMemoryBookingStateStore,
    engine: BookingFSMEngine,
    codec: StateDataCodec,
    token_service: StateTokenService,
) -> BookingService:
    return BookingService(
        store=store,
        engine=engine,
        codec=codec,
        token_service=token_service,
    )


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("ENVIRONMENT", "test")
    get_settings.cache_clear()
    settings = Settings(
        environment="test",
        state_machine_encryption_key="api-encryption-key-0123456789",
        state_token_secret="api-token-secret-0123456789",
        booking_store_backend="memory",
        webhook_dedupe_backend="memory",
    )
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
    get_settings.cache_clear()
