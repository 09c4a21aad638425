"""Testes da factory de booking store."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from booking_fsm.config.settings import Settings
from booking_fsm.infra.booking_store import (
    create_booking_store,
    create_booking_store_from_settings,
)
from booking_fsm.infra.booking_store_memory import InMemoryBookingStateStore
from booking_fsm.infra.booking_store_redis import RedisBookingStateStore


class TestCreateBookingStore:
    def test_memory_backend(self) -> None:
        assert isinstance(create_booking_store("memory"), InMemoryBookingStateStore)

    def test_backend_is_case_insensitive(self) -> None:
        assert isinstance(create_booking_store("MEMORY"), InMemoryBookingStateStore)

    def test_redis_backend_with_client(self) -> None:
        store = create_booking_store("redis", client=MagicMock())
        assert isinstance(store, RedisBookingStateStore)

    def test_redis_backend_requires_client(self) -> None:
        with pytest.raises(ValueError, match="Cliente Redis"):
            create_booking_store("redis")

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="não reconhecido"):
            create_booking_store("firestore")


class TestCreateBookingStoreFromSettings:
    def test_memory(self) -> None:
        store = create_booking_store_from_settings(Settings(booking_store_backend="memory"))
        assert isinstance(store, InMemoryBookingStateStore)

    def test_redis_uses_url(self) -> None:
        settings = Settings(booking_store_backend="redis", redis_url="redis://cache:6379/1")
        with patch("redis.from_url", return_value=MagicMock()) as from_url:
            store = create_booking_store_from_settings(settings)

        assert isinstance(store, RedisBookingStateStore)
        assert from_url.call_args[0][0] == "redis://cache:6379/1"
        assert from_url.call_args[1]["decode_responses"] is True

    def test_redis_without_url(self) -> None:
        with pytest.raises(ValueError, match="REDIS_URL"):
            create_booking_store_from_settings(Settings(booking_store_backend="redis"))
