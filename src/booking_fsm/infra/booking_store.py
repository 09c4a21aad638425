"""Factory de persistência do estado das reservas.

Backends:
- memory: InMemoryBookingStateStore (dev/testes)
- redis: RedisBookingStateStore (produção, compare-and-set)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from booking_fsm.domain.errors import BookingStoreError
from booking_fsm.domain.protocols.booking_store import BookingStateStoreProtocol
from booking_fsm.infra.booking_store_memory import InMemoryBookingStateStore
from booking_fsm.infra.booking_store_redis import RedisBookingStateStore
from booking_fsm.observability.logging import get_logger

if TYPE_CHECKING:
    from booking_fsm.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_redis_client(redis_url: str) -> Any:
    """Cria cliente redis-py (import tardio)."""
    # pylint: disable=import-outside-toplevel
    import redis

    try:
        return redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
    except ValueError as e:
        raise BookingStoreError(f"REDIS_URL inválida: {e}") from e


def create_booking_store(
    backend: str = "memory",
    client: Any | None = None,
) -> BookingStateStoreProtocol:
    """Cria o store de estado das reservas.

    Args:
        backend: "memory" ou "redis"
        client: cliente Redis já configurado (obrigatório para "redis")

    Raises:
        ValueError: backend não reconhecido ou cliente ausente
    """
    backend = backend.lower()
    if backend == "memory":
        logger.info("Using InMemoryBookingStateStore (dev/tests only)")
        return InMemoryBookingStateStore()

    if backend == "redis":
        if client is None:
            raise ValueError("Cliente Redis é obrigatório quando booking_store_backend=redis")
        logger.info("Using RedisBookingStateStore")
        return RedisBookingStateStore(client)

    raise ValueError(f"Backend de booking store não reconhecido: {backend}")


def create_booking_store_from_settings(settings: Settings) -> BookingStateStoreProtocol:
    """Cria o store a partir de Settings (conecta ao Redis se configurado)."""
    backend = settings.booking_store_backend.lower()
    client = None
    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("REDIS_URL é obrigatório quando booking_store_backend=redis")
        client = create_redis_client(settings.redis_url)
    return create_booking_store(backend, client)
