"""Dedupe de webhooks (Stripe/Calendly entregam at-least-once).

- Redis é o backend de produção (SET NX EX, TTL nativo)
- TTL configurável (padrão: 7 dias)
- Fail-closed: em caso de erro no backend, o webhook NÃO é processado
- InMemoryDedupeStore apenas para dev/testes
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from booking_fsm.domain.errors import DedupeError
from booking_fsm.domain.protocols.dedupe import DedupeProtocol
from booking_fsm.observability.logging import get_logger

if TYPE_CHECKING:
    from booking_fsm.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

DEFAULT_DEDUPE_TTL_SECONDS = 604800  # 7 dias


class InMemoryDedupeStore(DedupeProtocol):
    """Dedupe em memória para desenvolvimento e testes.

    ATENÇÃO: Não usar em produção!
    - Não persiste entre restarts
    - Não funciona com múltiplas instâncias
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_DEDUPE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    def mark_if_new(self, key: str) -> bool:
        """Marca chave se não existir; retorna True se evento é novo."""
        with self._lock:
            self._cleanup_expired()
            if key in self._seen:
                logger.debug("Dedupe hit (in-memory)", extra={"key": key})
                return False
            self._seen[key] = self._clock()
        logger.debug("Dedupe miss (in-memory)", extra={"key": key})
        return True

    def clear(self, key: str) -> bool:
        with self._lock:
            return self._seen.pop(key, None) is not None

    def _cleanup_expired(self) -> None:
        """Remove chaves expiradas (TTL simulado)."""
        now = self._clock()
        expired = [k for k, ts in self._seen.items() if now - ts > self._ttl_seconds]
        for k in expired:
            del self._seen[k]


class RedisDedupeStore(DedupeProtocol):
    """Dedupe via Redis com TTL nativo e fail-closed.

    O cliente é criado sob demanda a partir de `redis_url`, ou injetado.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        ttl_seconds: int = DEFAULT_DEDUPE_TTL_SECONDS,
        key_prefix: str = "webhook_dedupe:",
        client: Any | None = None,
    ) -> None:
        if redis_url is None and client is None:
            raise ValueError("redis_url ou client é obrigatório")
        self._redis_url = redis_url
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._client = client

    def _get_client(self) -> Any:
        """Retorna cliente Redis (lazy loading)."""
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            import redis

            try:
                self._client = redis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    socket_timeout=5.0,
                    socket_connect_timeout=5.0,
                )
                self._client.ping()
                logger.info(
                    "Redis connection established",
                    extra={"url": str(self._redis_url).split("@")[-1]},  # Sem credenciais
                )
            except Exception as e:
                self._client = None
                logger.error(
                    "Failed to connect to Redis",
                    extra={"error_type": type(e).__name__},
                )
                raise DedupeError(f"Não foi possível conectar ao Redis: {e}") from e
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    def mark_if_new(self, key: str) -> bool:
        """Usa SET NX EX para marcar evento novo."""
        client = self._get_client()
        try:
            was_set = client.set(self._make_key(key), "1", nx=True, ex=self._ttl_seconds)
        except Exception as e:
            logger.error(
                "Redis operation failed",
                extra={"operation": "mark_if_new", "error_type": type(e).__name__},
            )
            raise DedupeError(f"Falha ao verificar dedupe: {e}") from e

        is_new = bool(was_set)
        logger.debug(
            "Dedupe check (Redis)",
            extra={"key": key, "is_duplicate": not is_new, "ttl": self._ttl_seconds},
        )
        return is_new

    def clear(self, key: str) -> bool:
        """Remove chave do Redis."""
        client = self._get_client()
        try:
            return client.delete(self._make_key(key)) > 0
        except Exception as e:
            logger.error(
                "Redis operation failed",
                extra={"operation": "clear", "error_type": type(e).__name__},
            )
            raise DedupeError(f"Falha ao remover chave de dedupe: {e}") from e


def create_dedupe_store(settings: Settings) -> DedupeProtocol:
    """Cria o store de dedupe conforme settings.webhook_dedupe_backend.

    Raises:
        ValueError: backend não reconhecido ou REDIS_URL ausente
    """
    backend = settings.webhook_dedupe_backend.lower()
    ttl = settings.webhook_dedupe_ttl_seconds

    if backend == "memory":
        logger.info("Using InMemoryDedupeStore (dev/tests only)", extra={"ttl_seconds": ttl})
        return InMemoryDedupeStore(ttl_seconds=ttl)

    if backend == "redis":
        if not settings.redis_url:
            raise ValueError("REDIS_URL é obrigatório quando webhook_dedupe_backend=redis")
        logger.info("Using RedisDedupeStore", extra={"ttl_seconds": ttl})
        return RedisDedupeStore(redis_url=settings.redis_url, ttl_seconds=ttl)

    raise ValueError(f"Backend de dedupe não reconhecido: {backend}")
