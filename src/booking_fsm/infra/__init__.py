"""Camada de infraestrutura: adapters para serviços externos.

- Booking store: InMemoryBookingStateStore, RedisBookingStateStore, create_booking_store
- Dedupe: InMemoryDedupeStore, RedisDedupeStore, create_dedupe_store
- Secrets: EnvSecretProvider, SecretManagerProvider

Infraestrutura não decide regra de negócio; o domínio não conhece infraestrutura.
"""

from booking_fsm.infra.booking_store import (
    create_booking_store,
    create_booking_store_from_settings,
    create_redis_client,
)
from booking_fsm.infra.booking_store_memory import InMemoryBookingStateStore
from booking_fsm.infra.booking_store_redis import RedisBookingStateStore
from booking_fsm.infra.dedupe import InMemoryDedupeStore, RedisDedupeStore, create_dedupe_store
from booking_fsm.infra.secrets import (
    EnvSecretProvider,
    SecretManagerProvider,
    create_secret_provider,
)

__all__ = [
    "InMemoryBookingStateStore",
    "RedisBookingStateStore",
    "create_booking_store",
    "create_booking_store_from_settings",
    "create_redis_client",
    "InMemoryDedupeStore",
    "RedisDedupeStore",
    "create_dedupe_store",
    "EnvSecretProvider",
    "SecretManagerProvider",
    "create_secret_provider",
]
