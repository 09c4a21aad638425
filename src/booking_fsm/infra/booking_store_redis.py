"""Implementação de BookingStateStore usando Redis (produção).

Chaves:
- {prefix}state:{booking_id}        JSON com state, version e state_data cifrado
- {prefix}transitions:{booking_id}  lista append-only de TransitionRecord
- {prefix}index:{state}             set de booking_ids no estado

save() é compare-and-set via WATCH/MULTI: escrita concorrente vira
ConcurrencyConflictError e quem chama recarrega e tenta de novo.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError
from redis.exceptions import WatchError

from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.errors import BookingStoreError, ConcurrencyConflictError
from booking_fsm.domain.models import BookingContext, BookingStateData, TransitionRecord
from booking_fsm.domain.protocols.booking_store import BookingStateStoreProtocol
from booking_fsm.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class StoredBooking(BaseModel):
    """Formato persistido de uma reserva."""

    state: BookingState
    version: int
    state_data: dict[str, Any]

    def to_context(self, booking_id: str) -> BookingContext:
        return BookingContext(
            booking_id=booking_id,
            state=self.state,
            state_data=BookingStateData.model_validate(self.state_data),
            version=self.version,
        )


def _as_text(payload: bytes | str) -> str:
    if isinstance(payload, bytes):
        return payload.decode("utf-8")
    return payload


class RedisBookingStateStore(BookingStateStoreProtocol):
    """Armazenamento em Redis para produção."""

    def __init__(self, redis_client: Any, key_prefix: str = "booking:") -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix

    def _state_key(self, booking_id: str) -> str:
        return f"{self._key_prefix}state:{booking_id}"

    def _transitions_key(self, booking_id: str) -> str:
        return f"{self._key_prefix}transitions:{booking_id}"

    def _index_key(self, state: BookingState) -> str:
        return f"{self._key_prefix}index:{state}"

    def _decode(self, booking_id: str, payload: bytes | str) -> BookingContext:
        try:
            return StoredBooking.model_validate_json(_as_text(payload)).to_context(booking_id)
        except ValidationError as e:
            logger.error(
                "Corrupted booking payload (Redis)",
                extra={"booking_id": booking_id, "error_count": e.error_count()},
            )
            raise BookingStoreError(f"Corrupted booking payload: {booking_id}") from e

    def load(self, booking_id: str) -> BookingContext | None:
        try:
            payload = self._redis.get(self._state_key(booking_id))
        except Exception as e:
            logger.error(
                "Failed to load booking from Redis",
                extra={"booking_id": booking_id, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis load failed: {e}") from e

        if not payload:
            logger.debug("Booking not found (Redis)", extra={"booking_id": booking_id})
            return None
        return self._decode(booking_id, payload)

    def save(
        self,
        booking_id: str,
        state_data: BookingStateData,
        state: BookingState,
        expected_version: int,
    ) -> int:
        key = self._state_key(booking_id)

        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(key)
                raw_current = pipe.get(key)
                current = self._decode(booking_id, raw_current) if raw_current else None
                actual_version = current.version if current is not None else 0
                if actual_version != expected_version:
                    raise ConcurrencyConflictError(
                        booking_id,
                        expected_version,
                        current.version if current is not None else None,
                    )

                new_version = actual_version + 1
                stored = StoredBooking(
                    state=state,
                    version=new_version,
                    state_data=state_data.to_storage(),
                )

                pipe.multi()
                pipe.set(key, stored.model_dump_json())
                if current is not None and current.state != state:
                    pipe.srem(self._index_key(current.state), booking_id)
                pipe.sadd(self._index_key(state), booking_id)
                pipe.execute()
        except WatchError as e:
            logger.info(
                "Booking write conflict (Redis)",
                extra={"booking_id": booking_id, "expected_version": expected_version},
            )
            raise ConcurrencyConflictError(booking_id, expected_version, None) from e
        except BookingStoreError:
            raise
        except Exception as e:
            logger.error(
                "Failed to save booking to Redis",
                extra={"booking_id": booking_id, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis save failed: {e}") from e

        logger.debug(
            "Booking saved (Redis)",
            extra={"booking_id": booking_id, "state": state, "version": new_version},
        )
        return new_version

    def delete(self, booking_id: str) -> bool:
        current = self.load(booking_id)
        try:
            deleted = self._redis.delete(self._state_key(booking_id))
            self._redis.delete(self._transitions_key(booking_id))
            if current is not None:
                self._redis.srem(self._index_key(current.state), booking_id)
        except Exception as e:
            logger.error(
                "Failed to delete booking from Redis",
                extra={"booking_id": booking_id, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis delete failed: {e}") from e
        return bool(deleted)

    def append_transition(self, record: TransitionRecord) -> None:
        try:
            self._redis.rpush(self._transitions_key(record.booking_id), record.model_dump_json())
        except Exception as e:
            logger.error(
                "Failed to append booking transition to Redis",
                extra={"booking_id": record.booking_id, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis append failed: {e}") from e

    def list_transitions(self, booking_id: str) -> list[TransitionRecord]:
        try:
            entries = self._redis.lrange(self._transitions_key(booking_id), 0, -1)
        except Exception as e:
            logger.error(
                "Failed to list booking transitions from Redis",
                extra={"booking_id": booking_id, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis list failed: {e}") from e
        return [TransitionRecord.model_validate_json(_as_text(entry)) for entry in entries]

    def list_in_state(self, state: BookingState, limit: int = 100) -> list[BookingContext]:
        try:
            members = self._redis.smembers(self._index_key(state))
        except Exception as e:
            logger.error(
                "Failed to list bookings by state from Redis",
                extra={"state": state, "error": type(e).__name__},
            )
            raise BookingStoreError(f"Redis index read failed: {e}") from e

        contexts: list[BookingContext] = []
        for booking_id in sorted(_as_text(member) for member in members):
            if len(contexts) >= limit:
                break
            context = self.load(booking_id)
            # Índice pode estar defasado em relação ao estado persistido
            if context is not None and context.state == state:
                contexts.append(context)
        return contexts
