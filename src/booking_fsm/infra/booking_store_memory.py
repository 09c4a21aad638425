"""Implementação de BookingStateStore em memória (apenas dev/testes)."""

from __future__ import annotations

import logging
import threading

from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.errors import ConcurrencyConflictError
from booking_fsm.domain.models import BookingContext, BookingStateData, TransitionRecord
from booking_fsm.domain.protocols.booking_store import BookingStateStoreProtocol
from booking_fsm.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class InMemoryBookingStateStore(BookingStateStoreProtocol):
    """Armazenamento em memória, thread-safe.

    ⚠️ Não usar em produção!
    - Não persiste entre restarts
    - Não funciona com múltiplas instâncias
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bookings: dict[str, BookingContext] = {}
        self._transitions: dict[str, list[TransitionRecord]] = {}

    def load(self, booking_id: str) -> BookingContext | None:
        with self._lock:
            context = self._bookings.get(booking_id)
        if context is None:
            logger.debug("Booking not found (in-memory)", extra={"booking_id": booking_id})
        return context

    def save(
        self,
        booking_id: str,
        state_data: BookingStateData,
        state: BookingState,
        expected_version: int,
    ) -> int:
        with self._lock:
            current = self._bookings.get(booking_id)
            actual_version = current.version if current is not None else 0
            if actual_version != expected_version:
                raise ConcurrencyConflictError(
                    booking_id,
                    expected_version,
                    current.version if current is not None else None,
                )

            new_version = actual_version + 1
            self._bookings[booking_id] = BookingContext(
                booking_id=booking_id,
                state=state,
                state_data=state_data,
                version=new_version,
            )

        logger.debug(
            "Booking saved (in-memory)",
            extra={"booking_id": booking_id, "state": state, "version": new_version},
        )
        return new_version

    def delete(self, booking_id: str) -> bool:
        with self._lock:
            self._transitions.pop(booking_id, None)
            return self._bookings.pop(booking_id, None) is not None

    def append_transition(self, record: TransitionRecord) -> None:
        with self._lock:
            self._transitions.setdefault(record.booking_id, []).append(record)

    def list_transitions(self, booking_id: str) -> list[TransitionRecord]:
        with self._lock:
            return list(self._transitions.get(booking_id, []))

    def list_in_state(self, state: BookingState, limit: int = 100) -> list[BookingContext]:
        with self._lock:
            matches = [ctx for ctx in self._bookings.values() if ctx.state == state]
        matches.sort(key=lambda ctx: ctx.booking_id)
        return matches[:limit]
