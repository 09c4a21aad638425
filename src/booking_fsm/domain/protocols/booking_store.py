"""Protocolo de domínio para persistência do estado das reservas.

O engine é puro; quem serializa escritas por reserva é o store, via
concorrência otimista (`expected_version`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.models import BookingContext, BookingStateData, TransitionRecord


class BookingStateStoreProtocol(ABC):
    """Contrato mínimo síncrono para armazenamento de BookingContext."""

    @abstractmethod
    def load(self, booking_id: str) -> BookingContext | None: ...

    @abstractmethod
    def save(
        self,
        booking_id: str,
        state_data: BookingStateData,
        state: BookingState,
        expected_version: int,
    ) -> int:
        """Persiste estado se a versão atual for `expected_version`.

        expected_version=0 exige que a reserva ainda não exista.

        Returns:
            Nova versão persistida.

        Raises:
            ConcurrencyConflictError: versão divergente (escrita concorrente)
            BookingStoreError: falha do backend
        """

    @abstractmethod
    def delete(self, booking_id: str) -> bool: ...

    @abstractmethod
    def append_transition(self, record: TransitionRecord) -> None:
        """Append na trilha de transições da reserva."""

    @abstractmethod
    def list_transitions(self, booking_id: str) -> list[TransitionRecord]:
        """Lista transições em ordem de inserção."""

    @abstractmethod
    def list_in_state(self, state: BookingState, limit: int = 100) -> list[BookingContext]: ...
