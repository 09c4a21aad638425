"""Exceções do domínio de reservas.

Falhas esperadas (transição inválida, payload incompleto, token adulterado)
NÃO usam exceções: são reportadas em TransitionResult/StateTokenVerification.
As classes abaixo cobrem apenas condições realmente excepcionais.
"""

from __future__ import annotations


class BookingFSMError(Exception):
    """Base de todos os erros do booking_fsm."""


class ConfigurationError(BookingFSMError):
    """Configuração obrigatória ausente ou inválida (fatal no boot)."""


class StateDataCodecError(BookingFSMError):
    """Falha ao cifrar/decifrar campos sensíveis do state data."""


class BookingNotFoundError(BookingFSMError):
    """Reserva inexistente no store."""

    def __init__(self, booking_id: str) -> None:
        super().__init__(f"Booking not found: {booking_id}")
        self.booking_id = booking_id


class BookingStoreError(BookingFSMError):
    """Erro ao persistir ou recuperar estado de reserva."""


class ConcurrencyConflictError(BookingStoreError):
    """Versão esperada não confere com a persistida (escrita concorrente)."""

    def __init__(self, booking_id: str, expected_version: int, actual_version: int | None) -> None:
        super().__init__(
            f"Version conflict for booking {booking_id}: "
            f"expected {expected_version}, found {actual_version}"
        )
        self.booking_id = booking_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class DedupeError(BookingFSMError):
    """Falha no backend de dedupe (fail-closed: não processar o webhook)."""
