"""Estados canônicos do ciclo de vida de uma reserva.

- Toda reserva nasce em IDLE
- Três estados terminais (concluída, cancelada, reembolsada)
- ERROR é recuperável via RECOVER
"""

from __future__ import annotations

from enum import StrEnum


class BookingState(StrEnum):
    """15 estados canônicos de uma reserva."""

    # === Entrada ===
    IDLE = "IDLE"
    SESSION_TYPE_SELECTED = "SESSION_TYPE_SELECTED"

    # === Calendly ===
    CALENDLY_SCHEDULING_INITIATED = "CALENDLY_SCHEDULING_INITIATED"
    CALENDLY_EVENT_SCHEDULED = "CALENDLY_EVENT_SCHEDULED"

    # === Pagamento ===
    PAYMENT_REQUIRED = "PAYMENT_REQUIRED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    """Intermediário: aguarda confirmação do webhook do Stripe."""

    PAYMENT_FAILED = "PAYMENT_FAILED"

    # === Confirmação ===
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"

    # === Cancelamento e reembolso ===
    CANCELLATION_REQUESTED = "CANCELLATION_REQUESTED"
    CANCELLATION_COMPLETED = "CANCELLATION_COMPLETED"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    REFUND_COMPLETED = "REFUND_COMPLETED"

    # === Encerramento ===
    BOOKING_COMPLETED = "BOOKING_COMPLETED"

    # === Exceção (recuperável) ===
    ERROR = "ERROR"


TERMINAL_STATES = frozenset({
    BookingState.BOOKING_COMPLETED,
    BookingState.CANCELLATION_COMPLETED,
    BookingState.REFUND_COMPLETED,
})
"""Estados que encerram a reserva (histórico somente leitura)."""

NON_TERMINAL_STATES = frozenset({s for s in BookingState if s not in TERMINAL_STATES})
"""Estados que permitem transições posteriores (inclui ERROR)."""

RECOVERABLE_TARGET_STATES = frozenset(NON_TERMINAL_STATES - {BookingState.ERROR})
"""Estados para os quais RECOVER pode retornar."""
