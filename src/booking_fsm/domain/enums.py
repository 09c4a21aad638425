"""Status de reserva/pagamento e mapeamento a partir do estado do FSM."""

from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType

from booking_fsm.domain.booking.states import BookingState


class BookingStatus(StrEnum):
    """Status de negócio da reserva (espelhado na tabela de bookings)."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(StrEnum):
    """Status do pagamento associado à reserva."""

    UNPAID = "UNPAID"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


_PENDING_UNPAID = (BookingStatus.PENDING, PaymentStatus.UNPAID)

STATE_STATUS_MAPPING: MappingProxyType[
    BookingState, tuple[BookingStatus, PaymentStatus | None]
] = (
    MappingProxyType({
        BookingState.IDLE: _PENDING_UNPAID,
        BookingState.SESSION_TYPE_SELECTED: _PENDING_UNPAID,
        BookingState.CALENDLY_SCHEDULING_INITIATED: _PENDING_UNPAID,
        BookingState.CALENDLY_EVENT_SCHEDULED: _PENDING_UNPAID,
        BookingState.PAYMENT_REQUIRED: _PENDING_UNPAID,
        BookingState.PAYMENT_PENDING: _PENDING_UNPAID,
        BookingState.PAYMENT_SUCCEEDED: (BookingStatus.CONFIRMED, PaymentStatus.PAID),
        BookingState.PAYMENT_FAILED: (BookingStatus.PENDING, PaymentStatus.FAILED),
        BookingState.BOOKING_CONFIRMED: (BookingStatus.CONFIRMED, PaymentStatus.PAID),
        BookingState.BOOKING_COMPLETED: (BookingStatus.COMPLETED, PaymentStatus.PAID),
        BookingState.CANCELLATION_REQUESTED: (BookingStatus.CANCELLED, None),
        BookingState.CANCELLATION_COMPLETED: (BookingStatus.CANCELLED, None),
        BookingState.REFUND_REQUESTED: (BookingStatus.CANCELLED, None),
        BookingState.REFUND_COMPLETED: (BookingStatus.CANCELLED, PaymentStatus.REFUNDED),
        BookingState.ERROR: _PENDING_UNPAID,
    })
)
"""Status de negócio esperado para cada estado.

PaymentStatus None preserva o valor atual: cancelar antes de pagar não marca
a reserva como paga.
"""

STATUS_STAMPED_STATES = frozenset({
    BookingState.CALENDLY_EVENT_SCHEDULED,
    BookingState.PAYMENT_SUCCEEDED,
    BookingState.PAYMENT_FAILED,
    BookingState.BOOKING_CONFIRMED,
    BookingState.BOOKING_COMPLETED,
    BookingState.CANCELLATION_REQUESTED,
    BookingState.CANCELLATION_COMPLETED,
    BookingState.REFUND_COMPLETED,
})
"""Estados cuja entrada grava booking_status/payment_status no state data."""
