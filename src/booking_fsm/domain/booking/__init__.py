"""State machine de reservas: estados e eventos.

Exporta:
- BookingState: 15 estados canônicos
- BookingEvent: 14 eventos
- TERMINAL_STATES / NON_TERMINAL_STATES

A tabela de transições fica em booking_fsm.domain.booking.transitions.
"""

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import (
    NON_TERMINAL_STATES,
    RECOVERABLE_TARGET_STATES,
    TERMINAL_STATES,
    BookingState,
)

__all__ = [
    "BookingState",
    "BookingEvent",
    "TERMINAL_STATES",
    "NON_TERMINAL_STATES",
    "RECOVERABLE_TARGET_STATES",
]
