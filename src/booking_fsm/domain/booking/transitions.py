"""Tabela de transições do state machine de reservas.

- TRANSITIONS[state][event] = next_state
- Estados terminais não aparecem como origem (sem transições de saída)
- Tabela congelada no import: nenhuma mutação em runtime
- Validação pura: sem side effects
"""

from __future__ import annotations

from datetime import UTC, datetime
from types import MappingProxyType

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import TERMINAL_STATES, BookingState
from booking_fsm.domain.models import BookingStateData

_S = BookingState
_E = BookingEvent

_BASE_TRANSITIONS: dict[BookingState, dict[BookingEvent, BookingState]] = {
    # === Entrada ===
    _S.IDLE: {_E.SELECT_SESSION_TYPE: _S.SESSION_TYPE_SELECTED},
    _S.SESSION_TYPE_SELECTED: {
        _E.INITIATE_CALENDLY_SCHEDULING: _S.CALENDLY_SCHEDULING_INITIATED,
    },
    # === Calendly ===
    _S.CALENDLY_SCHEDULING_INITIATED: {_E.SCHEDULE_EVENT: _S.CALENDLY_EVENT_SCHEDULED},
    _S.CALENDLY_EVENT_SCHEDULED: {
        _E.INITIATE_PAYMENT: _S.PAYMENT_REQUIRED,
        _E.REQUEST_CANCELLATION: _S.CANCELLATION_REQUESTED,
    },
    # === Pagamento ===
    _S.PAYMENT_REQUIRED: {_E.INITIATE_PAYMENT: _S.PAYMENT_PENDING},
    _S.PAYMENT_PENDING: {
        _E.PAYMENT_SUCCEEDED: _S.PAYMENT_SUCCEEDED,
        _E.PAYMENT_FAILED: _S.PAYMENT_FAILED,
    },
    _S.PAYMENT_SUCCEEDED: {_E.STRIPE_WEBHOOK_RECEIVED: _S.BOOKING_CONFIRMED},
    _S.PAYMENT_FAILED: {_E.INITIATE_PAYMENT: _S.PAYMENT_PENDING},
    # === Confirmada ===
    _S.BOOKING_CONFIRMED: {
        _E.COMPLETE_BOOKING: _S.BOOKING_COMPLETED,
        _E.REQUEST_CANCELLATION: _S.CANCELLATION_REQUESTED,
    },
    # === Cancelamento e reembolso ===
    _S.CANCELLATION_REQUESTED: {
        _E.CONFIRM_CANCELLATION: _S.CANCELLATION_COMPLETED,
        _E.REQUEST_REFUND: _S.REFUND_REQUESTED,
    },
    _S.REFUND_REQUESTED: {_E.CONFIRM_REFUND: _S.REFUND_COMPLETED},
    # === Exceção ===
    # IDLE é apenas o fallback da tabela; o engine resolve o estado anterior.
    _S.ERROR: {_E.RECOVER: _S.IDLE},
    # === Estados terminais: SEM transições de saída ===
    _S.BOOKING_COMPLETED: {},
    _S.CANCELLATION_COMPLETED: {},
    _S.REFUND_COMPLETED: {},
}


def _build_transitions() -> MappingProxyType[BookingState, MappingProxyType[BookingEvent, BookingState]]:
    table: dict[BookingState, MappingProxyType[BookingEvent, BookingState]] = {}
    for state in BookingState:
        outgoing = dict(_BASE_TRANSITIONS.get(state, {}))
        # Todo estado não terminal (exceto ERROR) pode falhar
        if state not in TERMINAL_STATES and state != BookingState.ERROR:
            outgoing[BookingEvent.ERROR_OCCURRED] = BookingState.ERROR
        table[state] = MappingProxyType(outgoing)
    return MappingProxyType(table)


TRANSITIONS = _build_transitions()
"""Registro imutável: estado -> (evento -> próximo estado)."""


def get_allowed_transitions(state: BookingState) -> frozenset[BookingEvent]:
    """Eventos aceitos no estado (vazio para estados terminais)."""
    return frozenset(TRANSITIONS.get(state, MappingProxyType({})))


def is_valid_transition(state: BookingState, event: BookingEvent) -> bool:
    return event in TRANSITIONS.get(state, MappingProxyType({}))


def get_next_state(state: BookingState, event: BookingEvent) -> BookingState | None:
    """Próximo estado da tabela, ou None se a transição não existe."""
    return TRANSITIONS.get(state, MappingProxyType({})).get(event)


def get_initial_state() -> BookingState:
    return BookingState.IDLE


def get_initial_state_data() -> BookingStateData:
    """State data inicial de uma reserva nova (somente timestamp)."""
    return BookingStateData(timestamp=datetime.now(tz=UTC))


def validate_transition(
    current_state: BookingState, event: BookingEvent
) -> tuple[bool, BookingState | None, str]:
    """Valida se uma transição é permitida.

    Retorna:
    - (True, next_state, ""): transição válida
    - (False, None, motivo): transição inválida

    Nunca lança exceção; apenas valida.
    """
    if current_state in TERMINAL_STATES:
        return (
            False,
            None,
            f"Terminal state {current_state} has no transitions",
        )

    next_state = get_next_state(current_state, event)
    if next_state is None:
        return (
            False,
            None,
            f"Invalid transition from {current_state} with event {event}",
        )

    return True, next_state, ""
