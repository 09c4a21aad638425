"""Engine do state machine de reservas: executor puro de transições.

- Puro: não persiste nada; quem chama carrega e salva o contexto
- Testável: resultado determinístico dado (contexto, payload, relógio)
- Falhas esperadas (transição inválida, payload incompleto) viram
  TransitionResult com success=False, nunca exceção
- Campos sensíveis saem sempre cifrados
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import RECOVERABLE_TARGET_STATES, BookingState
from booking_fsm.domain.booking.transitions import validate_transition
from booking_fsm.domain.enums import STATE_STATUS_MAPPING, STATUS_STAMPED_STATES
from booking_fsm.domain.errors import ConfigurationError
from booking_fsm.domain.models import (
    BookingContext,
    BookingErrorInfo,
    BookingStateData,
    TransitionPayload,
    TransitionResult,
    coerce_updates,
    utc_now,
)
from booking_fsm.observability.logging import get_logger
from booking_fsm.security.codec import StateDataCodec
from booking_fsm.security.tokens import StateTokenService

logger: logging.Logger = get_logger(__name__)

# Campos que só o engine escreve/limpa no ciclo ERROR -> RECOVER
_RECOVERY_FIELDS = ("error", "state_before_error", "recovery_token")
# Nunca aceitos do payload do evento
_ENGINE_OWNED_FIELDS = ("state_before_error", "recovery_token")


class BookingFSMEngine:
    """Executor de transições das reservas."""

    def __init__(
        self,
        codec: StateDataCodec,
        token_service: StateTokenService | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._codec = codec
        self._token_service = token_service
        self._clock = clock or utc_now

    def execute_transition(
        self,
        context: BookingContext,
        payload: TransitionPayload,
    ) -> TransitionResult:
        """Aplica `payload.event` ao contexto.

        Contrato:
        - Nunca lança exceção para falhas esperadas
        - Em falha: estado e state data do contexto inalterados
        - Em sucesso: state data mesclado, carimbado e com campos sensíveis cifrados
        """
        now = self._clock()
        event = payload.event

        is_valid, next_state, reason = validate_transition(context.state, event)
        if not is_valid or next_state is None:
            return self._reject(context, event, now, reason)

        updates = coerce_updates(payload.data)
        for name in _ENGINE_OWNED_FIELDS:
            updates.pop(name, None)
        updates = self._codec.encrypt_payload(updates)
        try:
            if event == BookingEvent.ERROR_OCCURRED:
                state_data = self._enter_error(context, updates, now)
            elif event == BookingEvent.RECOVER:
                next_state, state_data = self._recover(context, updates, now)
            else:
                state_data = self._merge(context.state_data, updates, event, now)
            state_data = self._stamp_status(state_data, next_state, now)
        except ValidationError as e:
            return self._reject(
                context,
                event,
                now,
                f"Invalid payload for {event}: {e.error_count()} validation error(s)",
            )

        payload_error = _validate_payload(event, state_data)
        if payload_error:
            return self._reject(context, event, now, payload_error)

        state_data = self._codec.encrypt_sensitive_data(state_data)

        logger.debug(
            "Booking transition valid",
            extra={
                "booking_id": context.booking_id,
                "previous_state": context.state,
                "event": event,
                "next_state": next_state,
            },
        )
        return TransitionResult(
            success=True,
            previous_state=context.state,
            current_state=next_state,
            state_data=state_data,
            event=event,
            timestamp=now,
        )

    def execute_authorized_transition(
        self,
        context: BookingContext,
        payload: TransitionPayload,
        token: str,
    ) -> TransitionResult:
        """Executa a transição apenas se o state token corresponde ao contexto.

        O token precisa ser válido, da mesma reserva e do estado atual.

        Raises:
            ConfigurationError: engine criado sem token service
        """
        if self._token_service is None:
            raise ConfigurationError("State token service not configured")

        verification = self._token_service.verify_state_token(token)
        if not verification.is_valid:
            return self._reject(context, payload.event, self._clock(), "Invalid state token")

        if verification.booking_id != context.booking_id or verification.state != context.state:
            return self._reject(
                context,
                payload.event,
                self._clock(),
                "State token does not match booking state",
            )

        return self.execute_transition(context, payload)

    def _merge(
        self,
        base: BookingStateData,
        updates: dict[str, Any],
        event: BookingEvent,
        now: datetime,
    ) -> BookingStateData:
        return base.merge({**updates, "last_event_type": event, "timestamp": now})

    def _enter_error(
        self,
        context: BookingContext,
        updates: dict[str, Any],
        now: datetime,
    ) -> BookingStateData:
        """Registra o erro e o estado de origem; emite token de recuperação."""
        error_info = _build_error_info(updates.pop("error", None), now)
        updates["error"] = error_info
        updates["state_before_error"] = context.state

        if self._token_service is not None:
            updates["recovery_token"] = self._token_service.generate_state_token(
                context.booking_id, context.state
            )

        return self._merge(context.state_data, updates, BookingEvent.ERROR_OCCURRED, now)

    def _recover(
        self,
        context: BookingContext,
        updates: dict[str, Any],
        now: datetime,
    ) -> tuple[BookingState, BookingStateData]:
        """Volta ao estado rastreado antes do erro (ou IDLE) e limpa os campos de erro."""
        for name in _RECOVERY_FIELDS:
            updates.pop(name, None)

        target = _resolve_recovery_target(context.state_data.state_before_error)
        base = context.state_data.without(_RECOVERY_FIELDS)
        return target, self._merge(base, updates, BookingEvent.RECOVER, now)

    def _stamp_status(
        self,
        state_data: BookingStateData,
        next_state: BookingState,
        now: datetime,
    ) -> BookingStateData:
        stamp: dict[str, Any] = {}
        if next_state in STATUS_STAMPED_STATES:
            booking_status, payment_status = STATE_STATUS_MAPPING[next_state]
            stamp["booking_status"] = booking_status
            stamp["payment_status"] = payment_status

        if next_state == BookingState.CANCELLATION_REQUESTED and state_data.cancelled_at is None:
            stamp["cancelled_at"] = now

        return state_data.merge(stamp) if stamp else state_data

    def _reject(
        self,
        context: BookingContext,
        event: BookingEvent | None,
        now: datetime,
        reason: str,
    ) -> TransitionResult:
        logger.debug(
            "Booking transition invalid",
            extra={
                "booking_id": context.booking_id,
                "current_state": context.state,
                "event": event,
                "error": reason,
            },
        )
        return TransitionResult(
            success=False,
            previous_state=context.state,
            current_state=context.state,
            state_data=context.state_data,
            event=event,
            timestamp=now,
            error=reason,
        )


def _build_error_info(raw: Any, now: datetime) -> BookingErrorInfo:
    """Normaliza o erro recebido (None, str, dict ou BookingErrorInfo)."""
    if isinstance(raw, BookingErrorInfo):
        fields = raw.model_dump(exclude_none=True)
    elif isinstance(raw, str):
        fields = {"message": raw}
    elif isinstance(raw, Mapping):
        fields = {k: v for k, v in raw.items() if v is not None}
    else:
        fields = {}

    fields.setdefault("timestamp", now)
    if not fields.get("message"):
        fields["message"] = "Unknown error"
    return BookingErrorInfo.model_validate(fields)


def _resolve_recovery_target(candidate: Any) -> BookingState:
    """Estado anterior rastreado, se ainda for um destino válido; senão IDLE."""
    try:
        state = BookingState(candidate) if candidate is not None else None
    except ValueError:
        state = None

    if state in RECOVERABLE_TARGET_STATES:
        return state
    return BookingState.IDLE


def _validate_payload(event: BookingEvent, state_data: BookingStateData) -> str | None:
    """Validação mínima do state data resultante; retorna motivo ou None."""
    if event == BookingEvent.SELECT_SESSION_TYPE and not state_data.session_type_id:
        return "session_type_id is required for SELECT_SESSION_TYPE"

    if event == BookingEvent.SCHEDULE_EVENT:
        if state_data.start_time is None or state_data.end_time is None:
            return "start_time and end_time are required for SCHEDULE_EVENT"
        if state_data.end_time <= state_data.start_time:
            return "end_time must be after start_time"

    return None
