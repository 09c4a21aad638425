"""Serviço de reservas: orquestra store, engine, codec e state tokens.

Fluxo de uma transição:
load (store) -> execute (engine) -> save com versão esperada (store)
-> log de auditoria sanitizado -> TransitionRecord na trilha.

Conflito de versão (escrita concorrente na mesma reserva) recarrega e
tenta de novo, até `max_attempts`.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from booking_fsm.application.fsm_engine import BookingFSMEngine
from booking_fsm.config.settings import Settings
from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.booking.transitions import (
    get_allowed_transitions,
    get_initial_state,
    get_initial_state_data,
)
from booking_fsm.domain.errors import BookingNotFoundError, ConcurrencyConflictError
from booking_fsm.domain.models import (
    BookingContext,
    BookingStateData,
    TransitionPayload,
    TransitionRecord,
    TransitionResult,
    coerce_updates,
)
from booking_fsm.domain.protocols.booking_store import BookingStateStoreProtocol
from booking_fsm.observability.logging import get_logger, log_transition
from booking_fsm.observability.middleware import get_correlation_id
from booking_fsm.security.codec import StateDataCodec
from booking_fsm.security.keys import StateMachineKeys
from booking_fsm.security.tokens import StateTokenService, StateTokenVerification

logger: logging.Logger = get_logger(__name__)


class BookingService:
    """API de alto nível sobre o state machine de reservas."""

    def __init__(
        self,
        store: BookingStateStoreProtocol,
        engine: BookingFSMEngine,
        codec: StateDataCodec,
        token_service: StateTokenService,
        max_attempts: int = 3,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts deve ser >= 1")
        self._store = store
        self._engine = engine
        self._codec = codec
        self._token_service = token_service
        self._max_attempts = max_attempts
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    @property
    def codec(self) -> StateDataCodec:
        return self._codec

    def create_booking(
        self,
        initial_data: Mapping[str, Any] | BookingStateData | None = None,
    ) -> BookingContext:
        """Cria reserva em IDLE com os dados iniciais (campos sensíveis cifrados).

        Raises:
            ConcurrencyConflictError: booking_id informado já existe
            ValueError: booking_id contendo ':' (separador dos state tokens)
        """
        data = coerce_updates(initial_data)
        booking_id = str(data.get("booking_id") or self._id_factory())
        if ":" in booking_id:
            raise ValueError("booking_id must not contain ':'")
        data["booking_id"] = booking_id

        state = get_initial_state()
        for name in ("state_before_error", "recovery_token"):
            data.pop(name, None)
        state_data = get_initial_state_data().merge(self._codec.encrypt_payload(data))
        version = self._store.save(booking_id, state_data, state, expected_version=0)

        logger.info(
            "booking_created",
            extra={
                "booking_id": booking_id,
                "state": state,
                "state_data": self._codec.sanitize_for_logging(state_data),
            },
        )
        return BookingContext(
            booking_id=booking_id,
            state=state,
            state_data=state_data,
            version=version,
        )

    def get_booking_state(self, booking_id: str) -> BookingContext | None:
        """Contexto atual com campos sensíveis decifrados (None se inexistente)."""
        context = self._store.load(booking_id)
        if context is None:
            return None
        return BookingContext(
            booking_id=context.booking_id,
            state=context.state,
            state_data=self._codec.decrypt_sensitive_data(context.state_data),
            version=context.version,
        )

    def transition_booking(
        self,
        booking_id: str,
        event: BookingEvent,
        data: Mapping[str, Any] | BookingStateData | None = None,
        token: str | None = None,
    ) -> TransitionResult:
        """Aplica o evento à reserva e persiste o resultado.

        Transição inválida retorna success=False sem persistir estado.
        Com `token`, a transição só ocorre se o state token corresponder à
        reserva e ao estado atual.

        Raises:
            BookingNotFoundError: reserva inexistente
            ConcurrencyConflictError: conflitos persistentes após max_attempts
        """
        payload = TransitionPayload(event=BookingEvent(event), data=data)

        attempt = 0
        while True:
            attempt += 1
            context = self._store.load(booking_id)
            if context is None:
                raise BookingNotFoundError(booking_id)

            if token is not None:
                result = self._engine.execute_authorized_transition(context, payload, token)
            else:
                result = self._engine.execute_transition(context, payload)

            if not result.success:
                self._audit(booking_id, result)
                return result

            try:
                self._store.save(
                    booking_id,
                    result.state_data,
                    result.current_state,
                    expected_version=context.version,
                )
            except ConcurrencyConflictError:
                logger.warning(
                    "booking_transition_conflict",
                    extra={
                        "booking_id": booking_id,
                        "event": payload.event,
                        "attempt": attempt,
                        "max_attempts": self._max_attempts,
                    },
                )
                if attempt >= self._max_attempts:
                    raise
                continue

            self._audit(booking_id, result)
            return result

    def get_allowed_transitions(self, booking_id: str) -> frozenset[BookingEvent]:
        """Eventos aceitos no estado atual (vazio se a reserva não existe)."""
        context = self._store.load(booking_id)
        if context is None:
            return frozenset()
        return get_allowed_transitions(context.state)

    def get_transition_history(self, booking_id: str) -> list[TransitionRecord]:
        return self._store.list_transitions(booking_id)

    def get_bookings_in_state(self, state: BookingState, limit: int = 100) -> list[BookingContext]:
        """Reservas no estado informado, com campos sensíveis decifrados."""
        return [
            BookingContext(
                booking_id=context.booking_id,
                state=context.state,
                state_data=self._codec.decrypt_sensitive_data(context.state_data),
                version=context.version,
            )
            for context in self._store.list_in_state(BookingState(state), limit)
        ]

    def recover_booking(
        self,
        booking_id: str,
        recovery_data: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """Dispara RECOVER; o destino é sempre o estado rastreado antes do erro (ou IDLE)."""
        logger.info("booking_recovery_requested", extra={"booking_id": booking_id})
        return self.transition_booking(booking_id, BookingEvent.RECOVER, recovery_data)

    def issue_state_token(self, booking_id: str) -> str:
        """Emite state token para o estado atual da reserva.

        Raises:
            BookingNotFoundError: reserva inexistente
        """
        context = self._store.load(booking_id)
        if context is None:
            raise BookingNotFoundError(booking_id)
        return self._token_service.generate_state_token(booking_id, context.state)

    def verify_state_token(self, token: str) -> StateTokenVerification:
        return self._token_service.verify_state_token(token)

    def _audit(self, booking_id: str, result: TransitionResult) -> None:
        sanitized = self._codec.sanitize_for_logging(result.state_data)
        log_transition(
            logger,
            booking_id=booking_id,
            success=result.success,
            previous_state=result.previous_state,
            current_state=result.current_state,
            event=result.event,
            sanitized_state_data=sanitized,
            error=result.error,
        )
        self._store.append_transition(
            TransitionRecord(
                booking_id=booking_id,
                event=result.event,
                from_state=result.previous_state,
                to_state=result.current_state,
                success=result.success,
                timestamp=result.timestamp,
                error=result.error,
                state_data=sanitized,
                correlation_id=get_correlation_id() or None,
            )
        )


def create_booking_service(
    settings: Settings,
    store: BookingStateStoreProtocol,
    keys: StateMachineKeys | None = None,
) -> BookingService:
    """Monta o serviço com as chaves derivadas de Settings."""
    keys = keys or StateMachineKeys.from_settings(settings)
    codec = StateDataCodec(keys)
    token_service = StateTokenService(keys)
    engine = BookingFSMEngine(codec, token_service=token_service)
    return BookingService(
        store=store,
        engine=engine,
        codec=codec,
        token_service=token_service,
        max_attempts=settings.transition_max_attempts,
    )
