"""Modelos de domínio do state machine de reservas.

BookingStateData é o registro aberto que acompanha a reserva: campos
conhecidos são tipados, campos extras são aceitos e preservados.
A mesclagem é aditiva: um valor None nunca apaga um campo já preenchido.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.enums import BookingStatus, PaymentStatus


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class BookingErrorInfo(BaseModel):
    """Erro registrado ao entrar em ERROR."""

    model_config = ConfigDict(frozen=True, extra="allow")

    message: str = "Unknown error"
    code: str | None = None
    timestamp: datetime | None = None
    source: str | None = None
    is_retryable: bool | None = None


class BookingStateData(BaseModel):
    """Dados acumulados da reserva ao longo das transições.

    Campos de pagamento (stripe_*) são sensíveis: persistidos cifrados e
    mascarados em logs (ver StateDataCodec).
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    # Identidade
    booking_id: str | None = None
    builder_id: str | None = None
    client_id: str | None = None
    session_type_id: str | None = None
    timestamp: datetime | None = None

    # Agendamento (Calendly)
    start_time: datetime | None = None
    end_time: datetime | None = None
    calendly_event_id: str | None = None
    calendly_event_uri: str | None = None
    calendly_invitee_uri: str | None = None

    # Pagamento Stripe (SENSÍVEL)
    stripe_session_id: str | None = None
    stripe_payment_intent_id: str | None = None
    stripe_refund_id: str | None = None

    # Desfecho
    booking_status: BookingStatus | None = None
    payment_status: PaymentStatus | None = None
    cancel_reason: str | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    refund_amount: int | None = Field(default=None, ge=0)  # centavos

    # Erro e recuperação
    error: BookingErrorInfo | None = None
    last_event_type: BookingEvent | None = None
    recovery_token: str | None = None
    state_before_error: BookingState | None = None

    @field_validator("timestamp", "start_time", "end_time", "cancelled_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        """Datetimes sem timezone são interpretados como UTC."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_fields(self) -> dict[str, Any]:
        """Campos preenchidos (conhecidos + extras), sem valores None."""
        return self.model_dump(exclude_none=True)

    def merge(self, updates: Mapping[str, Any] | BookingStateData | None) -> BookingStateData:
        """Retorna nova instância com `updates` aplicado por cima.

        Mesclagem rasa e aditiva: chaves com valor None são ignoradas.
        Levanta pydantic.ValidationError se o resultado for inválido.
        """
        merged = self.to_fields()
        for key, value in coerce_updates(updates).items():
            if value is not None:
                merged[key] = value
        return BookingStateData.model_validate(merged)

    def without(self, fields: Iterable[str]) -> BookingStateData:
        """Retorna nova instância sem os campos indicados."""
        remaining = self.to_fields()
        for name in fields:
            remaining.pop(name, None)
        return BookingStateData.model_validate(remaining)

    def to_storage(self) -> dict[str, Any]:
        """Representação JSON-safe para persistência."""
        return self.model_dump(mode="json", exclude_none=True)


def coerce_updates(updates: Mapping[str, Any] | BookingStateData | None) -> dict[str, Any]:
    """Normaliza payload parcial (mapping ou BookingStateData) em dict."""
    if updates is None:
        return {}
    if isinstance(updates, BookingStateData):
        return updates.model_dump(exclude_unset=True, exclude_none=True)
    return dict(updates)


@dataclass(frozen=True, slots=True)
class BookingContext:
    """Estado persistido de uma reserva.

    `version` é o token de concorrência otimista: incrementa a cada save.
    """

    booking_id: str
    state: BookingState
    state_data: BookingStateData
    version: int = 0


@dataclass(frozen=True, slots=True)
class TransitionPayload:
    """Evento + dados parciais a mesclar no state data."""

    event: BookingEvent
    data: Mapping[str, Any] | BookingStateData | None = None


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Resultado de uma tentativa de transição.

    Contrato:
    - success=False => current_state == previous_state e state_data inalterado
    - error preenchido apenas em falha
    """

    success: bool
    previous_state: BookingState
    current_state: BookingState
    state_data: BookingStateData
    event: BookingEvent | None
    timestamp: datetime
    error: str | None = None


class TransitionRecord(BaseModel):
    """Entrada da trilha de transições (append-only).

    `state_data` já vem sanitizado: nunca contém identificadores de
    pagamento em claro.
    """

    model_config = ConfigDict(frozen=True)

    booking_id: str
    event: BookingEvent | None
    from_state: BookingState
    to_state: BookingState
    success: bool
    timestamp: datetime
    error: str | None = None
    state_data: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None
