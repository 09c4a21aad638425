"""Mapeamento de webhooks do Stripe e do Calendly para eventos de reserva.

O state machine só conhece BookingEvent; este módulo traduz o evento do
provider (tipo + payload) em (booking_id, evento, dados parciais).

Regras:
- Dedupe pelo id do evento do provider ANTES de transicionar
- Se a transição levantar exceção, a marca de dedupe é removida para
  que o retry do provider seja aceito
- Evento não suportado ou sem booking_id é ignorado (não é erro)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.models import TransitionResult
from booking_fsm.domain.protocols.dedupe import DedupeProtocol
from booking_fsm.observability.logging import get_logger

if TYPE_CHECKING:
    from booking_fsm.application.booking_service import BookingService

logger: logging.Logger = get_logger(__name__)

STRIPE = "stripe"
CALENDLY = "calendly"

STRIPE_EVENT_MAP: dict[str, BookingEvent] = {
    "checkout.session.completed": BookingEvent.PAYMENT_SUCCEEDED,
    "payment_intent.succeeded": BookingEvent.PAYMENT_SUCCEEDED,
    "checkout.session.expired": BookingEvent.PAYMENT_FAILED,
    "payment_intent.payment_failed": BookingEvent.PAYMENT_FAILED,
}

CALENDLY_EVENT_MAP: dict[str, BookingEvent] = {
    "invitee.created": BookingEvent.SCHEDULE_EVENT,
    "invitee.canceled": BookingEvent.REQUEST_CANCELLATION,
}


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """Evento de provider já traduzido para o vocabulário de reservas."""

    provider: str
    event_type: str
    event_id: str | None
    booking_id: str | None
    booking_event: BookingEvent | None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def dedupe_key(self) -> str | None:
        if not self.event_id:
            return None
        return f"{self.provider}:{self.event_id}"


def _get(mapping: Any, *path: str) -> Any:
    """Acesso aninhado tolerante: retorna None se algum nível faltar."""
    current = mapping
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def _compact(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


def map_stripe_event(payload: Mapping[str, Any]) -> WebhookEvent:
    """Traduz evento Stripe; booking_id vem de data.object.metadata.bookingId."""
    event_type = str(payload.get("type") or "")
    obj = _get(payload, "data", "object") or {}
    booking_id = _get(obj, "metadata", "bookingId") or _get(obj, "metadata", "booking_id")

    data: dict[str, Any] = {}
    if event_type == "checkout.session.completed":
        data = {
            "stripe_session_id": obj.get("id"),
            "stripe_payment_intent_id": obj.get("payment_intent"),
        }
    elif event_type == "payment_intent.succeeded":
        data = {"stripe_payment_intent_id": obj.get("id")}
    elif event_type == "checkout.session.expired":
        data = {
            "stripe_session_id": obj.get("id"),
            "error": {
                "message": "Checkout session expired",
                "code": "checkout_session_expired",
                "source": STRIPE,
            },
        }
    elif event_type == "payment_intent.payment_failed":
        last_error = obj.get("last_payment_error") or {}
        data = {
            "stripe_payment_intent_id": obj.get("id"),
            "error": _compact({
                "message": last_error.get("message") or "Payment failed",
                "code": last_error.get("code"),
                "source": STRIPE,
            }),
        }

    return WebhookEvent(
        provider=STRIPE,
        event_type=event_type,
        event_id=payload.get("id"),
        booking_id=booking_id,
        booking_event=STRIPE_EVENT_MAP.get(event_type),
        data=_compact(data),
    )


def map_calendly_event(payload: Mapping[str, Any]) -> WebhookEvent:
    """Traduz evento Calendly; booking_id vem de payload.tracking.utm_content."""
    event_type = str(payload.get("event") or "")
    body = payload.get("payload") or {}
    booking_id = _get(body, "tracking", "utm_content")
    scheduled = body.get("scheduled_event") or body.get("event") or {}
    invitee_uri = _get(body, "invitee", "uri") or body.get("uri")

    data: dict[str, Any] = {}
    if event_type == "invitee.created":
        event_uri = scheduled.get("uri")
        data = {
            "calendly_event_id": scheduled.get("uuid")
            or (event_uri.rstrip("/").rsplit("/", 1)[-1] if event_uri else None),
            "calendly_event_uri": event_uri,
            "calendly_invitee_uri": invitee_uri,
            "start_time": scheduled.get("start_time"),
            "end_time": scheduled.get("end_time"),
        }
    elif event_type == "invitee.canceled":
        cancellation = body.get("cancellation") or {}
        data = {
            "cancel_reason": cancellation.get("reason"),
            "cancelled_at": cancellation.get("canceled_at"),
            "cancelled_by": cancellation.get("canceled_by"),
        }

    # Calendly não envia id de evento: invitee + tipo identificam a entrega
    event_id = f"{invitee_uri}:{event_type}" if invitee_uri and event_type else None

    return WebhookEvent(
        provider=CALENDLY,
        event_type=event_type,
        event_id=event_id,
        booking_id=booking_id,
        booking_event=CALENDLY_EVENT_MAP.get(event_type),
        data=_compact(data),
    )


class WebhookStatus(StrEnum):
    PROCESSED = "processed"
    REJECTED = "rejected"  # transição inválida para o estado atual
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class WebhookOutcome:
    status: WebhookStatus
    provider: str
    event_type: str
    booking_id: str | None = None
    transition_result: TransitionResult | None = None
    reason: str | None = None


class WebhookProcessor:
    """Aplica eventos de webhook às reservas com dedupe por id de evento."""

    def __init__(self, service: BookingService, dedupe: DedupeProtocol) -> None:
        self._service = service
        self._dedupe = dedupe

    def process_stripe(self, payload: Mapping[str, Any]) -> WebhookOutcome:
        return self.process(map_stripe_event(payload))

    def process_calendly(self, payload: Mapping[str, Any]) -> WebhookOutcome:
        return self.process(map_calendly_event(payload))

    def process(self, event: WebhookEvent) -> WebhookOutcome:
        """Dedupe + transição.

        Raises:
            DedupeError: backend de dedupe indisponível (fail-closed)
        """
        if event.booking_event is None:
            return self._ignored(event, "unsupported_event_type")
        if not event.booking_id:
            return self._ignored(event, "missing_booking_id")

        context = self._service.get_booking_state(event.booking_id)
        if context is None:
            return self._ignored(event, "booking_not_found")

        booking_event = event.booking_event
        # Segunda confirmação do Stripe fecha PAYMENT_SUCCEEDED
        if (
            booking_event == BookingEvent.PAYMENT_SUCCEEDED
            and context.state == BookingState.PAYMENT_SUCCEEDED
        ):
            booking_event = BookingEvent.STRIPE_WEBHOOK_RECEIVED

        dedupe_key = event.dedupe_key
        if dedupe_key is not None and not self._dedupe.mark_if_new(dedupe_key):
            logger.info(
                "webhook_duplicate_skipped",
                extra={
                    "provider": event.provider,
                    "event_type": event.event_type,
                    "booking_id": event.booking_id,
                },
            )
            return WebhookOutcome(
                status=WebhookStatus.DUPLICATE,
                provider=event.provider,
                event_type=event.event_type,
                booking_id=event.booking_id,
            )

        try:
            result = self._service.transition_booking(event.booking_id, booking_event, event.data)
        except Exception:
            if dedupe_key is not None:
                self._dedupe.clear(dedupe_key)
            raise

        # Rejeitado não conta como entregue: a reentrega do provider deve ser aplicada
        if not result.success and dedupe_key is not None:
            self._dedupe.clear(dedupe_key)

        status = WebhookStatus.PROCESSED if result.success else WebhookStatus.REJECTED
        logger.info(
            "webhook_processed",
            extra={
                "provider": event.provider,
                "event_type": event.event_type,
                "booking_id": event.booking_id,
                "booking_event": booking_event,
                "status": status,
            },
        )
        return WebhookOutcome(
            status=status,
            provider=event.provider,
            event_type=event.event_type,
            booking_id=event.booking_id,
            transition_result=result,
            reason=result.error,
        )

    def _ignored(self, event: WebhookEvent, reason: str) -> WebhookOutcome:
        logger.warning(
            "webhook_ignored",
            extra={
                "provider": event.provider,
                "event_type": event.event_type,
                "booking_id": event.booking_id,
                "reason": reason,
            },
        )
        return WebhookOutcome(
            status=WebhookStatus.IGNORED,
            provider=event.provider,
            event_type=event.event_type,
            booking_id=event.booking_id,
            reason=reason,
        )
