"""Rotas HTTP do state machine de reservas.

Respostas nunca expõem identificadores de pagamento em claro: state data
sai sempre pela projeção sanitizada do codec.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field, ValidationError

from booking_fsm.api.dependencies import (
    get_booking_service,
    get_settings,
    get_webhook_processor,
)
from booking_fsm.application.booking_service import BookingService
from booking_fsm.application.error_handling import recover_booking_with_token
from booking_fsm.application.webhooks import WebhookOutcome, WebhookProcessor
from booking_fsm.config.settings import Settings
from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.errors import (
    BookingNotFoundError,
    ConcurrencyConflictError,
    DedupeError,
)
from booking_fsm.domain.models import BookingContext, TransitionResult
from booking_fsm.observability.logging import get_logger
from booking_fsm.observability.middleware import get_correlation_id

logger = get_logger(__name__)

router = APIRouter()


class CreateBookingRequest(BaseModel):
    data: dict[str, Any] = Field(default_factory=dict)


class TransitionRequest(BaseModel):
    event: BookingEvent
    data: dict[str, Any] = Field(default_factory=dict)
    token: str | None = None


class StateTokenRequest(BaseModel):
    token: str


class RecoveryRequest(BaseModel):
    token: str


def _context_body(service: BookingService, context: BookingContext) -> dict[str, Any]:
    return {
        "booking_id": context.booking_id,
        "state": context.state,
        "version": context.version,
        "state_data": service.codec.sanitize_for_logging(context.state_data),
    }


def _result_body(service: BookingService, result: TransitionResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "previous_state": result.previous_state,
        "current_state": result.current_state,
        "event": result.event,
        "timestamp": result.timestamp.isoformat(),
        "error": result.error,
        "state_data": service.codec.sanitize_for_logging(result.state_data),
    }


def _webhook_body(outcome: WebhookOutcome) -> dict[str, Any]:
    return {
        "ok": True,
        "status": outcome.status,
        "provider": outcome.provider,
        "event_type": outcome.event_type,
        "booking_id": outcome.booking_id,
        "reason": outcome.reason,
        "correlation_id": get_correlation_id(),
    }


async def _json_body(request: Request) -> dict[str, Any]:
    raw_body = await request.body()
    try:
        payload = json.loads(raw_body or b"{}")
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_json") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")
    return payload


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.post("/bookings", status_code=status.HTTP_201_CREATED)
def create_booking(
    body: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    try:
        context = service.create_booking(body.data)
    except ConcurrencyConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="booking_already_exists"
        ) from exc
    except (ValidationError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_booking_data"
        ) from exc
    return _context_body(service, context)


@router.post("/bookings/recover")
def recover_booking(
    body: RecoveryRequest,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """Recupera reserva em ERROR a partir do token do link de recuperação."""
    outcome = recover_booking_with_token(service, body.token)
    if not outcome.success and outcome.transition_result is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid_token")

    response: dict[str, Any] = {"success": outcome.success, "booking_id": outcome.booking_id}
    if outcome.transition_result is not None:
        response["transition"] = _result_body(service, outcome.transition_result)
    return response


@router.get("/bookings/{booking_id}")
def get_booking(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    context = service.get_booking_state(booking_id)
    if context is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found")
    body = _context_body(service, context)
    body["allowed_transitions"] = sorted(service.get_allowed_transitions(booking_id))
    return body


@router.get("/bookings/{booking_id}/transitions")
def list_transitions(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    if service.get_booking_state(booking_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found")
    return {
        "booking_id": booking_id,
        "allowed_transitions": sorted(service.get_allowed_transitions(booking_id)),
        "history": [
            record.model_dump(mode="json") for record in service.get_transition_history(booking_id)
        ],
    }


@router.post("/bookings/{booking_id}/transitions")
def transition_booking(
    booking_id: str,
    body: TransitionRequest,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    """Aplica um evento; transição inválida responde 409 sem alterar a reserva."""
    try:
        result = service.transition_booking(booking_id, body.event, body.data, token=body.token)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found"
        ) from exc
    except ConcurrencyConflictError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="concurrent_update"
        ) from exc

    response = _result_body(service, result)
    if not result.success:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=response)
    return response


@router.post("/bookings/{booking_id}/state-token")
def issue_state_token(
    booking_id: str,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, str]:
    try:
        token = service.issue_state_token(booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="booking_not_found"
        ) from exc
    return {"booking_id": booking_id, "token": token}


@router.post("/state-tokens/verify")
def verify_state_token(
    body: StateTokenRequest,
    service: BookingService = Depends(get_booking_service),
) -> dict[str, Any]:
    verification = service.verify_state_token(body.token)
    return {
        "is_valid": verification.is_valid,
        "booking_id": verification.booking_id,
        "state": verification.state,
        "timestamp": verification.timestamp,
    }


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> dict[str, Any]:
    """Eventos do Stripe (checkout/payment_intent) com dedupe por id do evento."""
    payload = await _json_body(request)
    return _process_webhook(processor.process_stripe, payload)


@router.post("/webhooks/calendly")
async def calendly_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> dict[str, Any]:
    """Eventos do Calendly (invitee.created / invitee.canceled)."""
    payload = await _json_body(request)
    return _process_webhook(processor.process_calendly, payload)


def _process_webhook(
    handler: Callable[[dict[str, Any]], WebhookOutcome],
    payload: dict[str, Any],
) -> dict[str, Any]:
    try:
        outcome = handler(payload)
    except DedupeError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "webhook_dedupe_unavailable",
                "correlation_id": get_correlation_id(),
            },
        ) from exc
    return _webhook_body(outcome)
