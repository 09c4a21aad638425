"""Eventos que disparam transições no state machine de reservas.

Eventos vêm de três fontes: ação do usuário, webhook do Calendly e webhook
do Stripe. O state machine não distingue a origem, apenas o evento.
"""

from __future__ import annotations

from enum import StrEnum


class BookingEvent(StrEnum):
    """14 eventos canônicos."""

    # === Ações do usuário ===
    SELECT_SESSION_TYPE = "SELECT_SESSION_TYPE"
    INITIATE_CALENDLY_SCHEDULING = "INITIATE_CALENDLY_SCHEDULING"
    INITIATE_PAYMENT = "INITIATE_PAYMENT"
    REQUEST_CANCELLATION = "REQUEST_CANCELLATION"
    REQUEST_REFUND = "REQUEST_REFUND"

    # === Calendly ===
    SCHEDULE_EVENT = "SCHEDULE_EVENT"

    # === Stripe ===
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    STRIPE_WEBHOOK_RECEIVED = "STRIPE_WEBHOOK_RECEIVED"
    """Confirmação assíncrona do pagamento (fecha PAYMENT_SUCCEEDED)."""

    # === Sistema / operação ===
    CONFIRM_CANCELLATION = "CONFIRM_CANCELLATION"
    CONFIRM_REFUND = "CONFIRM_REFUND"
    COMPLETE_BOOKING = "COMPLETE_BOOKING"

    # === Exceções ===
    ERROR_OCCURRED = "ERROR_OCCURRED"
    RECOVER = "RECOVER"
