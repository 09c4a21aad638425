"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from booking_fsm.application.booking_service import BookingService
from booking_fsm.application.webhooks import WebhookProcessor
from booking_fsm.config.settings import Settings


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_booking_service(request: Request) -> BookingService:
    """Retorna o serviço de reservas."""

    return request.app.state.booking_service


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor
