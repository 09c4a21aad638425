"""Fábrica da aplicação FastAPI.

Uso: uvicorn --factory booking_fsm.api.app:create_app
"""

from __future__ import annotations

from fastapi import FastAPI

from booking_fsm.api.routes import router
from booking_fsm.application.booking_service import create_booking_service
from booking_fsm.application.webhooks import WebhookProcessor
from booking_fsm.config.settings import Settings, get_settings
from booking_fsm.domain.errors import ConfigurationError
from booking_fsm.infra.booking_store import create_booking_store_from_settings
from booking_fsm.infra.dedupe import create_dedupe_store
from booking_fsm.observability.logging import configure_logging, get_logger
from booking_fsm.observability.middleware import CorrelationIdMiddleware
from booking_fsm.security.keys import StateMachineKeys

logger = get_logger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Cria a aplicação FastAPI.

    Configuração inválida é fatal aqui (fail-fast no boot).
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors: list[str] = []
    validation_errors.extend(settings.validate_state_machine_secrets())
    validation_errors.extend(settings.validate_booking_store_config())
    validation_errors.extend(settings.validate_webhook_dedupe_backend())

    if validation_errors:
        error_msg = "; ".join(validation_errors)
        logger.error("Invalid configuration", extra={"errors": validation_errors})
        raise ConfigurationError(f"Configuração inválida: {error_msg}")

    keys = StateMachineKeys.from_settings(settings)

    app = FastAPI(title=settings.service_name, version=settings.version)
    app.add_middleware(CorrelationIdMiddleware, header_name=settings.correlation_id_header)
    app.include_router(router)

    app.state.settings = settings
    app.state.booking_service = create_booking_service(
        settings, create_booking_store_from_settings(settings), keys
    )
    app.state.dedupe_store = create_dedupe_store(settings)
    app.state.webhook_processor = WebhookProcessor(
        app.state.booking_service, app.state.dedupe_store
    )

    logger.info(
        "Application started",
        extra={
            "environment": settings.environment,
            "booking_store_backend": settings.booking_store_backend,
            "webhook_dedupe_backend": settings.webhook_dedupe_backend,
        },
    )
    return app
