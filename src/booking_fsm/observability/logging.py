"""Configuração de logging estruturado (JSON)."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from booking_fsm.observability.middleware import get_correlation_id

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"


class CorrelationIdFilter(logging.Filter):
    """Insere correlation_id e service no record de log.

    Importante: nunca adicionar identificadores de pagamento em claro nos logs;
    state data deve passar por sanitize_for_logging antes.
    """

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        existing = getattr(record, "correlation_id", None)
        record.correlation_id = existing if existing else get_correlation_id()
        record.service = self._service_name
        return True


def configure_logging(level: str, service_name: str, log_format: str = "json") -> None:
    """Configura logging com campos padrão do serviço (json | text)."""

    formatter: logging.Formatter
    if log_format.lower() == "text":
        formatter = logging.Formatter(_TEXT_FORMAT)
    else:
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s %(correlation_id)s %(service)s",
            rename_fields={"levelname": "level", "name": "logger"},
        )

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(CorrelationIdFilter(service_name))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]


def get_logger(name: str) -> logging.Logger:
    """Retorna logger simples; o filtro injeta service/correlation_id."""

    return logging.getLogger(name)


def log_transition(
    logger: logging.Logger,
    *,
    booking_id: str,
    success: bool,
    previous_state: str,
    current_state: str,
    event: str | None,
    sanitized_state_data: Mapping[str, Any],
    error: str | None = None,
) -> None:
    """Log de auditoria de uma tentativa de transição.

    `sanitized_state_data` já deve ter passado pelo codec (mascarado).
    """
    extra: dict[str, Any] = {
        "booking_id": booking_id,
        "success": success,
        "previous_state": previous_state,
        "current_state": current_state,
        "event": event,
        "state_data": dict(sanitized_state_data),
    }
    if error:
        extra["error"] = error

    if success:
        logger.info("booking_transition_applied", extra=extra)
    else:
        logger.warning("booking_transition_rejected", extra=extra)
