"""Classificação de erros, entrada em ERROR e recuperação de reservas.

- classify_error: heurística por tipo e por palavras-chave da mensagem
- handle_booking_error: leva a reserva para ERROR e, se o erro é
  retentável, devolve token e link de recuperação
- recover_booking_with_token: RECOVER autorizado por state token
- retry_booking_operation: backoff exponencial só para erros retentáveis
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar
from urllib.parse import quote

from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.errors import BookingNotFoundError, BookingStoreError
from booking_fsm.domain.models import (
    BookingErrorInfo,
    BookingStateData,
    TransitionResult,
    utc_now,
)
from booking_fsm.observability.logging import get_logger

if TYPE_CHECKING:
    from booking_fsm.application.booking_service import BookingService

logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0
DEFAULT_MAX_DELAY_SECONDS = 10.0
DEFAULT_BACKOFF_FACTOR = 2.0

RECOVERY_PATH = "/booking/recovery"


class ErrorCategory(StrEnum):
    VALIDATION = "VALIDATION"
    AUTH = "AUTH"
    PAYMENT = "PAYMENT"
    CALENDLY = "CALENDLY"
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    SERVER = "SERVER"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class CategorizedError(Exception):
    """Erro com categoria e indicação de retentativa."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        is_retryable: bool = False,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.is_retryable = is_retryable
        self.original_error = original_error


# (categoria, retentável, palavras-chave), avaliadas em ordem
_KEYWORD_RULES: tuple[tuple[ErrorCategory, bool, tuple[str, ...]], ...] = (
    (ErrorCategory.VALIDATION, False, ("validation", "invalid", "required")),
    (
        ErrorCategory.AUTH,
        False,
        ("unauthorized", "unauthenticated", "permission", "forbidden"),
    ),
    (ErrorCategory.PAYMENT, True, ("payment", "stripe", "card", "charge")),
    (ErrorCategory.CALENDLY, True, ("calendly", "scheduling")),
    (ErrorCategory.DATABASE, True, ("database", "sql", "query")),
    (ErrorCategory.NETWORK, True, ("network", "connection", "offline", "unreachable")),
    (ErrorCategory.TIMEOUT, True, ("timeout", "timed out")),
)


def classify_error(error: BaseException | object) -> CategorizedError:
    """Classifica um erro; CategorizedError é devolvido sem alteração."""
    if isinstance(error, CategorizedError):
        return error

    original = error if isinstance(error, BaseException) else None
    message = str(error)

    # Tipos conhecidos têm precedência sobre a mensagem
    if isinstance(error, TimeoutError):
        return CategorizedError(message, ErrorCategory.TIMEOUT, True, original)
    if isinstance(error, ConnectionError):
        return CategorizedError(message, ErrorCategory.NETWORK, True, original)
    if isinstance(error, BookingStoreError):
        return CategorizedError(message, ErrorCategory.DATABASE, True, original)

    lowered = message.lower()
    for category, is_retryable, keywords in _KEYWORD_RULES:
        if any(keyword in lowered for keyword in keywords):
            return CategorizedError(message, category, is_retryable, original)

    return CategorizedError(message, ErrorCategory.UNKNOWN, False, original)


def create_recovery_link(base_url: str, token: str) -> str:
    """Link de recuperação: {base_url}/booking/recovery?token=..."""
    return f"{base_url.rstrip('/')}{RECOVERY_PATH}?token={quote(token, safe='')}"


@dataclass(frozen=True, slots=True)
class BookingErrorOutcome:
    transition_result: TransitionResult
    recovery_token: str | None = None
    recovery_url: str | None = None


@dataclass(frozen=True, slots=True)
class RecoveryOutcome:
    success: bool
    booking_id: str | None = None
    transition_result: TransitionResult | None = None


def handle_booking_error(
    service: BookingService,
    booking_id: str,
    error: BaseException | object,
    base_url: str,
) -> BookingErrorOutcome:
    """Leva a reserva para ERROR registrando o erro classificado.

    - Reserva inexistente: resultado com success=False, sem token
    - Erro retentável: token e link de recuperação para o estado anterior
    """
    categorized = classify_error(error)
    error_info = BookingErrorInfo(
        message=categorized.message or "Unknown error",
        code=categorized.category,
        timestamp=utc_now(),
        source="error-handling",
        is_retryable=categorized.is_retryable,
    )

    logger.error(
        "booking_error_handling",
        extra={
            "booking_id": booking_id,
            "error_category": categorized.category,
            "is_retryable": categorized.is_retryable,
        },
    )

    try:
        result = service.transition_booking(
            booking_id, BookingEvent.ERROR_OCCURRED, {"error": error_info}
        )
    except BookingNotFoundError:
        logger.error("Unable to handle error, booking not found", extra={"booking_id": booking_id})
        return BookingErrorOutcome(
            transition_result=TransitionResult(
                success=False,
                previous_state=BookingState.ERROR,
                current_state=BookingState.ERROR,
                state_data=BookingStateData(booking_id=booking_id, error=error_info),
                event=BookingEvent.ERROR_OCCURRED,
                timestamp=error_info.timestamp or utc_now(),
                error=f"Booking not found: {booking_id}",
            )
        )

    if not (result.success and categorized.is_retryable):
        return BookingErrorOutcome(transition_result=result)

    recovery_token = result.state_data.recovery_token
    if not recovery_token:
        return BookingErrorOutcome(transition_result=result)

    return BookingErrorOutcome(
        transition_result=result,
        recovery_token=recovery_token,
        recovery_url=create_recovery_link(base_url, recovery_token),
    )


def recover_booking_with_token(
    service: BookingService,
    token: str,
) -> RecoveryOutcome:
    """Recupera reserva em ERROR a partir do token de recuperação.

    O token precisa ser o emitido na entrada em ERROR: mesma reserva e estado
    igual ao rastreado antes do erro, que é sempre o destino.
    Reserva fora de ERROR não precisa de recuperação (success=True, sem transição).
    """
    verification = service.verify_state_token(token)
    if not verification.is_valid or not verification.booking_id:
        logger.warning("Invalid or expired recovery token")
        return RecoveryOutcome(success=False)

    booking_id = verification.booking_id
    context = service.get_booking_state(booking_id)
    if context is None:
        logger.error("Booking not found for recovery", extra={"booking_id": booking_id})
        return RecoveryOutcome(success=False, booking_id=booking_id)

    if context.state != BookingState.ERROR:
        logger.info(
            "Booking is not in ERROR state, no recovery needed",
            extra={"booking_id": booking_id, "current_state": context.state},
        )
        return RecoveryOutcome(success=True, booking_id=booking_id)

    if verification.state != context.state_data.state_before_error:
        logger.warning(
            "Recovery token does not match tracked state",
            extra={"booking_id": booking_id, "token_state": verification.state},
        )
        return RecoveryOutcome(success=False, booking_id=booking_id)

    result = service.recover_booking(booking_id)
    return RecoveryOutcome(success=result.success, booking_id=booking_id, transition_result=result)


def retry_booking_operation(
    operation: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    booking_id: str | None = None,
    operation_name: str = "booking operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Executa `operation` com backoff exponencial para erros retentáveis.

    Erros não retentáveis, ou esgotadas as `max_retries` retentativas,
    são relançados sem alteração.
    """
    attempt = 0
    delay = initial_delay

    while True:
        attempt += 1
        try:
            return operation()
        except Exception as e:
            categorized = classify_error(e)
            if not categorized.is_retryable or attempt > max_retries:
                logger.error(
                    "booking_operation_failed",
                    extra={
                        "operation": operation_name,
                        "booking_id": booking_id,
                        "attempts": attempt,
                        "error_category": categorized.category,
                    },
                )
                raise

            logger.warning(
                "booking_operation_retry",
                extra={
                    "operation": operation_name,
                    "booking_id": booking_id,
                    "attempt": attempt,
                    "max_retries": max_retries,
                    "error_category": categorized.category,
                    "next_retry_delay_seconds": delay,
                },
            )
            sleep(delay)
            delay = min(delay * backoff_factor, max_delay)
