"""Testes de application/error_handling.py.

Classificação de erros, entrada em ERROR com link de recuperação e
recuperação autorizada por token.
"""

from __future__ import annotations

from urllib.parse import quote

import pytest

from booking_fsm.application.booking_service import BookingService
from booking_fsm.application.error_handling import (
    CategorizedError,
    ErrorCategory,
    classify_error,
    create_recovery_link,
    handle_booking_error,
    recover_booking_with_token,
    retry_booking_operation,
)
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.errors import BookingStoreError
from booking_fsm.domain.models import BookingStateData
from booking_fsm.infra.booking_store_memory import InMemoryBookingStateStore

BASE_URL = "https://app.example.com"


def _seed(store: InMemoryBookingStateStore, booking_id: str, state: BookingState) -> None:
    store.save(booking_id, BookingStateData(booking_id=booking_id), state, expected_version=0)


class TestClassifyError:
    @pytest.mark.parametrize(
        ("error", "category", "retryable"),
        [
            (TimeoutError("slow"), ErrorCategory.TIMEOUT, True),
            (ConnectionError("refused"), ErrorCategory.NETWORK, True),
            (BookingStoreError("redis down"), ErrorCategory.DATABASE, True),
            (ValueError("invalid session type"), ErrorCategory.VALIDATION, False),
            (PermissionError("forbidden"), ErrorCategory.AUTH, False),
            (RuntimeError("Stripe API error"), ErrorCategory.PAYMENT, True),
            (RuntimeError("Calendly webhook failed"), ErrorCategory.CALENDLY, True),
            (RuntimeError("request timed out"), ErrorCategory.TIMEOUT, True),
            (RuntimeError("something odd"), ErrorCategory.UNKNOWN, False),
        ],
    )
    def test_categories(
        self, error: Exception, category: ErrorCategory, retryable: bool
    ) -> None:
        categorized = classify_error(error)
        assert categorized.category == category
        assert categorized.is_retryable is retryable
        assert categorized.original_error is error

    def test_categorized_error_passes_through(self) -> None:
        error = CategorizedError("custom", ErrorCategory.SERVER, True)
        assert classify_error(error) is error

    def test_non_exception_values(self) -> None:
        categorized = classify_error("network unreachable")
        assert categorized.category == ErrorCategory.NETWORK
        assert categorized.original_error is None


class TestRecoveryLink:
    def test_token_is_url_encoded(self) -> None:
        link = create_recovery_link("https://app.example.com/", "abc+/=")
        assert link == "https://app.example.com/booking/recovery?token=abc%2B%2F%3D"


class TestHandleBookingError:
    def test_retryable_error_returns_recovery_link(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.PAYMENT_PENDING)

        outcome = handle_booking_error(service, "b1", ConnectionError("refused"), BASE_URL)

        result = outcome.transition_result
        assert result.success is True
        assert result.current_state == BookingState.ERROR
        assert result.state_data.error is not None
        assert result.state_data.error.code == ErrorCategory.NETWORK
        assert result.state_data.error.is_retryable is True
        assert outcome.recovery_token
        assert outcome.recovery_url == (
            f"{BASE_URL}/booking/recovery?token={quote(outcome.recovery_token, safe='')}"
        )

        verification = service.verify_state_token(outcome.recovery_token)
        assert verification.booking_id == "b1"
        assert verification.state == BookingState.PAYMENT_PENDING

    def test_non_retryable_error_has_no_link(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.IDLE)

        outcome = handle_booking_error(service, "b1", ValueError("invalid data"), BASE_URL)

        assert outcome.transition_result.current_state == BookingState.ERROR
        assert outcome.recovery_token is None
        assert outcome.recovery_url is None

    def test_unknown_booking(self, service: BookingService) -> None:
        outcome = handle_booking_error(service, "missing", TimeoutError("slow"), BASE_URL)

        assert outcome.transition_result.success is False
        assert outcome.transition_result.error == "Booking not found: missing"
        assert outcome.recovery_token is None

    def test_error_in_terminal_state_is_rejected(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.BOOKING_COMPLETED)

        outcome = handle_booking_error(service, "b1", TimeoutError("slow"), BASE_URL)

        assert outcome.transition_result.success is False
        assert outcome.recovery_url is None
        assert store.load("b1").state == BookingState.BOOKING_COMPLETED


class TestRecoverBookingWithToken:
    def test_recovers_to_previous_state(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.PAYMENT_PENDING)
        outcome = handle_booking_error(service, "b1", TimeoutError("slow"), BASE_URL)

        recovery = recover_booking_with_token(service, outcome.recovery_token or "")

        assert recovery.success is True
        assert recovery.booking_id == "b1"
        assert recovery.transition_result is not None
        assert recovery.transition_result.current_state == BookingState.PAYMENT_PENDING
        context = service.get_booking_state("b1")
        assert context.state == BookingState.PAYMENT_PENDING
        assert context.state_data.error is None
        assert context.state_data.recovery_token is None

    def test_token_for_other_state_is_refused(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        """Só o token emitido na entrada em ERROR recupera; destino não é escolhido pelo token."""
        _seed(store, "b1", BookingState.PAYMENT_PENDING)
        handle_booking_error(service, "b1", TimeoutError("slow"), BASE_URL)
        error_token = service.issue_state_token("b1")

        recovery = recover_booking_with_token(service, error_token)

        assert recovery.success is False
        assert recovery.booking_id == "b1"
        assert recovery.transition_result is None
        assert store.load("b1").state == BookingState.ERROR

    def test_invalid_token(self, service: BookingService) -> None:
        recovery = recover_booking_with_token(service, "garbage")
        assert recovery.success is False
        assert recovery.booking_id is None

    def test_booking_not_in_error(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.IDLE)
        token = service.issue_state_token("b1")

        recovery = recover_booking_with_token(service, token)

        assert recovery.success is True
        assert recovery.transition_result is None

    def test_booking_deleted(
        self, service: BookingService, store: InMemoryBookingStateStore
    ) -> None:
        _seed(store, "b1", BookingState.IDLE)
        token = service.issue_state_token("b1")
        store.delete("b1")

        recovery = recover_booking_with_token(service, token)

        assert recovery.success is False
        assert recovery.booking_id == "b1"


class TestRetryBookingOperation:
    def test_retries_retryable_errors(self) -> None:
        sleeps: list[float] = []
        calls = {"count": 0}

        def operation() -> str:
            calls["count"] += 1
            if calls["count"] < 3:
                raise ConnectionError("refused")
            return "ok"

        assert retry_booking_operation(operation, sleep=sleeps.append) == "ok"
        assert calls["count"] == 3
        assert sleeps == [1.0, 2.0]

    def test_non_retryable_raises_immediately(self) -> None:
        sleeps: list[float] = []

        def operation() -> None:
            raise ValueError("invalid payload")

        with pytest.raises(ValueError):
            retry_booking_operation(operation, sleep=sleeps.append)
        assert sleeps == []

    def test_gives_up_after_max_retries(self) -> None:
        sleeps: list[float] = []
        calls = {"count": 0}

        def operation() -> None:
            calls["count"] += 1
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            retry_booking_operation(operation, max_retries=2, sleep=sleeps.append)
        assert calls["count"] == 3
        assert sleeps == [1.0, 2.0]

    def test_delay_is_capped(self) -> None:
        sleeps: list[float] = []

        def operation() -> None:
            raise TimeoutError("slow")

        with pytest.raises(TimeoutError):
            retry_booking_operation(
                operation,
                max_retries=3,
                initial_delay=4.0,
                backoff_factor=3.0,
                max_delay=10.0,
                sleep=sleeps.append,
            )
        assert sleeps == [4.0, 10.0, 10.0]
