"""Testes do BookingFSMEngine (executor puro de transições)."""

from __future__ import annotations

from datetime import datetime

import pytest

from booking_fsm.application.fsm_engine import BookingFSMEngine
from booking_fsm.domain.booking.events import BookingEvent
from booking_fsm.domain.booking.states import BookingState
from booking_fsm.domain.enums import BookingStatus, PaymentStatus
from booking_fsm.domain.errors import ConfigurationError
from booking_fsm.domain.models import BookingContext, BookingStateData, TransitionPayload
from booking_fsm.security.codec import StateDataCodec
from booking_fsm.security.tokens import StateTokenService


def _context(
    state: BookingState,
    booking_id: str = "booking-123",
    **fields,
) -> BookingContext:
    return BookingContext(
        booking_id=booking_id,
        state=state,
        state_data=BookingStateData(booking_id=booking_id, **fields),
        version=1,
    )


class TestExecuteTransitionRejections:
    """Falhas esperadas nunca lançam exceção nem alteram o contexto."""

    def test_invalid_transition_keeps_context(
        self, engine: BookingFSMEngine, fixed_now: datetime
    ) -> None:
        context = _context(BookingState.IDLE, client_id="c1")
        result = engine.execute_transition(
            context, TransitionPayload(BookingEvent.COMPLETE_BOOKING, {"client_id": "c2"})
        )

        assert result.success is False
        assert result.previous_state == BookingState.IDLE
        assert result.current_state == BookingState.IDLE
        assert result.state_data is context.state_data
        assert result.error == "Invalid transition from IDLE with event COMPLETE_BOOKING"
        assert result.timestamp == fixed_now

    def test_terminal_state_rejects_everything(self, engine: BookingFSMEngine) -> None:
        context = _context(BookingState.BOOKING_COMPLETED)
        for event in BookingEvent:
            result = engine.execute_transition(context, TransitionPayload(event))
            assert result.success is False
            assert result.current_state == BookingState.BOOKING_COMPLETED

    def test_select_session_type_requires_session_type_id(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.IDLE), TransitionPayload(BookingEvent.SELECT_SESSION_TYPE)
        )
        assert result.success is False
        assert result.error == "session_type_id is required for SELECT_SESSION_TYPE"

    def test_schedule_event_requires_times(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.CALENDLY_SCHEDULING_INITIATED),
            TransitionPayload(BookingEvent.SCHEDULE_EVENT, {"start_time": "2026-03-12T10:00:00Z"}),
        )
        assert result.success is False
        assert result.error == "start_time and end_time are required for SCHEDULE_EVENT"

    def test_schedule_event_end_must_follow_start(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.CALENDLY_SCHEDULING_INITIATED),
            TransitionPayload(
                BookingEvent.SCHEDULE_EVENT,
                {"start_time": "2026-03-12T11:00:00Z", "end_time": "2026-03-12T10:00:00Z"},
            ),
        )
        assert result.success is False
        assert result.error == "end_time must be after start_time"

    def test_malformed_payload_is_rejected(self, engine: BookingFSMEngine) -> None:
        context = _context(BookingState.CANCELLATION_REQUESTED)
        result = engine.execute_transition(
            context, TransitionPayload(BookingEvent.REQUEST_REFUND, {"refund_amount": -500})
        )
        assert result.success is False
        assert result.error is not None
        assert result.error.startswith("Invalid payload for REQUEST_REFUND")
        assert result.state_data is context.state_data


class TestExecuteTransitionSuccess:
    def test_merges_data_and_stamps_event(
        self, engine: BookingFSMEngine, fixed_now: datetime
    ) -> None:
        result = engine.execute_transition(
            _context(BookingState.IDLE, client_id="c1"),
            TransitionPayload(BookingEvent.SELECT_SESSION_TYPE, {"session_type_id": "st-60"}),
        )

        assert result.success is True
        assert result.previous_state == BookingState.IDLE
        assert result.current_state == BookingState.SESSION_TYPE_SELECTED
        assert result.error is None
        assert result.state_data.session_type_id == "st-60"
        assert result.state_data.client_id == "c1"
        assert result.state_data.last_event_type == BookingEvent.SELECT_SESSION_TYPE
        assert result.state_data.timestamp == fixed_now

    def test_schedule_event_stamps_pending_unpaid(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.CALENDLY_SCHEDULING_INITIATED),
            TransitionPayload(
                BookingEvent.SCHEDULE_EVENT,
                {"start_time": "2026-03-12T10:00:00Z", "end_time": "2026-03-12T11:00:00Z"},
            ),
        )
        assert result.success is True
        assert result.state_data.booking_status == BookingStatus.PENDING
        assert result.state_data.payment_status == PaymentStatus.UNPAID

    def test_payment_identifiers_leave_encrypted(
        self, engine: BookingFSMEngine, codec: StateDataCodec
    ) -> None:
        result = engine.execute_transition(
            _context(BookingState.PAYMENT_PENDING),
            TransitionPayload(
                BookingEvent.PAYMENT_SUCCEEDED,
                {"stripe_session_id": "cs_test_a1b2c3d4e5", "stripe_payment_intent_id": "pi_3abc"},
            ),
        )

        assert result.success is True
        assert codec.is_encrypted(result.state_data.stripe_session_id)
        assert codec.is_encrypted(result.state_data.stripe_payment_intent_id)
        decrypted = codec.decrypt_sensitive_data(result.state_data)
        assert decrypted.stripe_session_id == "cs_test_a1b2c3d4e5"
        assert decrypted.stripe_payment_intent_id == "pi_3abc"
        assert result.state_data.booking_status == BookingStatus.CONFIRMED
        assert result.state_data.payment_status == PaymentStatus.PAID

    def test_envelope_shaped_payload_value_is_encrypted(
        self, engine: BookingFSMEngine, codec: StateDataCodec
    ) -> None:
        """Valor em claro com formato de envelope também é cifrado e volta intacto."""
        result = engine.execute_transition(
            _context(BookingState.IDLE),
            TransitionPayload(
                BookingEvent.SELECT_SESSION_TYPE,
                {"session_type_id": "s1", "stripe_session_id": "v1:AAAA:BBBB"},
            ),
        )

        assert result.success is True
        assert result.state_data.stripe_session_id != "v1:AAAA:BBBB"
        decrypted = codec.decrypt_sensitive_data(result.state_data)
        assert decrypted.stripe_session_id == "v1:AAAA:BBBB"

    def test_cancel_before_payment_keeps_unpaid(
        self, engine: BookingFSMEngine, fixed_now: datetime
    ) -> None:
        context = _context(
            BookingState.CALENDLY_EVENT_SCHEDULED,
            booking_status=BookingStatus.PENDING,
            payment_status=PaymentStatus.UNPAID,
        )
        result = engine.execute_transition(
            context,
            TransitionPayload(BookingEvent.REQUEST_CANCELLATION, {"cancel_reason": "conflito"}),
        )

        assert result.success is True
        assert result.current_state == BookingState.CANCELLATION_REQUESTED
        assert result.state_data.booking_status == BookingStatus.CANCELLED
        assert result.state_data.payment_status == PaymentStatus.UNPAID
        assert result.state_data.cancelled_at == fixed_now
        assert result.state_data.cancel_reason == "conflito"

    def test_cancel_after_payment_keeps_paid(self, engine: BookingFSMEngine) -> None:
        context = _context(
            BookingState.BOOKING_CONFIRMED,
            booking_status=BookingStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
        )
        result = engine.execute_transition(
            context, TransitionPayload(BookingEvent.REQUEST_CANCELLATION)
        )
        assert result.state_data.payment_status == PaymentStatus.PAID


class TestErrorAndRecovery:
    def test_error_records_origin_and_recovery_token(
        self,
        engine: BookingFSMEngine,
        token_service: StateTokenService,
        fixed_now: datetime,
    ) -> None:
        result = engine.execute_transition(
            _context(BookingState.PAYMENT_PENDING),
            TransitionPayload(BookingEvent.ERROR_OCCURRED, {"error": "Stripe unavailable"}),
        )

        assert result.success is True
        assert result.current_state == BookingState.ERROR
        data = result.state_data
        assert data.state_before_error == BookingState.PAYMENT_PENDING
        assert data.error is not None
        assert data.error.message == "Stripe unavailable"
        assert data.error.timestamp == fixed_now

        verification = token_service.verify_state_token(data.recovery_token or "")
        assert verification.is_valid is True
        assert verification.booking_id == "booking-123"
        assert verification.state == BookingState.PAYMENT_PENDING

    def test_error_without_details_uses_default_message(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.IDLE), TransitionPayload(BookingEvent.ERROR_OCCURRED)
        )
        assert result.state_data.error is not None
        assert result.state_data.error.message == "Unknown error"

    def test_recover_returns_to_state_before_error(self, engine: BookingFSMEngine) -> None:
        errored = engine.execute_transition(
            _context(BookingState.PAYMENT_PENDING),
            TransitionPayload(BookingEvent.ERROR_OCCURRED, {"error": {"message": "boom"}}),
        )
        context = BookingContext(
            booking_id="booking-123",
            state=errored.current_state,
            state_data=errored.state_data,
            version=2,
        )

        result = engine.execute_transition(context, TransitionPayload(BookingEvent.RECOVER))

        assert result.success is True
        assert result.previous_state == BookingState.ERROR
        assert result.current_state == BookingState.PAYMENT_PENDING
        assert result.state_data.error is None
        assert result.state_data.state_before_error is None
        assert result.state_data.recovery_token is None
        assert result.state_data.last_event_type == BookingEvent.RECOVER

    def test_recover_without_origin_falls_back_to_idle(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.ERROR), TransitionPayload(BookingEvent.RECOVER)
        )
        assert result.current_state == BookingState.IDLE

    def test_recover_to_terminal_state_falls_back_to_idle(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.ERROR, state_before_error=BookingState.BOOKING_COMPLETED),
            TransitionPayload(BookingEvent.RECOVER),
        )
        assert result.current_state == BookingState.IDLE

    def test_recover_ignores_target_from_payload(self, engine: BookingFSMEngine) -> None:
        """RECOVER só volta ao estado rastreado: payload não escolhe destino."""
        result = engine.execute_transition(
            _context(BookingState.ERROR, state_before_error=BookingState.IDLE),
            TransitionPayload(
                BookingEvent.RECOVER, {"state_before_error": BookingState.BOOKING_CONFIRMED}
            ),
        )

        assert result.success is True
        assert result.current_state == BookingState.IDLE
        assert result.state_data.payment_status is None
        assert result.state_data.booking_status is None

    def test_payload_cannot_plant_recovery_fields(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.IDLE),
            TransitionPayload(
                BookingEvent.SELECT_SESSION_TYPE,
                {
                    "session_type_id": "st-60",
                    "state_before_error": BookingState.BOOKING_CONFIRMED,
                    "recovery_token": "forged",
                },
            ),
        )

        assert result.success is True
        assert result.state_data.state_before_error is None
        assert result.state_data.recovery_token is None

    def test_error_state_cannot_fail_again(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_transition(
            _context(BookingState.ERROR), TransitionPayload(BookingEvent.ERROR_OCCURRED)
        )
        assert result.success is False


class TestAuthorizedTransition:
    def test_matching_token_allows_transition(
        self, engine: BookingFSMEngine, token_service: StateTokenService
    ) -> None:
        token = token_service.generate_state_token("booking-123", BookingState.IDLE)
        result = engine.execute_authorized_transition(
            _context(BookingState.IDLE),
            TransitionPayload(BookingEvent.SELECT_SESSION_TYPE, {"session_type_id": "st-30"}),
            token,
        )
        assert result.success is True

    def test_token_for_other_state_is_rejected(
        self, engine: BookingFSMEngine, token_service: StateTokenService
    ) -> None:
        token = token_service.generate_state_token("booking-123", BookingState.PAYMENT_REQUIRED)
        result = engine.execute_authorized_transition(
            _context(BookingState.IDLE),
            TransitionPayload(BookingEvent.SELECT_SESSION_TYPE, {"session_type_id": "st-30"}),
            token,
        )
        assert result.success is False
        assert result.error == "State token does not match booking state"

    def test_token_for_other_booking_is_rejected(
        self, engine: BookingFSMEngine, token_service: StateTokenService
    ) -> None:
        token = token_service.generate_state_token("booking-999", BookingState.IDLE)
        result = engine.execute_authorized_transition(
            _context(BookingState.IDLE),
            TransitionPayload(BookingEvent.SELECT_SESSION_TYPE, {"session_type_id": "st-30"}),
            token,
        )
        assert result.error == "State token does not match booking state"

    def test_garbage_token_is_rejected(self, engine: BookingFSMEngine) -> None:
        result = engine.execute_authorized_transition(
            _context(BookingState.IDLE),
            TransitionPayload(BookingEvent.SELECT_SESSION_TYPE, {"session_type_id": "st-30"}),
            "not-a-token",
        )
        assert result.success is False
        assert result.error == "Invalid state token"

    def test_engine_without_token_service(self, codec: StateDataCodec) -> None:
        engine = BookingFSMEngine(codec)
        with pytest.raises(ConfigurationError):
            engine.execute_authorized_transition(
                _context(BookingState.IDLE),
                TransitionPayload(BookingEvent.SELECT_SESSION_TYPE),
                "token",
            )
