"""State tokens: capacidade assinada (HMAC SHA-256) ligando reserva e estado.

Formato: base64("booking_id:state:timestamp_ms:hex_hmac").
A assinatura cobre "booking_id:state:timestamp_ms".
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass

from booking_fsm.security.keys import StateMachineKeys

_SEPARATOR = ":"
_FIELD_COUNT = 4


@dataclass(frozen=True, slots=True)
class StateTokenVerification:
    """Resultado da verificação de um state token.

    Em falha, apenas is_valid=False é preenchido.
    """

    is_valid: bool
    booking_id: str | None = None
    state: str | None = None
    timestamp: int | None = None  # epoch em ms


def _now_ms() -> int:
    return int(time.time() * 1000)


class StateTokenService:
    """Emite e verifica state tokens."""

    def __init__(self, keys: StateMachineKeys, clock: Callable[[], int] | None = None) -> None:
        self._secret = keys.token_secret.encode("utf-8")
        self._max_age_ms = keys.token_max_age_seconds * 1000
        self._clock = clock or _now_ms

    def _sign(self, message: str) -> str:
        return hmac.new(self._secret, message.encode("utf-8"), hashlib.sha256).hexdigest()

    def generate_state_token(self, booking_id: str, state: str) -> str:
        """Emite token para (booking_id, state) com timestamp atual.

        Raises:
            ValueError: booking_id ou state vazio ou contendo ':'
        """
        for name, value in (("booking_id", booking_id), ("state", str(state))):
            if not value:
                raise ValueError(f"{name} must not be empty")
            if _SEPARATOR in value:
                raise ValueError(f"{name} must not contain '{_SEPARATOR}'")

        message = f"{booking_id}{_SEPARATOR}{state}{_SEPARATOR}{self._clock()}"
        raw = f"{message}{_SEPARATOR}{self._sign(message)}"
        return base64.b64encode(raw.encode("utf-8")).decode("ascii")

    def verify_state_token(self, token: str) -> StateTokenVerification:
        """Verifica assinatura e validade do token.

        Nunca lança exceção: qualquer falha retorna is_valid=False.
        """
        invalid = StateTokenVerification(is_valid=False)

        try:
            raw = base64.b64decode(token, validate=True).decode("utf-8")
        except (binascii.Error, ValueError, TypeError):
            return invalid

        parts = raw.split(_SEPARATOR)
        if len(parts) != _FIELD_COUNT:
            return invalid

        booking_id, state, timestamp_str, signature = parts
        if not booking_id or not state:
            return invalid
        if not (timestamp_str.isascii() and timestamp_str.isdigit()):
            return invalid

        expected = self._sign(f"{booking_id}{_SEPARATOR}{state}{_SEPARATOR}{timestamp_str}")
        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("utf-8")):
            return invalid

        timestamp = int(timestamp_str)
        if self._max_age_ms > 0 and self._clock() - timestamp > self._max_age_ms:
            return invalid

        return StateTokenVerification(
            is_valid=True,
            booking_id=booking_id,
            state=state,
            timestamp=timestamp,
        )
