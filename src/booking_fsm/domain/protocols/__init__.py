"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from booking_fsm.domain.protocols.booking_store import BookingStateStoreProtocol
from booking_fsm.domain.protocols.dedupe import DedupeProtocol

__all__ = [
    "BookingStateStoreProtocol",
    "DedupeProtocol",
]
