"""Camada de segurança do state machine: chaves, codec e state tokens."""

from booking_fsm.security.codec import (
    DEFAULT_SENSITIVE_FIELDS,
    StateDataCodec,
    is_encrypted,
    mask_value,
)
from booking_fsm.security.keys import StateMachineKeys
from booking_fsm.security.tokens import StateTokenService, StateTokenVerification

__all__ = [
    "StateMachineKeys",
    "StateDataCodec",
    "DEFAULT_SENSITIVE_FIELDS",
    "is_encrypted",
    "mask_value",
    "StateTokenService",
    "StateTokenVerification",
]
