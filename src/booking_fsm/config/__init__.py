"""Configurações centralizadas do booking_fsm.

Uso típico:
    from booking_fsm.config import get_settings
"""

from booking_fsm.config.settings import (
    DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS",
]
