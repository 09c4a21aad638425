from __future__ import annotations

from .env_provider import EnvSecretProvider
from .factory import (
    ENCRYPTION_KEY_SECRET,
    STATE_MACHINE_SECRETS,
    TOKEN_SECRET_SECRET,
    create_secret_provider,
    get_state_machine_secrets,
)
from .gcp_provider import SecretManagerProvider
from .protocol import SecretProvider

__all__ = [
    "SecretProvider",
    "EnvSecretProvider",
    "SecretManagerProvider",
    "create_secret_provider",
    "get_state_machine_secrets",
    "STATE_MACHINE_SECRETS",
    "ENCRYPTION_KEY_SECRET",
    "TOKEN_SECRET_SECRET",
]
