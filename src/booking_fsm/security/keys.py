"""Material de chave do state machine (injetado no codec e no token service)."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field

from booking_fsm.config.settings import DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS, Settings
from booking_fsm.domain.errors import ConfigurationError
from booking_fsm.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StateMachineKeys:
    """Secrets de criptografia e assinatura.

    Somente leitura após o boot. Valores nunca aparecem no repr.
    """

    encryption_key: str = field(repr=False)
    token_secret: str = field(repr=False)
    token_max_age_seconds: int = DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS  # 0 = sem expiração

    def __post_init__(self) -> None:
        if not self.encryption_key:
            raise ConfigurationError("STATE_MACHINE_ENCRYPTION_KEY não configurado")
        if not self.token_secret:
            raise ConfigurationError("STATE_TOKEN_SECRET não configurado")
        if self.token_max_age_seconds < 0:
            raise ConfigurationError("STATE_TOKEN_MAX_AGE_SECONDS deve ser >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> StateMachineKeys:
        """Monta as chaves a partir de Settings.

        Fora do ambiente de testes, secret ausente é fatal (ConfigurationError).
        Em testes, o secret ausente vira um valor aleatório efêmero do processo.
        """
        encryption_key = settings.state_machine_encryption_key
        token_secret = settings.state_token_secret

        if settings.is_test:
            if not encryption_key:
                encryption_key = _ephemeral_secret("STATE_MACHINE_ENCRYPTION_KEY")
            if not token_secret:
                token_secret = _ephemeral_secret("STATE_TOKEN_SECRET")

        return cls(
            encryption_key=encryption_key or "",
            token_secret=token_secret or "",
            token_max_age_seconds=settings.state_token_max_age_seconds,
        )


def _ephemeral_secret(name: str) -> str:
    logger.warning(
        "Using ephemeral random secret (test environment only)",
        extra={"setting": name},
    )
    return secrets.token_urlsafe(32)
