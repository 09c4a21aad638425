from __future__ import annotations

import logging
import os

from booking_fsm.observability.logging import get_logger

logger: logging.Logger = get_logger(__name__)


class EnvSecretProvider:
    """Provider via variáveis de ambiente (desenvolvimento, testes e CI).

    O parâmetro `version` é aceito por compatibilidade com o protocolo, mas
    variáveis de ambiente não têm versões.
    """

    def get_secret(self, name: str, version: str = "latest") -> str:
        value = os.getenv(name)
        if not value:
            logger.warning(
                "Secret not found in environment",
                extra={"secret_name": name, "provider": "env"},
            )
            raise RuntimeError(f"Secret {name} não encontrado no ambiente")

        logger.debug(
            "Secret read from environment",
            extra={"secret_name": name, "provider": "env"},
        )
        return value

    def secret_exists(self, name: str) -> bool:
        return os.getenv(name) is not None
