from __future__ import annotations

import logging

from booking_fsm.observability.logging import get_logger

from .env_provider import EnvSecretProvider
from .gcp_provider import SecretManagerProvider
from .protocol import SecretProvider

logger: logging.Logger = get_logger(__name__)

ENCRYPTION_KEY_SECRET = "STATE_MACHINE_ENCRYPTION_KEY"
TOKEN_SECRET_SECRET = "STATE_TOKEN_SECRET"

# Nome no provider -> atributo em Settings
STATE_MACHINE_SECRETS: dict[str, str] = {
    ENCRYPTION_KEY_SECRET: "state_machine_encryption_key",
    TOKEN_SECRET_SECRET: "state_token_secret",
}


def create_secret_provider(backend: str = "env", project_id: str | None = None) -> SecretProvider:
    """Factory para criar o provider de secrets apropriado."""
    if backend == "env":
        logger.info("Using EnvSecretProvider for secrets")
        return EnvSecretProvider()

    if backend == "secret_manager":
        logger.info(
            "Using SecretManagerProvider for secrets",
            extra={"project_id": project_id},
        )
        return SecretManagerProvider(project_id=project_id)

    raise ValueError(f"Backend de secrets não reconhecido: {backend}")


def get_state_machine_secrets(provider: SecretProvider) -> dict[str, str]:
    """Carrega as chaves de criptografia e assinatura do state machine.

    Retorna dict atributo -> valor apenas com os secrets encontrados; a
    decisão de falhar fica com quem valida a configuração.
    """
    secrets: dict[str, str] = {}
    for secret_name, attr_name in STATE_MACHINE_SECRETS.items():
        if not provider.secret_exists(secret_name):
            logger.warning(
                "State machine secret not found",
                extra={"secret_name": secret_name},
            )
            continue
        secrets[attr_name] = provider.get_secret(secret_name)
    return secrets
