"""Configurações da aplicação via variáveis de ambiente.

Todas as configurações são carregadas de env vars ou Secret Manager.
Nunca hardcode a chave de criptografia nem o secret de assinatura de tokens.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

from booking_fsm.infra.secrets import create_secret_provider, get_state_machine_secrets
from booking_fsm.observability.logging import get_logger

# Validade padrão de um state token (24h)
DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS: int = 24 * 60 * 60


class Settings(BaseSettings):
    """Configurações lidas do ambiente."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    # Aplicação
    service_name: str = "booking_fsm"
    version: str = "0.1.0"
    environment: str = "development"  # development | test | staging | production
    log_level: str = "INFO"
    log_format: str = "json"  # json | text
    correlation_id_header: str = "X-Correlation-ID"

    # Segurança do state machine
    state_machine_encryption_key: str | None = None  # AES-GCM (derivada via HKDF)
    state_token_secret: str | None = None  # HMAC SHA-256 dos state tokens
    state_token_max_age_seconds: int = DEFAULT_STATE_TOKEN_MAX_AGE_SECONDS  # 0 = sem expiração

    # Persistência do estado das reservas
    booking_store_backend: str = "memory"  # memory | redis
    redis_url: str | None = None
    transition_max_attempts: int = 3  # Retries em conflito de versão

    # Idempotência de webhooks (Stripe/Calendly entregam at-least-once)
    webhook_dedupe_backend: str = "memory"  # memory | redis
    webhook_dedupe_ttl_seconds: int = 604800  # 7 dias

    # Links de recuperação
    app_base_url: str = "https://app.example.com"

    @property
    def is_production(self) -> bool:
        """Retorna True se ambiente é produção."""
        return self.environment.lower() in ("production", "prod")

    @property
    def is_staging(self) -> bool:
        """Retorna True se ambiente é staging."""
        return self.environment.lower() in ("staging", "stage")

    @property
    def is_development(self) -> bool:
        """Retorna True se ambiente é desenvolvimento."""
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_test(self) -> bool:
        """Retorna True se ambiente é de testes automatizados."""
        return self.environment.lower() in ("test", "testing")

    def validate_state_machine_secrets(self) -> list[str]:
        """Valida presença das chaves do state machine.

        Fora do ambiente de testes, ambas são obrigatórias (fail-fast no boot).
        Retorna lista de erros (vazia = OK).
        """
        errors: list[str] = []
        if self.state_token_max_age_seconds < 0:
            errors.append("STATE_TOKEN_MAX_AGE_SECONDS deve ser >= 0")

        if self.is_test:
            return errors

        if not self.state_machine_encryption_key:
            errors.append("STATE_MACHINE_ENCRYPTION_KEY não configurado")
        if not self.state_token_secret:
            errors.append("STATE_TOKEN_SECRET não configurado")
        return errors

    def validate_booking_store_config(self) -> list[str]:
        """Valida backend de persistência de estado por ambiente.

        Em staging/prod, memory é proibido (múltiplas instâncias perderiam o
        lock por reserva).
        """
        errors: list[str] = []
        backend = self.booking_store_backend.lower()

        valid_backends = {"memory", "redis"}
        if backend not in valid_backends:
            errors.append(
                f"BOOKING_STORE_BACKEND '{backend}' inválido. Valores válidos: {valid_backends}"
            )

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "BOOKING_STORE_BACKEND=memory é proibido em staging/production. "
                "Configure 'redis'."
            )

        if backend == "redis" and not self.redis_url:
            errors.append("BOOKING_STORE_BACKEND=redis requer REDIS_URL configurado")

        if self.transition_max_attempts < 1:
            errors.append("TRANSITION_MAX_ATTEMPTS deve ser >= 1")

        return errors

    def validate_webhook_dedupe_backend(self) -> list[str]:
        """Valida backend de dedupe de webhooks."""
        errors: list[str] = []
        backend = self.webhook_dedupe_backend.lower()
        if backend not in {"memory", "redis"}:
            errors.append("WEBHOOK_DEDUPE_BACKEND inválido: use memory | redis")

        if backend == "memory" and (self.is_staging or self.is_production):
            errors.append(
                "WEBHOOK_DEDUPE_BACKEND=memory é proibido em staging/production. "
                "Configure Redis."
            )
        if backend == "redis" and not self.redis_url:
            errors.append("WEBHOOK_DEDUPE_BACKEND=redis requer REDIS_URL configurado")
        return errors

    def model_post_init(self, __context: Any) -> None:
        """Carrega secrets do Secret Manager em staging/production.

        - Nunca logar valores de secrets
        - Fail-closed em produção se as chaves faltam
        """
        logger: logging.Logger = get_logger(__name__)
        skip_secret_manager = os.getenv("SKIP_SECRET_MANAGER", "").lower() == "true"

        if not (self.is_staging or self.is_production):
            logger.debug(
                "Non-prod configuration (secrets via env vars)",
                extra={"environment": self.environment},
            )
            return

        if skip_secret_manager:
            logger.error(
                "SKIP_SECRET_MANAGER is forbidden in staging/production",
                extra={"environment": self.environment},
            )
            raise RuntimeError("SKIP_SECRET_MANAGER não é permitido em staging/production")

        # PYTEST_CURRENT_TEST é setado pelo pytest; evita chamada real ao GCP.
        if os.getenv("PYTEST_CURRENT_TEST"):
            logger.info(
                "Skipping Secret Manager in controlled test run",
                extra={"environment": self.environment},
            )
            return

        project_id = os.getenv("GOOGLE_CLOUD_PROJECT")
        if not project_id:
            logger.error(
                "GOOGLE_CLOUD_PROJECT not configured for Secret Manager",
                extra={"environment": self.environment},
            )
            raise RuntimeError("GOOGLE_CLOUD_PROJECT obrigatório em staging/production")

        try:
            provider = create_secret_provider(backend="secret_manager", project_id=project_id)
            loaded = get_state_machine_secrets(provider)
        except Exception as e:
            logger.error(
                "Failed to load state machine secrets",
                extra={"error": type(e).__name__, "environment": self.environment},
            )
            raise RuntimeError(
                f"Não foi possível carregar secrets do Secret Manager: {type(e).__name__}"
            ) from e

        for attr_name, value in loaded.items():
            setattr(self, attr_name, value)
            logger.info(
                "Secret loaded from Secret Manager",
                extra={"setting": attr_name, "environment": self.environment},
            )

        validation_errors = self.validate_state_machine_secrets()
        if validation_errors:
            logger.error(
                "State machine secret validation failed",
                extra={"errors": validation_errors, "environment": self.environment},
            )
            raise RuntimeError(
                f"Configuração do state machine inválida: {'; '.join(validation_errors)}"
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Retorna uma instância cacheada de Settings."""
    return Settings()
