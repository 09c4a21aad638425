"""Porta de leitura das chaves do state machine de reservas."""

from __future__ import annotations

from typing import Protocol


class SecretProvider(Protocol):
    """Fonte de STATE_MACHINE_ENCRYPTION_KEY e STATE_TOKEN_SECRET.

    O valor lido vira chave AES-GCM do codec ou segredo HMAC dos state tokens,
    então implementações nunca logam o valor e levantam RuntimeError quando o
    secret não existe (boot fail-closed em staging/production).
    """

    def get_secret(self, name: str, version: str = "latest") -> str:
        """Valor do secret `name` (version só faz sentido no Secret Manager)."""

    def secret_exists(self, name: str) -> bool:
        """True se o secret existe; não lê o valor."""
