"""Protocolo de domínio para dedupe de webhooks.

Stripe e Calendly entregam eventos at-least-once; o id do evento do
provider é a chave de idempotência.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class DedupeProtocol(ABC):
    """Contrato mínimo para stores de deduplicação."""

    @abstractmethod
    def mark_if_new(self, key: str) -> bool:
        """Marca a chave de forma atômica.

        Returns:
            True se foi marcada agora (evento novo); False se duplicado.

        Raises:
            DedupeError: falha no backend (fail-closed)
        """

    @abstractmethod
    def clear(self, key: str) -> bool:
        """Remove a marca (rollback quando o processamento falha)."""
