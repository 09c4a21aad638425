"""Codec de campos sensíveis do state data: AES-256-GCM.

Responsabilidades:
- Cifrar/decifrar identificadores de pagamento antes de persistir
- Projeção mascarada para logs (sanitize_for_logging)
- Isolamento de cryptography.hazmat

Envelope: "v1:" + base64(iv) + ":" + base64(ciphertext||tag).
O nome do campo entra como associated data: um envelope copiado para
outro campo não decifra.
"""

from __future__ import annotations

import base64
import binascii
import os
from collections.abc import Iterable, Mapping
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from pydantic_core import to_jsonable_python

from booking_fsm.domain.errors import StateDataCodecError
from booking_fsm.domain.models import BookingStateData
from booking_fsm.security.keys import StateMachineKeys

ENVELOPE_VERSION = "v1"
ENVELOPE_PREFIX = f"{ENVELOPE_VERSION}:"
AES_KEY_SIZE = 32  # 256 bits
IV_SIZE = 12  # 96 bits (recomendado para GCM)

_HKDF_SALT = b"booking_fsm.state_data"
_HKDF_INFO = b"aes-256-gcm/v1"

MASKED = "[MASKED]"
ENCRYPTED = "[ENCRYPTED]"
_MIN_PARTIAL_MASK_LENGTH = 8

DEFAULT_SENSITIVE_FIELDS: frozenset[str] = frozenset({
    "stripe_session_id",
    "stripe_payment_intent_id",
    "stripe_refund_id",
})

# Não são cifrados, mas também não vão para log em claro
_LOG_ONLY_MASKED_FIELDS: frozenset[str] = frozenset({"recovery_token"})


def derive_key(secret: str) -> bytes:
    """Deriva a chave AES-256 a partir do secret configurado (HKDF-SHA256)."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_SIZE,
        salt=_HKDF_SALT,
        info=_HKDF_INFO,
    )
    return hkdf.derive(secret.encode("utf-8"))


def is_encrypted(value: Any) -> bool:
    """True se `value` tem o formato de envelope cifrado."""
    return (
        isinstance(value, str)
        and value.startswith(ENVELOPE_PREFIX)
        and len(value.split(":")) == 3
    )


def mask_value(value: Any) -> str:
    """Mascara valor sensível para log.

    - envelope cifrado -> [ENCRYPTED]
    - menos de 8 caracteres -> [MASKED]
    - demais -> primeiros 4 + **** + últimos 4
    """
    if is_encrypted(value):
        return ENCRYPTED
    text = str(value)
    if len(text) < _MIN_PARTIAL_MASK_LENGTH:
        return MASKED
    return f"{text[:4]}****{text[-4:]}"


class StateDataCodec:
    """Cifra campos sensíveis e produz projeções seguras para log."""

    def __init__(
        self,
        keys: StateMachineKeys,
        sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS,
    ) -> None:
        self._aesgcm = AESGCM(derive_key(keys.encryption_key))
        self._sensitive_fields = frozenset(sensitive_fields)

    @property
    def sensitive_fields(self) -> frozenset[str]:
        return self._sensitive_fields

    @staticmethod
    def is_encrypted(value: Any) -> bool:
        return is_encrypted(value)

    def encrypt_value(self, plaintext: str, field_name: str) -> str:
        """Cifra um valor; IV aleatório por chamada."""
        iv = os.urandom(IV_SIZE)
        ciphertext = self._aesgcm.encrypt(iv, plaintext.encode("utf-8"), field_name.encode())
        return (
            f"{ENVELOPE_PREFIX}{base64.b64encode(iv).decode('ascii')}"
            f":{base64.b64encode(ciphertext).decode('ascii')}"
        )

    def decrypt_value(self, envelope: str, field_name: str) -> str:
        """Decifra um envelope.

        Raises:
            StateDataCodecError: envelope malformado, adulterado ou de outra chave
        """
        if not is_encrypted(envelope):
            raise StateDataCodecError(f"Value of {field_name} is not an encrypted envelope")

        _, iv_b64, ciphertext_b64 = envelope.split(":")
        try:
            iv = base64.b64decode(iv_b64, validate=True)
            ciphertext = base64.b64decode(ciphertext_b64, validate=True)
            plaintext = self._aesgcm.decrypt(iv, ciphertext, field_name.encode())
        except (binascii.Error, ValueError, InvalidTag) as e:
            raise StateDataCodecError(
                f"Failed to decrypt {field_name}: {type(e).__name__}"
            ) from e
        return plaintext.decode("utf-8")

    def encrypt_payload(self, updates: Mapping[str, Any]) -> dict[str, Any]:
        """Cifra todo valor sensível recebido de fora.

        Payload de evento é sempre texto em claro: um valor com formato de
        envelope é cifrado como qualquer outro.
        """
        encrypted = dict(updates)
        for name in self._sensitive_fields:
            value = encrypted.get(name)
            if isinstance(value, str) and value:
                encrypted[name] = self.encrypt_value(value, name)
        return encrypted

    def encrypt_sensitive_data(self, data: BookingStateData) -> BookingStateData:
        """Cifra campos sensíveis presentes e ainda em claro.

        Valores já cifrados não são cifrados de novo; demais campos passam intactos.
        Só para state data já persistido; payload novo passa por encrypt_payload.
        """
        updates: dict[str, str] = {}
        for name, value in self._sensitive_items(data):
            if isinstance(value, str) and value and not is_encrypted(value):
                updates[name] = self.encrypt_value(value, name)
        if not updates:
            return data
        return data.merge(updates)

    def decrypt_sensitive_data(self, data: BookingStateData) -> BookingStateData:
        """Decifra envelopes; valores em claro passam intactos (registros mistos).

        Raises:
            StateDataCodecError: envelope adulterado ou cifrado com outra chave
        """
        updates: dict[str, str] = {}
        for name, value in self._sensitive_items(data):
            if is_encrypted(value):
                updates[name] = self.decrypt_value(value, name)
        if not updates:
            return data
        return data.merge(updates)

    def sanitize_for_logging(self, data: BookingStateData | Mapping[str, Any]) -> dict[str, Any]:
        """Projeção JSON-safe com campos sensíveis mascarados."""
        if isinstance(data, BookingStateData):
            projection = data.model_dump(mode="json", exclude_none=True)
        else:
            projection = {
                key: to_jsonable_python(value, fallback=str)
                for key, value in data.items()
                if value is not None
            }

        for name in self._sensitive_fields | _LOG_ONLY_MASKED_FIELDS:
            value = projection.get(name)
            if value not in (None, ""):
                projection[name] = mask_value(value)
        return projection

    def _sensitive_items(self, data: BookingStateData) -> list[tuple[str, Any]]:
        fields = data.to_fields()
        return [(name, fields[name]) for name in sorted(self._sensitive_fields) if name in fields]
