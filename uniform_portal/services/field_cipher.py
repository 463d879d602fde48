"""Field-level encryption for employee PII.

Stored values are a tagged variant: ``Plaintext`` for records written before
field encryption existed, ``Encrypted`` for an envelope under a named scheme.
New values are always written with ``aesgcm-v1``. Anything else that can
still be read (legacy plaintext, the older Fernet scheme) is reported as
needing re-encryption; the re-encryption itself is an explicit migration.
"""
from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from typing import Protocol, Union

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes, hmac
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from uniform_portal.config import Settings
from uniform_portal.errors import CipherMismatchError

logger = structlog.get_logger()

CURRENT_SCHEME = 'aesgcm-v1'
LEGACY_FERNET_SCHEME = 'fernet-v0'

_NONCE_BYTES = 12
_PBKDF2_ITERATIONS = 200_000

# Raised by codecs for tampered, truncated or wrong-key payloads.
DECRYPTION_FAILURES = (InvalidTag, InvalidToken, ValueError)


@dataclass(frozen=True)
class Plaintext:
    value: str


@dataclass(frozen=True)
class Encrypted:
    scheme: str
    payload: str


StoredField = Union[Plaintext, Encrypted]


@dataclass(frozen=True)
class DecryptedField:
    plaintext: str
    needs_reencryption: bool


class SchemeCodec(Protocol):
    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, payload: str) -> str: ...


class AesGcmCodec:
    def __init__(self, key: bytes) -> None:
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(_NONCE_BYTES)
        ct = self._aead.encrypt(nonce, plaintext.encode('utf-8'), None)
        return base64.b64encode(nonce + ct).decode('ascii')

    def decrypt(self, payload: str) -> str:
        raw = base64.b64decode(payload)
        return self._aead.decrypt(raw[:_NONCE_BYTES], raw[_NONCE_BYTES:], None).decode('utf-8')


class FernetCodec:
    def __init__(self, key: bytes) -> None:
        self._fernet = Fernet(key)

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode('utf-8')).decode('ascii')

    def decrypt(self, payload: str) -> str:
        return self._fernet.decrypt(payload.encode('ascii')).decode('utf-8')


def derive_key(secret: str, salt_b64: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=base64.b64decode(salt_b64),
        iterations=_PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret.encode('utf-8'))


def normalize_email(raw_email: str) -> str:
    return raw_email.strip().lower()


class FieldCipher:
    def __init__(
        self,
        *,
        codecs: dict[str, SchemeCodec],
        token_key: bytes,
        current_scheme: str = CURRENT_SCHEME,
    ) -> None:
        if current_scheme not in codecs:
            raise ValueError(f'Current scheme {current_scheme!r} has no codec')
        self._codecs = dict(codecs)
        self._token_key = token_key
        self.current_scheme = current_scheme

    @classmethod
    def from_settings(cls, source: Settings) -> FieldCipher:
        codecs: dict[str, SchemeCodec] = {
            CURRENT_SCHEME: AesGcmCodec(derive_key(source.field_encryption_secret, source.field_encryption_salt_b64)),
        }
        if source.legacy_fernet_key:
            codecs[LEGACY_FERNET_SCHEME] = FernetCodec(source.legacy_fernet_key.encode('ascii'))
        return cls(codecs=codecs, token_key=source.lookup_token_secret.encode('utf-8'))

    @property
    def schemes(self) -> frozenset[str]:
        return frozenset(self._codecs)

    def encrypt(self, plaintext: str) -> Encrypted:
        return Encrypted(scheme=self.current_scheme, payload=self._codecs[self.current_scheme].encrypt(plaintext))

    def decrypt_with_status(self, value: StoredField) -> DecryptedField:
        if isinstance(value, Plaintext):
            logger.debug('Decryption fallback: legacy plaintext value')
            return DecryptedField(plaintext=value.value, needs_reencryption=True)

        codec = self._codecs.get(value.scheme)
        if codec is None:
            raise CipherMismatchError(value.scheme)
        return DecryptedField(
            plaintext=codec.decrypt(value.payload),
            needs_reencryption=value.scheme != self.current_scheme,
        )

    def decrypt(self, value: StoredField) -> str:
        return self.decrypt_with_status(value).plaintext

    def lookup_token(self, plaintext: str) -> str:
        """Deterministic keyed hash used for equality search over encrypted values.

        Callers normalize before hashing; the token for ``A@x.com`` and
        ``a@x.com`` only match if both were lower-cased first.
        """
        mac = hmac.HMAC(self._token_key, hashes.SHA256())
        mac.update(plaintext.encode('utf-8'))
        return mac.finalize().hex()
