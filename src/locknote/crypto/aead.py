"""AES-GCM authenticated encryption over key handles."""

from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from locknote.crypto.kdf import KeyHandle
from locknote.errors import AuthenticationFailure

ALGORITHM = "AES-GCM"
TAG_LEN = 16
DEFAULT_NONCE_LEN = 16
# Bounds accepted by the AES-GCM backend.
NONCE_LEN_MIN = 8
NONCE_LEN_MAX = 128
KEY_SIZES_BITS = (128, 192, 256)


def generate_nonce(length: int = DEFAULT_NONCE_LEN) -> bytes:
    """Return a fresh random nonce. Never reuse one under the same key."""
    return os.urandom(length)


class AesGcmCipher:
    """AES-GCM with the authentication tag appended to the ciphertext."""

    @staticmethod
    def encrypt(plaintext: bytes, key: KeyHandle, nonce: bytes) -> bytes:
        return AESGCM(key._use()).encrypt(nonce, plaintext, None)

    @staticmethod
    def decrypt(ciphertext: bytes, key: KeyHandle, nonce: bytes) -> bytes:
        """Decrypt and verify ``ciphertext``.

        Raises :class:`AuthenticationFailure` when the tag does not verify.
        A wrong key and damaged data are indistinguishable here.
        """
        if len(ciphertext) < TAG_LEN:
            raise AuthenticationFailure("Ciphertext shorter than the authentication tag")
        try:
            return AESGCM(key._use()).decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            raise AuthenticationFailure("Authentication tag mismatch") from exc
