"""Password-based key derivation (PBKDF2-HMAC and Argon2id)."""

from __future__ import annotations

import os
from dataclasses import dataclass

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from locknote.crypto.secure_memory import SecureBuffer
from locknote.errors import KeyNotExtractableError, UnsupportedFeatureError

KDF_PBKDF2 = "PBKDF2"
KDF_ARGON2ID = "Argon2id"
# Argon2 hashes internally with BLAKE2b; the field is informational only.
ARGON2_HASH = "BLAKE2b"

DEFAULT_PBKDF2_ITERATIONS = 210_000
DEFAULT_PBKDF2_HASH = "SHA-512"
DEFAULT_SALT_LEN = 16

DEFAULT_ARGON2_TIME_COST = 3
DEFAULT_ARGON2_MEM_COST_KIB = 64 * 1024  # 64 MiB
DEFAULT_ARGON2_PARALLELISM = 1

_PBKDF2_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "SHA-1": hashes.SHA1,
    "SHA-256": hashes.SHA256,
    "SHA-384": hashes.SHA384,
    "SHA-512": hashes.SHA512,
}


@dataclass(frozen=True)
class KeyDerivationParameters:
    """How a password and salt are stretched into a key.

    ``iterations`` is the PBKDF2 round count, or the Argon2 time cost.
    ``memory_cost_kib`` and ``parallelism`` are only meaningful for Argon2id.
    """

    function: str = KDF_PBKDF2
    hash: str = DEFAULT_PBKDF2_HASH
    iterations: int = DEFAULT_PBKDF2_ITERATIONS
    salt_length: int = DEFAULT_SALT_LEN
    memory_cost_kib: int | None = None
    parallelism: int | None = None


class KeyHandle:
    """Derived symmetric key.

    A non-extractable handle can be passed to the cipher but refuses to hand
    its raw bytes to calling code. Extractable handles exist for short-lived
    caching only.
    """

    __slots__ = ("_material", "extractable", "algorithm", "size_bits")

    def __init__(
        self,
        material: bytes | bytearray,
        *,
        extractable: bool = False,
        algorithm: str = "AES-GCM",
    ) -> None:
        self._material = SecureBuffer(material)
        self.extractable = extractable
        self.algorithm = algorithm
        self.size_bits = len(material) * 8

    def export(self) -> bytes:
        """Return the raw key bytes; only allowed for extractable handles."""
        if not self.extractable:
            raise KeyNotExtractableError("Key handle is not extractable")
        return self._material.view()

    def _use(self) -> bytes:
        # Cipher-internal accessor.
        if self.destroyed:
            raise ValueError("Key handle has been destroyed")
        return self._material.view()

    @property
    def destroyed(self) -> bool:
        return self._material.wiped

    def destroy(self) -> None:
        """Zero the key material. The handle is unusable afterwards."""
        self._material.wipe()

    def __repr__(self) -> str:
        return f"KeyHandle({self.algorithm}-{self.size_bits}, extractable={self.extractable})"


def generate_salt(length: int = DEFAULT_SALT_LEN) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def supported_hashes() -> tuple[str, ...]:
    return tuple(_PBKDF2_HASHES)


def derive_key(
    password: str,
    salt: bytes,
    params: KeyDerivationParameters,
    key_size_bits: int,
    extractable: bool = False,
) -> KeyHandle:
    """Derive a key from ``password`` and ``salt`` using ``params``.

    Identical inputs always yield identical key bytes; every cost setting is
    taken from ``params`` so keys for older containers can be re-derived.
    """
    if len(salt) != params.salt_length:
        raise ValueError(f"Salt must be {params.salt_length} bytes long, got {len(salt)}")
    if key_size_bits % 8:
        raise ValueError(f"Key size must be a whole number of bytes, got {key_size_bits} bits")

    secret = password.encode("utf-8")
    length = key_size_bits // 8

    if params.function == KDF_PBKDF2:
        algorithm = _PBKDF2_HASHES.get(params.hash)
        if algorithm is None:
            raise UnsupportedFeatureError(f"Unsupported PBKDF2 hash: {params.hash}")
        kdf = PBKDF2HMAC(
            algorithm=algorithm(),
            length=length,
            salt=salt,
            iterations=params.iterations,
        )
        material = kdf.derive(secret)
    elif params.function == KDF_ARGON2ID:
        material = hash_secret_raw(
            secret=secret,
            salt=salt,
            time_cost=params.iterations,
            memory_cost=params.memory_cost_kib or DEFAULT_ARGON2_MEM_COST_KIB,
            parallelism=params.parallelism or DEFAULT_ARGON2_PARALLELISM,
            hash_len=length,
            type=Type.ID,
            version=19,
        )
    else:
        raise UnsupportedFeatureError(f"Unsupported key derivation function: {params.function}")

    return KeyHandle(material, extractable=extractable)


def recommended_params(function: str = KDF_PBKDF2) -> KeyDerivationParameters:
    """Return recommended default parameters for ``function``."""
    if function == KDF_ARGON2ID:
        return KeyDerivationParameters(
            function=KDF_ARGON2ID,
            hash=ARGON2_HASH,
            iterations=DEFAULT_ARGON2_TIME_COST,
            salt_length=DEFAULT_SALT_LEN,
            memory_cost_kib=DEFAULT_ARGON2_MEM_COST_KIB,
            parallelism=DEFAULT_ARGON2_PARALLELISM,
        )
    if function == KDF_PBKDF2:
        return KeyDerivationParameters()
    raise UnsupportedFeatureError(f"Unsupported key derivation function: {function}")
