"""Key providers and encryption parameter policy."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Protocol, runtime_checkable

from locknote.container.format import (
    DEFAULT_ENCRYPTION_PARAMS,
    KEY_TYPE_PASSWORD,
    EncryptionParameters,
)
from locknote.crypto.aead import ALGORITHM, KEY_SIZES_BITS, NONCE_LEN_MAX, NONCE_LEN_MIN
from locknote.crypto.kdf import (
    KDF_ARGON2ID,
    KDF_PBKDF2,
    KeyHandle,
    derive_key,
    recommended_params,
    supported_hashes,
)
from locknote.errors import ContainerFormatError, UnsupportedFeatureError

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS_MIN = 1_000
PBKDF2_ITERATIONS_MAX = 10_000_000
ARGON_TIME_MIN = 1
ARGON_TIME_MAX = 10
ARGON_MEM_MIN_KIB = 8
ARGON_MEM_MAX_KIB = 2 * 1024 * 1024
ARGON_PARALLELISM_MIN = 1
ARGON_PARALLELISM_MAX = 8
SALT_LEN_MIN = 8
SALT_LEN_MAX = 64
# Hard limits of the Argon2 reference implementation.
ARGON_SALT_LEN_MIN = 8


@runtime_checkable
class KeyProvider(Protocol):
    """Turns a secret into a key for a given container salt and parameters."""

    key_type: str

    def derive_key(
        self,
        secret: str,
        salt: bytes,
        params: EncryptionParameters,
        extractable: bool = False,
    ) -> KeyHandle: ...


class PasswordKeyProvider:
    """Password-based key provider."""

    key_type = KEY_TYPE_PASSWORD

    def derive_key(
        self,
        secret: str,
        salt: bytes,
        params: EncryptionParameters,
        extractable: bool = False,
    ) -> KeyHandle:
        return derive_key(secret, salt, params.key_derivation, params.key_size, extractable)


_PROVIDERS: dict[str, KeyProvider] = {KEY_TYPE_PASSWORD: PasswordKeyProvider()}


def register_provider(provider: KeyProvider) -> None:
    """Make ``provider`` available for containers tagged with its key type."""
    if not isinstance(provider, KeyProvider):
        raise TypeError(f"{provider!r} does not implement KeyProvider")
    _PROVIDERS[provider.key_type] = provider


def get_provider(key_type: str) -> KeyProvider:
    provider = _PROVIDERS.get(key_type)
    if provider is None:
        raise UnsupportedFeatureError(f"Unsupported key type: {key_type!r}")
    return provider


def _check_range(name: str, value: int, low: int, high: int, error: type[Exception]) -> None:
    if not (low <= value <= high):
        raise error(f"{name} must be between {low} and {high}, got {value}")


def validate_params(
    params: EncryptionParameters,
    *,
    range_error: type[Exception] = UnsupportedFeatureError,
    enforce_minimums: bool = True,
) -> EncryptionParameters:
    """Reject parameters this build cannot or will not use.

    With ``enforce_minimums`` off only the upper caps and the hard limits of
    the primitives apply, so weak historical settings still pass.
    """
    if params.algorithm != ALGORITHM:
        raise UnsupportedFeatureError(f"Unsupported algorithm: {params.algorithm!r}")
    if params.key_size not in KEY_SIZES_BITS:
        raise UnsupportedFeatureError(f"Unsupported key size: {params.key_size}")
    _check_range("ivLength", params.iv_length, NONCE_LEN_MIN, NONCE_LEN_MAX, range_error)

    kd = params.key_derivation
    salt_min = SALT_LEN_MIN if enforce_minimums else 1
    iterations_min = PBKDF2_ITERATIONS_MIN if enforce_minimums else 1
    _check_range("saltLength", kd.salt_length, salt_min, SALT_LEN_MAX, range_error)
    if kd.function == KDF_PBKDF2:
        if kd.hash not in supported_hashes():
            raise UnsupportedFeatureError(f"Unsupported PBKDF2 hash: {kd.hash!r}")
        _check_range("PBKDF2 iterations", kd.iterations, iterations_min, PBKDF2_ITERATIONS_MAX, range_error)
    elif kd.function == KDF_ARGON2ID:
        _check_range("Argon2 saltLength", kd.salt_length, ARGON_SALT_LEN_MIN, SALT_LEN_MAX, range_error)
        _check_range("Argon2 time cost", kd.iterations, ARGON_TIME_MIN, ARGON_TIME_MAX, range_error)
        if kd.memory_cost_kib is not None:
            _check_range("Argon2 memory", kd.memory_cost_kib, ARGON_MEM_MIN_KIB, ARGON_MEM_MAX_KIB, range_error)
        if kd.parallelism is not None:
            _check_range("Argon2 parallelism", kd.parallelism, ARGON_PARALLELISM_MIN, ARGON_PARALLELISM_MAX, range_error)
    else:
        raise UnsupportedFeatureError(f"Unsupported key derivation function: {kd.function!r}")
    return params


def validate_stored_params(params: EncryptionParameters) -> EncryptionParameters:
    """Validate parameters read from a container.

    Older containers written with weaker settings are accepted. Values past
    the upper caps mean the container is damaged or hostile; unknown
    algorithms stay :class:`UnsupportedFeatureError`.
    """
    return validate_params(params, range_error=ContainerFormatError, enforce_minimums=False)


def resolve_encryption_params(
    *,
    kdf: str | None = None,
    iterations: int | None = None,
    hash_name: str | None = None,
    base: EncryptionParameters | None = None,
) -> EncryptionParameters:
    """Build validated parameters for new containers using overrides when provided."""
    params = base or DEFAULT_ENCRYPTION_PARAMS
    if kdf is not None and kdf.lower() != params.key_derivation.function.lower():
        function = KDF_ARGON2ID if kdf.lower() == KDF_ARGON2ID.lower() else kdf.upper()
        params = replace(params, key_derivation=recommended_params(function))
    if iterations is not None:
        params = params.with_iterations(iterations)
    if hash_name is not None:
        params = replace(params, key_derivation=replace(params.key_derivation, hash=hash_name.upper()))
    logger.debug(
        "Resolved encryption parameters: %s/%s, %d iterations",
        params.key_derivation.function,
        params.key_derivation.hash,
        params.key_derivation.iterations,
    )
    return validate_params(params)


__all__ = [
    "KeyProvider",
    "PasswordKeyProvider",
    "get_provider",
    "register_provider",
    "resolve_encryption_params",
    "validate_params",
    "validate_stored_params",
]
