"""Encode and decode locked containers.

``decode`` returns ``None`` when the password is wrong or the ciphertext was
altered; the two cases cannot be told apart. Structural damage raises
:class:`~locknote.errors.ContainerFormatError`.
"""
from __future__ import annotations

import logging

from locknote.config import ENV_PBKDF2_ITERATIONS, pbkdf2_iterations_from_env
from locknote.container.format import (
    DEFAULT_ENCRYPTION_PARAMS,
    FORMAT_TAG,
    FORMAT_VERSION,
    KEY_TYPE_PASSWORD,
    Container,
    EncryptionParameters,
    pack_data,
    parse,
)
from locknote.container.keymgmt import get_provider, validate_params, validate_stored_params
from locknote.crypto.aead import AesGcmCipher, generate_nonce
from locknote.crypto.kdf import KeyHandle, generate_salt
from locknote.errors import AuthenticationFailure, ContainerFormatError, InvalidPassword, MigrationError

logger = logging.getLogger(__name__)


def default_encryption_params() -> EncryptionParameters:
    """Parameters for newly written containers, honoring the iteration override."""
    iterations = pbkdf2_iterations_from_env()
    if iterations is None:
        return DEFAULT_ENCRYPTION_PARAMS
    logger.debug("Using %d PBKDF2 iterations from %s", iterations, ENV_PBKDF2_ITERATIONS)
    return DEFAULT_ENCRYPTION_PARAMS.with_iterations(iterations)


def _as_container(container: Container | str | bytes) -> Container:
    if isinstance(container, Container):
        return container
    return parse(container)


def encrypt_text(
    plaintext: str,
    password: str,
    params: EncryptionParameters,
    key_type: str = KEY_TYPE_PASSWORD,
) -> str:
    """Encrypt ``plaintext`` and return the base64 ``data`` field.

    A fresh salt and nonce are drawn on every call.
    """
    validate_params(params)
    nonce = generate_nonce(params.iv_length)
    salt = generate_salt(params.salt_length)
    key = get_provider(key_type).derive_key(password, salt, params, extractable=False)
    try:
        ciphertext = AesGcmCipher.encrypt(plaintext.encode("utf-8"), key, nonce)
    finally:
        key.destroy()
    return pack_data(nonce, salt, ciphertext)


def _open(container: Container, key: KeyHandle) -> str | None:
    nonce, _salt, ciphertext = container.unpack()
    try:
        raw = AesGcmCipher.decrypt(ciphertext, key, nonce)
    except AuthenticationFailure:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        # Authenticated bytes that are not text were never written by encode.
        raise ContainerFormatError("Decrypted content is not UTF-8 text") from exc


def encode(
    plaintext: str,
    password: str,
    hint: str = "",
    *,
    params: EncryptionParameters | None = None,
) -> str:
    """Encrypt ``plaintext`` into a current-format container string."""
    params = params or default_encryption_params()
    container = Container(
        format=FORMAT_TAG,
        version=FORMAT_VERSION,
        encryption=params,
        key_type=KEY_TYPE_PASSWORD,
        hint=hint,
        data=encrypt_text(plaintext, password, params),
    )
    return container.to_json()


def derive_key_from_data(
    container: Container | str | bytes,
    password: str,
    extractable: bool = False,
) -> KeyHandle | None:
    """Derive the key for the salt stored in ``container``.

    Returns ``None`` when the data blob is too short to hold a salt.
    """
    parsed = _as_container(container)
    params = validate_stored_params(parsed.encryption)
    try:
        _nonce, salt, _ciphertext = parsed.unpack()
    except ContainerFormatError:
        return None
    return get_provider(parsed.key_type).derive_key(password, salt, params, extractable)


def decode(container: Container | str | bytes, password: str) -> str | None:
    """Decrypt ``container`` with ``password``.

    Returns the plaintext, or ``None`` if authentication fails.
    """
    parsed = _as_container(container)
    params = validate_stored_params(parsed.encryption)
    _nonce, salt, _ciphertext = parsed.unpack()
    key = get_provider(parsed.key_type).derive_key(password, salt, params, extractable=False)
    try:
        return _open(parsed, key)
    finally:
        key.destroy()


def decode_with_key(container: Container | str | bytes, key: KeyHandle) -> str | None:
    """Decrypt ``container`` with an already derived key for its salt."""
    parsed = _as_container(container)
    validate_stored_params(parsed.encryption)
    return _open(parsed, key)


def migrate(container: Container | str | bytes, password: str) -> str | None:
    """Re-encode ``container`` under current default parameters.

    The plaintext and hint are preserved; salt and nonce are regenerated.
    Returns ``None`` for a wrong password. Raises :class:`MigrationError` if
    re-encoding fails.
    """
    parsed = _as_container(container)
    plaintext = decode(parsed, password)
    if plaintext is None:
        return None
    try:
        migrated = encode(plaintext, password, parsed.hint)
    except (ContainerFormatError, ValueError) as exc:
        raise MigrationError(f"Could not re-encode container: {exc}") from exc
    logger.info(
        "Migrated container from %s v%d to %s v%d",
        parsed.format,
        parsed.version,
        FORMAT_TAG,
        FORMAT_VERSION,
    )
    return migrated


def change_password(
    container: Container | str | bytes,
    old_password: str,
    new_password: str,
    hint: str | None = None,
) -> str:
    """Re-encrypt ``container`` under ``new_password``.

    The hint is kept unless a new one is given. Raises
    :class:`InvalidPassword` if ``old_password`` does not decrypt it.
    """
    parsed = _as_container(container)
    plaintext = decode(parsed, old_password)
    if plaintext is None:
        raise InvalidPassword("Current password does not decrypt the container")
    return encode(plaintext, new_password, parsed.hint if hint is None else hint)


__all__ = [
    "change_password",
    "decode",
    "decode_with_key",
    "default_encryption_params",
    "derive_key_from_data",
    "encode",
    "encrypt_text",
    "migrate",
]
