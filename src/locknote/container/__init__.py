"""Public container API re-exported for external users.

The objects listed in ``__all__`` form the supported public surface for
Python consumers. Everything else in :mod:`locknote.container` is considered
internal and may change without notice.
"""
from __future__ import annotations

from locknote.container.codec import (
    change_password,
    decode,
    decode_with_key,
    default_encryption_params,
    derive_key_from_data,
    encode,
    encrypt_text,
    migrate,
)
from locknote.container.document import DocumentOpener, OpenedDocument, load_document, save_document
from locknote.container.format import (
    DEFAULT_ENCRYPTION_PARAMS,
    FORMAT_TAG,
    FORMAT_VERSION,
    KEY_TYPE_PASSWORD,
    LEGACY_FORMAT_TAG,
    LEGACY_FORMAT_VERSION,
    LOCKED_EXTENSION,
    PENDING_FORMAT_TAG,
    Container,
    EncryptionParameters,
    create_pending,
    is_container,
    is_pending,
    needs_migration,
    parse,
)
from locknote.container.keymgmt import (
    KeyProvider,
    PasswordKeyProvider,
    get_provider,
    register_provider,
    resolve_encryption_params,
)
from locknote.container.storage import atomic_write_text, migrate_file, read_container_text
from locknote.crypto.kdf import KeyDerivationParameters

__all__ = [
    "Container",
    "DEFAULT_ENCRYPTION_PARAMS",
    "DocumentOpener",
    "EncryptionParameters",
    "FORMAT_TAG",
    "FORMAT_VERSION",
    "KEY_TYPE_PASSWORD",
    "KeyDerivationParameters",
    "KeyProvider",
    "LEGACY_FORMAT_TAG",
    "LEGACY_FORMAT_VERSION",
    "LOCKED_EXTENSION",
    "OpenedDocument",
    "PENDING_FORMAT_TAG",
    "PasswordKeyProvider",
    "atomic_write_text",
    "change_password",
    "create_pending",
    "decode",
    "decode_with_key",
    "default_encryption_params",
    "derive_key_from_data",
    "encode",
    "encrypt_text",
    "get_provider",
    "is_container",
    "is_pending",
    "load_document",
    "migrate",
    "migrate_file",
    "needs_migration",
    "parse",
    "read_container_text",
    "register_provider",
    "resolve_encryption_params",
    "save_document",
]
