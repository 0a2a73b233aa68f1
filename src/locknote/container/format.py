"""Container wire format.

A container is a JSON document::

    {
      "format": "advanced-file-encryption",
      "version": 2,
      "encryption": {
        "algorithm": "AES-GCM",
        "keySize": 256,
        "ivLength": 16,
        "keyDerivation": {"function": "PBKDF2", "hash": "SHA-512",
                          "iterations": 210000, "saltLength": 16}
      },
      "keyType": "password",
      "hint": "plaintext hint",
      "data": "base64([nonce][salt][ciphertext + tag])"
    }

Everything except the password needed to decrypt lives in the document, so
any AES-GCM/PBKDF2 implementation can open it. Legacy ``file-encrypt-plus``
containers (version 1) share the same shape. A pending container carries only
``format`` and ``version`` and marks a note that has no password yet.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from typing import Any

from locknote.crypto.aead import ALGORITHM, DEFAULT_NONCE_LEN
from locknote.crypto.kdf import KDF_ARGON2ID, KeyDerivationParameters
from locknote.errors import ContainerFormatError, EmptyContainerError, PendingContainerError

FORMAT_TAG = "advanced-file-encryption"
FORMAT_VERSION = 2
LEGACY_FORMAT_TAG = "file-encrypt-plus"
LEGACY_FORMAT_VERSION = 1
PENDING_FORMAT_TAG = "advanced-file-encryption-pending"

KEY_TYPE_PASSWORD = "password"
LOCKED_EXTENSION = "locked"

RECOGNIZED_FORMAT_TAGS = (FORMAT_TAG, LEGACY_FORMAT_TAG)


@dataclass(frozen=True)
class EncryptionParameters:
    algorithm: str = ALGORITHM
    key_size: int = 256
    iv_length: int = DEFAULT_NONCE_LEN
    key_derivation: KeyDerivationParameters = field(default_factory=KeyDerivationParameters)

    @property
    def salt_length(self) -> int:
        return self.key_derivation.salt_length

    def with_iterations(self, iterations: int) -> EncryptionParameters:
        return replace(self, key_derivation=replace(self.key_derivation, iterations=iterations))

    def to_dict(self) -> dict[str, Any]:
        kd = self.key_derivation
        kd_dict: dict[str, Any] = {
            "function": kd.function,
            "hash": kd.hash,
            "iterations": kd.iterations,
            "saltLength": kd.salt_length,
        }
        if kd.memory_cost_kib is not None:
            kd_dict["memoryCost"] = kd.memory_cost_kib
        if kd.parallelism is not None:
            kd_dict["parallelism"] = kd.parallelism
        return {
            "algorithm": self.algorithm,
            "keySize": self.key_size,
            "ivLength": self.iv_length,
            "keyDerivation": kd_dict,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> EncryptionParameters:
        if not isinstance(raw, dict):
            raise ContainerFormatError("'encryption' must be an object")
        kd_raw = raw.get("keyDerivation")
        if not isinstance(kd_raw, dict):
            raise ContainerFormatError("'encryption.keyDerivation' must be an object")

        function = _require(kd_raw, "function", str, "encryption.keyDerivation")
        memory_cost = _optional_int(kd_raw, "memoryCost")
        parallelism = _optional_int(kd_raw, "parallelism")
        if function != KDF_ARGON2ID and (memory_cost is not None or parallelism is not None):
            raise ContainerFormatError(f"{function} does not take memoryCost/parallelism")

        key_derivation = KeyDerivationParameters(
            function=function,
            hash=_require(kd_raw, "hash", str, "encryption.keyDerivation"),
            iterations=_require(kd_raw, "iterations", int, "encryption.keyDerivation"),
            salt_length=_require(kd_raw, "saltLength", int, "encryption.keyDerivation"),
            memory_cost_kib=memory_cost,
            parallelism=parallelism,
        )
        return cls(
            algorithm=_require(raw, "algorithm", str, "encryption"),
            key_size=_require(raw, "keySize", int, "encryption"),
            iv_length=_require(raw, "ivLength", int, "encryption"),
            key_derivation=key_derivation,
        )


DEFAULT_ENCRYPTION_PARAMS = EncryptionParameters()


@dataclass(frozen=True)
class Container:
    format: str
    version: int
    encryption: EncryptionParameters
    key_type: str
    hint: str
    data: str

    @property
    def is_legacy(self) -> bool:
        return self.format == LEGACY_FORMAT_TAG

    def to_dict(self) -> dict[str, Any]:
        return {
            "format": self.format,
            "version": self.version,
            "encryption": self.encryption.to_dict(),
            "keyType": self.key_type,
            "hint": self.hint,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    def unpack(self) -> tuple[bytes, bytes, bytes]:
        """Split ``data`` into ``(nonce, salt, ciphertext)``.

        Offsets come from this container's own ``ivLength``/``saltLength``.
        """
        try:
            packed = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ContainerFormatError("'data' is not valid base64") from exc

        nonce_len = self.encryption.iv_length
        salt_len = self.encryption.salt_length
        if len(packed) < nonce_len + salt_len + 1:
            raise ContainerFormatError(
                f"'data' too short: {len(packed)} bytes, "
                f"need at least {nonce_len + salt_len + 1}"
            )
        return (
            packed[:nonce_len],
            packed[nonce_len : nonce_len + salt_len],
            packed[nonce_len + salt_len :],
        )


def pack_data(nonce: bytes, salt: bytes, ciphertext: bytes) -> str:
    """Concatenate ``[nonce][salt][ciphertext]`` and base64-encode it."""
    return base64.b64encode(nonce + salt + ciphertext).decode("ascii")


def _require(raw: dict[str, Any], name: str, kind: type, where: str) -> Any:
    if name not in raw:
        raise ContainerFormatError(f"Missing field '{where}.{name}'")
    value = raw[name]
    # bool is an int subclass; a JSON true is never a valid count.
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise ContainerFormatError(f"Field '{where}.{name}' must be {kind.__name__}")
    return value


def _optional_int(raw: dict[str, Any], name: str) -> int | None:
    value = raw.get(name)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ContainerFormatError(f"Field 'encryption.keyDerivation.{name}' must be int")
    return value


def _load_json_object(raw: str | bytes) -> dict[str, Any]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ContainerFormatError("Container is not valid UTF-8") from exc
    if not raw or not raw.strip():
        raise EmptyContainerError("Container is empty")
    try:
        obj = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ContainerFormatError(f"Container is not valid JSON: {exc.msg}") from exc
    if not isinstance(obj, dict):
        raise ContainerFormatError("Container must be a JSON object")
    return obj


def parse(raw: str | bytes) -> Container:
    """Parse container metadata without decrypting.

    Accepts the current and the legacy format tag. Raises
    :class:`EmptyContainerError` for empty input,
    :class:`PendingContainerError` for a placeholder and
    :class:`ContainerFormatError` for anything else that is not a container.
    """
    obj = _load_json_object(raw)
    tag = obj.get("format")
    if tag == PENDING_FORMAT_TAG:
        raise PendingContainerError("Container has not been encrypted yet")
    if tag not in RECOGNIZED_FORMAT_TAGS:
        raise ContainerFormatError(f"Not a locked container: format is {tag!r}")

    hint = obj.get("hint", "")
    if hint is None:
        hint = ""
    if not isinstance(hint, str):
        raise ContainerFormatError("Field 'hint' must be str")

    return Container(
        format=tag,
        version=_require(obj, "version", int, "container"),
        encryption=EncryptionParameters.from_dict(obj.get("encryption")),
        key_type=_require(obj, "keyType", str, "container"),
        hint=hint,
        data=_require(obj, "data", str, "container"),
    )


def _format_tag(raw: str | bytes) -> Any:
    try:
        return _load_json_object(raw).get("format")
    except (ContainerFormatError, EmptyContainerError):
        return None


def is_container(raw: str | bytes) -> bool:
    """True if ``raw`` carries a current or legacy container tag.

    Pending placeholders are not containers.
    """
    return _format_tag(raw) in RECOGNIZED_FORMAT_TAGS


def is_pending(raw: str | bytes) -> bool:
    """True if ``raw`` is a pending placeholder container."""
    return _format_tag(raw) == PENDING_FORMAT_TAG


def create_pending() -> str:
    """Return placeholder content for a note that has no password yet."""
    return json.dumps({"format": PENDING_FORMAT_TAG, "version": FORMAT_VERSION})


def needs_migration(container: Container) -> bool:
    """True for legacy containers and versions older than the current one."""
    return container.format == LEGACY_FORMAT_TAG or container.version < FORMAT_VERSION
