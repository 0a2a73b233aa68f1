from __future__ import annotations

import base64
import json

import pytest

from locknote.container.format import (
    DEFAULT_ENCRYPTION_PARAMS,
    FORMAT_TAG,
    FORMAT_VERSION,
    LEGACY_FORMAT_TAG,
    PENDING_FORMAT_TAG,
    Container,
    EncryptionParameters,
    create_pending,
    is_container,
    is_pending,
    needs_migration,
    pack_data,
    parse,
)
from locknote.crypto.kdf import KeyDerivationParameters
from locknote.errors import ContainerFormatError, EmptyContainerError, PendingContainerError


def _document(**overrides: object) -> dict:
    doc = {
        "format": FORMAT_TAG,
        "version": FORMAT_VERSION,
        "encryption": DEFAULT_ENCRYPTION_PARAMS.to_dict(),
        "keyType": "password",
        "hint": "battery",
        "data": pack_data(b"n" * 16, b"s" * 16, b"c" * 20),
    }
    doc.update(overrides)
    return doc


def test_encryption_parameters_wire_names() -> None:
    assert DEFAULT_ENCRYPTION_PARAMS.to_dict() == {
        "algorithm": "AES-GCM",
        "keySize": 256,
        "ivLength": 16,
        "keyDerivation": {
            "function": "PBKDF2",
            "hash": "SHA-512",
            "iterations": 210000,
            "saltLength": 16,
        },
    }


def test_argon2_fields_round_trip() -> None:
    params = EncryptionParameters(
        key_derivation=KeyDerivationParameters(
            function="Argon2id", hash="BLAKE2b", iterations=3, memory_cost_kib=65536, parallelism=1
        )
    )
    raw = params.to_dict()
    assert raw["keyDerivation"]["memoryCost"] == 65536
    assert EncryptionParameters.from_dict(raw) == params


def test_pbkdf2_with_argon_fields_rejected() -> None:
    raw = DEFAULT_ENCRYPTION_PARAMS.to_dict()
    raw["keyDerivation"]["memoryCost"] = 1024
    with pytest.raises(ContainerFormatError):
        EncryptionParameters.from_dict(raw)


def test_to_json_field_order_and_indent() -> None:
    container = parse(json.dumps(_document()))
    text = container.to_json()
    assert list(json.loads(text)) == ["format", "version", "encryption", "keyType", "hint", "data"]
    assert text.startswith('{\n  "format"')


def test_parse_current_and_legacy() -> None:
    current = parse(json.dumps(_document()))
    assert current.format == FORMAT_TAG
    assert current.hint == "battery"
    assert current.encryption == DEFAULT_ENCRYPTION_PARAMS
    assert not needs_migration(current)

    legacy = parse(json.dumps(_document(format=LEGACY_FORMAT_TAG, version=1)))
    assert legacy.is_legacy
    assert needs_migration(legacy)


def test_parse_accepts_bytes_and_missing_hint() -> None:
    doc = _document()
    del doc["hint"]
    assert parse(json.dumps(doc).encode("utf-8")).hint == ""
    assert parse(json.dumps(_document(hint=None))).hint == ""


def test_older_version_of_current_tag_needs_migration() -> None:
    assert needs_migration(parse(json.dumps(_document(version=1))))
    assert not needs_migration(parse(json.dumps(_document(version=3))))


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        json.dumps({"format": "something-else", "version": 2}),
        json.dumps(_document(version="2")),
        json.dumps(_document(version=True)),
        json.dumps(_document(keyType=1)),
        json.dumps(_document(hint=5)),
        json.dumps(_document(encryption="AES")),
        json.dumps({k: v for k, v in _document().items() if k != "data"}),
        b"\xff\xfe",
    ],
)
def test_parse_rejects_malformed(raw: str | bytes) -> None:
    with pytest.raises(ContainerFormatError):
        parse(raw)
    assert not is_container(raw)


@pytest.mark.parametrize("raw", ["", "   \n", b""])
def test_empty_input_is_its_own_failure(raw: str | bytes) -> None:
    with pytest.raises(EmptyContainerError):
        parse(raw)
    assert not is_container(raw)


def test_pending_container_is_a_third_state() -> None:
    pending = create_pending()
    assert json.loads(pending) == {"format": PENDING_FORMAT_TAG, "version": 2}
    assert is_pending(pending)
    assert not is_container(pending)
    with pytest.raises(PendingContainerError):
        parse(pending)
    assert not is_pending(json.dumps(_document()))


def test_unpack_uses_stored_lengths() -> None:
    params = EncryptionParameters(iv_length=12, key_derivation=KeyDerivationParameters(salt_length=32))
    data = pack_data(b"N" * 12, b"S" * 32, b"ciphertext")
    container = Container(FORMAT_TAG, FORMAT_VERSION, params, "password", "", data)
    nonce, salt, ciphertext = container.unpack()
    assert nonce == b"N" * 12
    assert salt == b"S" * 32
    assert ciphertext == b"ciphertext"


def test_undersized_blob_is_format_error() -> None:
    data = base64.b64encode(b"x" * 32).decode("ascii")
    container = parse(json.dumps(_document(data=data)))
    with pytest.raises(ContainerFormatError):
        container.unpack()


def test_invalid_base64_is_format_error() -> None:
    container = parse(json.dumps(_document(data="!!not base64!!")))
    with pytest.raises(ContainerFormatError):
        container.unpack()
