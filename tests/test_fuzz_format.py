"""Property-based fuzz tests for container parsing."""

from __future__ import annotations

import json

import pytest
from hypothesis import given, settings, strategies as st

from locknote.container.codec import decode
from locknote.container.format import (
    DEFAULT_ENCRYPTION_PARAMS,
    FORMAT_TAG,
    PENDING_FORMAT_TAG,
    is_container,
    is_pending,
    parse,
)
from locknote.errors import ContainerFormatError, EmptyContainerError

_json_scalars = st.none() | st.booleans() | st.integers() | st.floats(allow_nan=False) | st.text(max_size=20)
_json_values = st.recursive(
    _json_scalars,
    lambda children: st.lists(children, max_size=4) | st.dictionaries(st.text(max_size=8), children, max_size=4),
    max_leaves=12,
)


@given(raw=st.binary(max_size=256))
def test_parse_never_raises_unexpected_errors_on_bytes(raw: bytes) -> None:
    try:
        parse(raw)
    except (ContainerFormatError, EmptyContainerError):
        pass
    # Detection never raises.
    is_container(raw)
    is_pending(raw)


@given(obj=_json_values)
def test_arbitrary_json_is_rejected_or_parsed(obj: object) -> None:
    raw = json.dumps(obj)
    try:
        container = parse(raw)
    except ContainerFormatError:
        assert not is_container(raw) or isinstance(obj, dict)
    else:
        assert container.format in (FORMAT_TAG, "file-encrypt-plus")


@st.composite
def _mutated_container(draw: st.DrawFn) -> str:
    doc = {
        "format": FORMAT_TAG,
        "version": 2,
        "encryption": DEFAULT_ENCRYPTION_PARAMS.with_iterations(1000).to_dict(),
        "keyType": "password",
        "hint": "",
        "data": "",
    }
    field = draw(st.sampled_from(["version", "keyType", "hint", "data", "encryption", "keyDerivation"]))
    value = draw(_json_values)
    if field == "keyDerivation":
        doc["encryption"]["keyDerivation"] = value
    else:
        doc[field] = value
    return json.dumps(doc)


@settings(deadline=None)
@given(raw=_mutated_container())
def test_mutated_fields_fail_as_format_errors(raw: str) -> None:
    # No valid ciphertext exists in any of these, so the only outcomes are a
    # format error or a failed authentication.
    try:
        assert decode(raw, "pw") is None
    except ContainerFormatError:
        pass


@given(version=st.integers(min_value=0, max_value=10))
def test_pending_is_never_a_container(version: int) -> None:
    raw = json.dumps({"format": PENDING_FORMAT_TAG, "version": version})
    assert is_pending(raw)
    assert not is_container(raw)
    with pytest.raises(ContainerFormatError):
        parse(raw)
