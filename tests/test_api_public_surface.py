from __future__ import annotations

from pathlib import Path

import locknote.container as container_api
from locknote.container import (
    DocumentOpener,
    atomic_write_text,
    encode,
    load_document,
    migrate_file,
    read_container_text,
    save_document,
)
from locknote.session import SessionCache


def test_all_exports_resolve() -> None:
    for name in container_api.__all__:
        assert hasattr(container_api, name), name


def test_public_round_trip(tmp_path: Path) -> None:
    note = tmp_path / "secret.locked"
    atomic_write_text(note, save_document("top secret", "pw", "hint"))

    assert load_document(read_container_text(note), "pw") == "top secret"
    assert migrate_file(note, "pw") is False


def test_public_opener_flow(tmp_path: Path) -> None:
    note = tmp_path / "a.locked"
    atomic_write_text(note, encode("first draft", "pw"))

    with SessionCache() as cache:
        opener = DocumentOpener(cache, lambda hint: "pw")
        doc = opener.open(str(note), read_container_text(note))
        assert doc is not None
        updated = opener.save(str(note), doc.plaintext + "\nsecond draft")
        assert updated is not None
        atomic_write_text(note, updated)

    assert load_document(read_container_text(note), "pw") == "first draft\nsecond draft"
