"""Whole-file container I/O with atomic replacement."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from locknote.container.codec import migrate
from locknote.container.format import needs_migration, parse
from locknote.errors import MigrationError

logger = logging.getLogger(__name__)


def read_container_text(path: Path) -> str:
    """Read stored content as UTF-8 text."""
    with Path(path).open("r", encoding="utf-8") as fh:
        return fh.read()


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` so readers see either old or new content.

    Data goes to a temporary file in the same directory which then replaces
    ``path`` in a single rename.
    """
    path = Path(path)
    temp_file = tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_file.name)
    try:
        with temp_file:
            temp_file.write(text)
            temp_file.flush()
            os.fsync(temp_file.fileno())
        temp_path.replace(path)
    finally:
        temp_path.unlink(missing_ok=True)


def migrate_file(path: Path, password: str) -> bool | None:
    """Rewrite a legacy container at ``path`` in the current format.

    Returns ``True`` when the file was rewritten, ``False`` when it was already
    current and ``None`` when ``password`` does not open it. Any failure to
    re-encode or write raises :class:`MigrationError` and leaves the file as
    it was, so the migration can be retried on the next open.
    """
    path = Path(path)
    try:
        raw = read_container_text(path)
    except OSError as exc:
        raise MigrationError(f"Cannot read {path}: {exc}") from exc

    container = parse(raw)
    if not needs_migration(container):
        return False

    migrated = migrate(container, password)
    if migrated is None:
        return None

    try:
        atomic_write_text(path, migrated)
    except OSError as exc:
        raise MigrationError(f"Cannot write migrated container to {path}: {exc}") from exc
    logger.info("Migrated %s to the current container format", path)
    return True


__all__ = ["atomic_write_text", "migrate_file", "read_container_text"]
