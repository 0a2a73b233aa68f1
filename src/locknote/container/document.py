"""Load/save entry points for hosts that edit locked notes.

A host hands over raw stored content and gets plaintext back, or hands over
plaintext and gets a container string to persist. :class:`DocumentOpener`
adds the session-cache aware open flow: cached password, then cached key,
then prompting.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from locknote.config import SessionMode
from locknote.container.codec import decode, decode_with_key, derive_key_from_data, encode
from locknote.container.format import Container, EncryptionParameters, is_container, parse
from locknote.errors import EmptyContainerError
from locknote.session import SessionCache

logger = logging.getLogger(__name__)

PasswordPrompt = Callable[[str], "str | None"]


def load_document(raw: str | bytes, password: str) -> str | None:
    """Return the plaintext of ``raw``, or ``None`` for a wrong password.

    Raises :class:`EmptyContainerError` for empty content,
    :class:`PendingContainerError` for a placeholder and
    :class:`ContainerFormatError` for anything that is not a container.
    """
    if not raw or not raw.strip():
        raise EmptyContainerError("Container is empty")
    return decode(parse(raw), password)


def save_document(
    plaintext: str,
    password: str,
    hint: str = "",
    *,
    params: EncryptionParameters | None = None,
) -> str:
    """Return the container string to persist for ``plaintext``.

    Content that already is a locked container is refused rather than
    encrypted twice.
    """
    if is_container(plaintext):
        raise ValueError("Refusing to encrypt content that is already a locked container")
    return encode(plaintext, password, hint, params=params)


@dataclass(frozen=True)
class OpenedDocument:
    path: str
    plaintext: str
    # None when the document was opened with a cached key only.
    password: str | None
    container: Container

    @property
    def hint(self) -> str:
        return self.container.hint


class DocumentOpener:
    """Open and save locked documents through a :class:`SessionCache`.

    ``prompt`` is called with the container hint and returns a password, or
    ``None`` when the user cancels.
    """

    def __init__(self, cache: SessionCache, prompt: PasswordPrompt, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.cache = cache
        self.prompt = prompt
        self.max_attempts = max_attempts

    def open(self, path: str, raw: str | bytes) -> OpenedDocument | None:
        """Decrypt ``raw`` stored at ``path``.

        Returns ``None`` if the user cancels or every attempt fails. Format
        problems propagate as exceptions.
        """
        if not raw or not raw.strip():
            raise EmptyContainerError(f"{path} is empty")
        container = parse(raw)

        password = self.cache.get_password(path)
        if password is not None:
            plaintext = decode(container, password)
            if plaintext is not None:
                logger.debug("Opened %s with a cached password", path)
                return OpenedDocument(path, plaintext, password, container)
            # A password shared from another file does not fit this one.
            logger.debug("Cached password does not open %s", path)

        if self.cache.mode is SessionMode.KEYS_ONLY:
            key = self.cache.get_key(path)
            if key is not None:
                plaintext = decode_with_key(container, key)
                if plaintext is not None:
                    logger.debug("Opened %s with a cached key", path)
                    return OpenedDocument(path, plaintext, None, container)

        for attempt in range(1, self.max_attempts + 1):
            password = self.prompt(container.hint)
            if password is None:
                logger.info("Opening %s cancelled", path)
                return None
            plaintext = decode(container, password)
            if plaintext is not None:
                self._remember(path, password, container)
                return OpenedDocument(path, plaintext, password, container)
            logger.warning("Wrong password for %s (attempt %d of %d)", path, attempt, self.max_attempts)

        logger.warning("Giving up on %s after %d attempts", path, self.max_attempts)
        return None

    def _remember(self, path: str, password: str, container: Container) -> None:
        if self.cache.mode is SessionMode.KEYS_ONLY:
            key = derive_key_from_data(container, password)
            if key is not None:
                self.cache.put(path, password, container.hint, key)
        else:
            self.cache.put(path, password, container.hint)

    def save(
        self,
        path: str,
        plaintext: str,
        *,
        password: str | None = None,
        hint: str | None = None,
    ) -> str | None:
        """Encrypt ``plaintext`` for ``path``.

        Uses ``password`` or else the cached one. Returns ``None`` when no
        password is known, in which case nothing must be written.
        """
        password = password or self.cache.get_password(path)
        if not password:
            logger.debug("No password known for %s; not saving", path)
            return None
        return save_document(plaintext, password, self.cache.get_hint(path) if hint is None else hint)

    def close(self, path: str) -> None:
        """Forget ``path`` when the cache is not supposed to outlive the document."""
        if self.cache.mode is SessionMode.NO_STORAGE:
            self.cache.clear_file(path)


__all__ = ["DocumentOpener", "OpenedDocument", "PasswordPrompt", "load_document", "save_document"]
