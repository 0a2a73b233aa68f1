"""Custom exceptions for Locknote."""


class LocknoteError(Exception):
    """Base exception for Locknote."""


class ContainerFormatError(LocknoteError):
    """Stored content is not a well-formed container."""


class PendingContainerError(ContainerFormatError):
    """Container is a placeholder that has no ciphertext yet."""


class UnsupportedFeatureError(ContainerFormatError):
    """Container names an algorithm or key type this build cannot use."""


class EmptyContainerError(LocknoteError):
    """Stored content is empty."""


class MigrationError(LocknoteError):
    """Rewriting a container into the current format failed."""


class InvalidPassword(LocknoteError):
    """Password does not decrypt the container."""


class AuthenticationFailure(LocknoteError):
    """AEAD tag verification failed (wrong key or damaged ciphertext)."""


class KeyNotExtractableError(LocknoteError):
    """Raw key material was requested from a non-extractable key handle."""
