"""Runtime configuration: session retention settings and KDF cost overrides.

Values can be passed explicitly or read from the environment:

    LOCKNOTE_SESSION_MODE       session-password | timed-password | keys-only | no-storage
    LOCKNOTE_SESSION_TIMEOUT    minutes, 0 keeps the password until shutdown
    LOCKNOTE_TIMED_WINDOW       seconds a password is kept in timed-password mode
    LOCKNOTE_PBKDF2_ITERATIONS  iteration count for newly written containers
"""
from __future__ import annotations

import logging
import os
from enum import Enum
from typing import Annotated, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

logger = logging.getLogger(__name__)

ENV_SESSION_MODE = "LOCKNOTE_SESSION_MODE"
ENV_SESSION_TIMEOUT = "LOCKNOTE_SESSION_TIMEOUT"
ENV_TIMED_WINDOW = "LOCKNOTE_TIMED_WINDOW"
ENV_PBKDF2_ITERATIONS = "LOCKNOTE_PBKDF2_ITERATIONS"

DEFAULT_SESSION_TIMEOUT_MINUTES = 30
DEFAULT_TIMED_WINDOW_SECONDS = 60

_ENV_FIELDS = {
    ENV_SESSION_MODE: "mode",
    ENV_SESSION_TIMEOUT: "session_timeout_minutes",
    ENV_TIMED_WINDOW: "timed_password_window_seconds",
}

_iterations_adapter = TypeAdapter(Annotated[int, Field(gt=0)])


class SessionMode(str, Enum):
    """Retention policy of the session cache."""

    SESSION_PASSWORD = "session-password"
    TIMED_PASSWORD = "timed-password"
    KEYS_ONLY = "keys-only"
    NO_STORAGE = "no-storage"

    @property
    def stores_passwords(self) -> bool:
        return self in (SessionMode.SESSION_PASSWORD, SessionMode.TIMED_PASSWORD)


class SessionSettings(BaseModel):
    """Validated session cache configuration."""

    model_config = ConfigDict(frozen=True)

    mode: SessionMode = SessionMode.SESSION_PASSWORD
    session_timeout_minutes: float = Field(default=DEFAULT_SESSION_TIMEOUT_MINUTES, ge=0)
    timed_password_window_seconds: float = Field(default=DEFAULT_TIMED_WINDOW_SECONDS, gt=0)

    @field_validator("mode", mode="before")
    @classmethod
    def validate_mode(cls, v: object) -> object:
        """Reject unknown mode names with the list of accepted ones."""
        choices = [m.value for m in SessionMode]
        if isinstance(v, str) and not isinstance(v, SessionMode) and v not in choices:
            raise ValueError(f"Unknown session mode {v!r}; expected one of {', '.join(choices)}")
        return v

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SessionSettings:
        """Create settings from ``LOCKNOTE_*`` variables, defaulting the rest."""
        env = os.environ if environ is None else environ
        values = {field: env[name] for name, field in _ENV_FIELDS.items() if env.get(name)}
        if values:
            logger.debug("Session settings from environment: %s", sorted(values))
        return cls.model_validate(values)


def pbkdf2_iterations_from_env(environ: Mapping[str, str] | None = None) -> int | None:
    env = os.environ if environ is None else environ
    raw = env.get(ENV_PBKDF2_ITERATIONS)
    if not raw:
        return None
    return _iterations_adapter.validate_python(raw)
