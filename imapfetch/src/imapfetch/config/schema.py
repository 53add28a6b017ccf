"""Pydantic models describing the imapfetch runtime configuration."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ImapSettings(BaseModel):
    """Connection defaults applied when the command line does not override them."""

    model_config = ConfigDict(extra="forbid")

    port: Optional[int] = Field(default=None, gt=0, lt=65536)
    timeout: float = Field(default=60.0, gt=0)


class SyncSettings(BaseModel):
    """Knobs of the mailbox synchronisation loop."""

    model_config = ConfigDict(extra="forbid")

    batch_size: int = Field(default=100, gt=0)
    placeholder_sender: str = "MAILER-DAEMON"
    failure_policy: Literal["continue", "abort"] = "continue"

    @field_validator("placeholder_sender")
    @classmethod
    def _single_token(cls, value: str) -> str:
        if not value or any(ch.isspace() for ch in value) or not value.isascii():
            raise ValueError("placeholder_sender must be a single ASCII token")
        return value


class AuthSettings(BaseModel):
    """Credential retry bounds."""

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, gt=0)
    backoff_seconds: float = Field(default=0.0, ge=0)


class RuntimeConfig(BaseModel):
    """Root of ``imapfetch.yaml``; every section is optional."""

    model_config = ConfigDict(extra="forbid")

    imap: ImapSettings = Field(default_factory=ImapSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
