"""Pydantic models describing the session engine configuration document."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerSettings(BaseModel):
    """Where and how to reach the IMAP server."""

    model_config = ConfigDict(extra="forbid")

    host: Optional[str] = None
    port: int = Field(default=143, gt=0, lt=65536)
    ssl: bool = False
    verify_certificate: bool = True


class SessionSettings(BaseModel):
    """Protocol level defaults applied to every session."""

    model_config = ConfigDict(extra="forbid")

    default_mailbox: str = "INBOX"
    tag_prefix: str = "xm"
    auth_method: Literal["login", "plain", "cram-md5", "xoauth2"] = "login"

    @field_validator("default_mailbox")
    @classmethod
    def _non_empty_mailbox(cls, value: str) -> str:
        if not value:
            raise ValueError("default_mailbox must not be empty")
        return value

    @field_validator("tag_prefix")
    @classmethod
    def _atom_prefix(cls, value: str) -> str:
        if not value or not value.isalnum():
            raise ValueError("tag_prefix must be a non-empty alphanumeric atom")
        return value


class IdleSettings(BaseModel):
    """Push-mode (IDLE) timing."""

    model_config = ConfigDict(extra="forbid")

    keepalive_interval_s: float = Field(default=600.0, gt=0)
    join_timeout_s: float = Field(default=5.0, gt=0)


class LoggingSettings(BaseModel):
    """Structured log output controls."""

    model_config = ConfigDict(extra="forbid")

    level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``config.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    server: ServerSettings = Field(default_factory=ServerSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    idle: IdleSettings = Field(default_factory=IdleSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
