"""Error taxonomy raised by the IMAP session engine.

What:
  Define the exception hierarchy surfaced by every public session operation:
  transport failures, protocol violations, server rejections (with a distinct
  credential subtype), missing authentication, and missing capabilities.

Why:
  Callers need to tell infrastructure problems (a dropped socket) apart from
  server-side refusals and from programming mistakes such as issuing commands
  before login. A single root class keeps ``except`` clauses short.

How:
  Every error derives from :class:`ImapSessionError`. Rejections carry the
  tagged status word and the free text returned by the server so that logs and
  callers can report the server's own explanation.

Interfaces:
  :class:`ImapSessionError`, :class:`TransportError`,
  :class:`ProtocolViolation`, :class:`ServerRejected`,
  :class:`InvalidCredentials`, :class:`NotAuthenticated`,
  :class:`CapabilityUnsupported`, :class:`MessageNotFound`.

Invariants & Safety:
  - None of these errors is retried by the engine; they propagate to the
    caller synchronously.
  - Credential material is never embedded in exception messages.
"""
from __future__ import annotations

from typing import Optional


class ImapSessionError(Exception):
    """Base class for all session engine failures."""


class TransportError(ImapSessionError):
    """The byte stream failed or closed while reading or writing."""


class ProtocolViolation(ImapSessionError):
    """A server line could not be classified or had an unexpected shape.

    What:
      Signals that the server sent something the framing rules do not allow:
      an unknown line prefix, a tagged line bearing a foreign tag, a missing
      continuation, or a malformed literal.

    Why:
      Skipping unparseable lines silently would desynchronise the tag-based
      framing and corrupt every subsequent command.
    """

    def __init__(self, message: str, line: Optional[str] = None) -> None:
        super().__init__(message if line is None else f"{message}: {line!r}")
        self.line = line


class ServerRejected(ImapSessionError):
    """A tagged completion reported ``NO`` or ``BAD``.

    Attributes:
      status: Status word of the completion (``NO`` or ``BAD``).
      text: Free text that followed the status word.
      command: Command verb that was rejected, when known.
    """

    def __init__(self, status: str, text: str, command: Optional[str] = None) -> None:
        prefix = f"{command} " if command else ""
        super().__init__(f"{prefix}{status} {text}".strip())
        self.status = status
        self.text = text
        self.command = command


class InvalidCredentials(ServerRejected):
    """The server refused the supplied credentials during login."""


class NotAuthenticated(ImapSessionError):
    """An operation requiring an authenticated session was attempted early."""

    def __init__(self, message: str = "session is not authenticated") -> None:
        super().__init__(message)


class CapabilityUnsupported(ImapSessionError):
    """The server lacks a capability the requested operation depends on."""

    def __init__(self, capability: str) -> None:
        super().__init__(f"server does not support the {capability} capability")
        self.capability = capability


class MessageNotFound(ImapSessionError):
    """A FETCH for a UID returned no data (the message does not exist)."""

    def __init__(self, uid: int) -> None:
        super().__init__(f"no message with UID {uid}")
        self.uid = uid


__all__ = [
    "ImapSessionError",
    "TransportError",
    "ProtocolViolation",
    "ServerRejected",
    "InvalidCredentials",
    "NotAuthenticated",
    "CapabilityUnsupported",
    "MessageNotFound",
]
