"""
Module: imapsession.__init__

What:
  Aggregate package exports for the IMAP session engine: the session facade,
  its configuration dataclass, the value types returned by operations, and the
  error taxonomy.

Why:
  Callers build a session, subscribe to events, and catch errors; keeping those
  names importable from the package root means they never reach into private
  modules such as the framing reader or the push-mode controller.

Interfaces:
  - ImapSession / ImapConfig: connection facade and settings.
  - EventKind, FetchOptions, MessageFlag, AuthMethod: operation enums.
  - MailboxStatus, MailboxQuota, IdleMessageEvent, IdleErrorEvent: values.
  - ImapSessionError and subclasses: failures surfaced by every operation.
"""

from .errors import (
    CapabilityUnsupported,
    ImapSessionError,
    InvalidCredentials,
    MessageNotFound,
    NotAuthenticated,
    ProtocolViolation,
    ServerRejected,
    TransportError,
)
from .imap.client import ImapConfig, ImapSession
from .imap.sequence import build_sequence_set
from .models import (
    AuthMethod,
    EventKind,
    FetchOptions,
    IdleErrorEvent,
    IdleMessageEvent,
    MailboxQuota,
    MailboxStatus,
    MessageFlag,
)

__all__ = [
    "ImapSession",
    "ImapConfig",
    "build_sequence_set",
    "AuthMethod",
    "EventKind",
    "FetchOptions",
    "MessageFlag",
    "MailboxStatus",
    "MailboxQuota",
    "IdleMessageEvent",
    "IdleErrorEvent",
    "ImapSessionError",
    "TransportError",
    "ProtocolViolation",
    "ServerRejected",
    "InvalidCredentials",
    "NotAuthenticated",
    "CapabilityUnsupported",
    "MessageNotFound",
]
