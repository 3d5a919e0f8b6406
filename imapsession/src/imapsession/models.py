"""Value types returned by session operations and carried by push-mode events."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from .imap.client import ImapSession


class AuthMethod(enum.Enum):
    """Login methods understood by :meth:`ImapSession.login`."""

    LOGIN = "login"
    PLAIN = "plain"
    CRAM_MD5 = "cram-md5"
    XOAUTH2 = "xoauth2"


class FetchOptions(enum.Enum):
    """How much of a message :meth:`ImapSession.get_message` retrieves."""

    NORMAL = "normal"
    HEADERS_ONLY = "headers-only"
    TEXT_ONLY = "text-only"
    NO_ATTACHMENTS = "no-attachments"


class MessageFlag(enum.Enum):
    """System flags, valued by their wire spelling."""

    SEEN = "\\Seen"
    ANSWERED = "\\Answered"
    FLAGGED = "\\Flagged"
    DELETED = "\\Deleted"
    DRAFT = "\\Draft"
    RECENT = "\\Recent"

    @classmethod
    def from_wire(cls, value: str) -> "MessageFlag | None":
        lowered = value.lower()
        for flag in cls:
            if flag.value.lower() == lowered:
                return flag
        return None


class EventKind(enum.Enum):
    NEW_MESSAGE = "new_message"
    MESSAGE_DELETED = "message_deleted"
    IDLE_ERROR = "idle_error"


@dataclass(frozen=True)
class MailboxQuota:
    """One quota resource; usage and limit are in bytes."""

    resource: str
    usage: int
    limit: int


@dataclass(frozen=True)
class MailboxStatus:
    """Message counters and storage figures for a mailbox.

    ``used_storage`` and ``free_storage`` stay ``0`` when the server does not
    advertise the QUOTA capability.
    """

    messages: int
    unread: int
    used_storage: int = 0
    free_storage: int = 0


@dataclass(frozen=True)
class IdleMessageEvent:
    """Payload of new-message and message-deleted notifications.

    Attributes:
      message_count: Count reported by the server's ``EXISTS``/``EXPUNGE`` line.
      message_uid: Highest UID in the mailbox when the event was dispatched.
      session: Session that raised the event.
    """

    message_count: int
    message_uid: int
    session: "ImapSession"


@dataclass(frozen=True)
class IdleErrorEvent:
    """Failure observed inside a push-mode background unit."""

    exception: BaseException
    session: Any
