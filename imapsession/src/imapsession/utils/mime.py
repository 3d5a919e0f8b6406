"""MIME helpers that turn fetched IMAP payloads into message objects.

What:
  Provide the message-builder collaborator used by the session engine: build
  an :class:`email.message.EmailMessage` either from a header block alone or
  from a complete RFC822 payload, and prune parts according to the requested
  fetch options.

Why:
  The engine only moves bytes; structuring them into messages is delegated to
  the standard ``email`` package so header decoding, encoded words, and MIME
  trees are handled by a well-tested parser instead of bespoke code.

How:
  Use :class:`~email.parser.BytesParser` with the default policy. Header-only
  builds parse the header block with ``headersonly=True``. Pruning walks the
  multipart tree and drops parts that do not satisfy the option.

Interfaces:
  :func:`message_from_header`, :func:`message_from_bytes`,
  :func:`prune_message`, :func:`extract_text`.

Invariants & Safety:
  - Parsing never raises on malformed MIME; defects are recorded on the
    message by the ``email`` package.
  - Text extraction decodes with ``errors="replace"`` so undecodable bytes
    never crash callers.
"""
from __future__ import annotations

from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from typing import List, Union

MAX_TEXT_BYTES = 1_000_000
"""Upper bound for text returned by :func:`extract_text`."""


def _as_bytes(raw: Union[bytes, str]) -> bytes:
    if isinstance(raw, str):
        return raw.encode("utf-8", errors="surrogateescape")
    return bytes(raw)


def message_from_header(header: Union[bytes, str]) -> EmailMessage:
    """Build a message carrying only the headers found in ``header``."""

    parser = BytesParser(policy=policy.default)
    return parser.parsebytes(_as_bytes(header), headersonly=True)


def message_from_bytes(raw: Union[bytes, str]) -> EmailMessage:
    """Build a complete message (headers and MIME tree) from RFC822 bytes."""

    parser = BytesParser(policy=policy.default)
    return parser.parsebytes(_as_bytes(raw))


def _is_attachment(part: EmailMessage) -> bool:
    return part.get_content_disposition() == "attachment"


def prune_message(message: EmailMessage, *, text_only: bool, drop_attachments: bool) -> EmailMessage:
    """Remove leaf parts that the caller did not ask for.

    What:
      Walks a multipart message and keeps only the leaf parts allowed by the
      fetch option: ``text_only`` keeps ``text/*`` leaves, ``drop_attachments``
      removes parts with an ``attachment`` disposition.

    How:
      Rebuilds each multipart payload list in place. Non-multipart messages are
      returned unchanged because there is nothing to prune.

    Args:
      message: Parsed message to prune in place.
      text_only: Keep only ``text/*`` leaves.
      drop_attachments: Drop parts with an attachment disposition.

    Returns:
      The same ``message`` instance for chaining.
    """

    if not message.is_multipart():
        return message

    def keep(part: EmailMessage) -> bool:
        if part.is_multipart():
            _prune_children(part)
            return True
        if drop_attachments and _is_attachment(part):
            return False
        if text_only and part.get_content_maintype() != "text":
            return False
        return True

    def _prune_children(container: EmailMessage) -> None:
        children: List[EmailMessage] = list(container.iter_parts())
        container.set_payload([child for child in children if keep(child)])

    _prune_children(message)
    return message


def extract_text(message: EmailMessage) -> str:
    """Return the first ``text/*`` body of ``message`` clamped to a safe size."""

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_maintype() != "text":
            continue
        payload = part.get_payload(decode=True) or b""
        charset = part.get_content_charset("utf-8")
        try:
            text = payload.decode(charset, errors="replace")
        except LookupError:
            text = payload.decode("utf-8", errors="replace")
        encoded = text.encode("utf-8")
        if len(encoded) > MAX_TEXT_BYTES:
            text = encoded[:MAX_TEXT_BYTES].decode("utf-8", errors="ignore")
        return text
    return ""
