"""SASL mechanisms fed to the AUTHENTICATE exchange.

What:
  Describe each supported authentication mechanism as data: a mechanism name
  and a ``respond`` callable mapping a decoded server challenge to the
  client's raw answer.

Why:
  The session engine only orchestrates the exchange (send the command, decode
  each ``+`` challenge, base64-encode the answer). Keeping the mechanism math
  here means the engine never computes a hash and new mechanisms need no new
  engine code.

How:
  :class:`SaslMechanism` is a frozen dataclass; factory functions close over
  the credentials. CRAM-MD5 uses :mod:`hmac` exactly as RFC 2195 describes.

Interfaces:
  :class:`SaslMechanism`, :func:`plain`, :func:`cram_md5`, :func:`xoauth2`,
  :func:`encode_challenge_response`, :func:`decode_challenge`.

Invariants & Safety:
  - Credentials live only inside the closures; ``repr`` of a mechanism shows
    the name alone.
"""
from __future__ import annotations

import base64
import binascii
import hmac
from dataclasses import dataclass, field
from typing import Callable

from ..errors import ProtocolViolation

Responder = Callable[[bytes], bytes]


@dataclass(frozen=True)
class SaslMechanism:
    """One authentication mechanism variant."""

    name: str
    respond: Responder = field(repr=False)


def decode_challenge(payload: str) -> bytes:
    """Decode the base64 text of a ``+`` continuation line."""

    text = payload.strip()
    if not text:
        return b""
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ProtocolViolation("continuation is not valid base64", payload) from exc


def encode_challenge_response(data: bytes) -> bytes:
    return base64.b64encode(data)


def plain(username: str, password: str, authzid: str = "") -> SaslMechanism:
    """RFC 4616 PLAIN: ``authzid NUL authcid NUL passwd``."""

    message = f"{authzid}\0{username}\0{password}".encode("utf-8")
    return SaslMechanism(name="PLAIN", respond=lambda _challenge: message)


def cram_md5(username: str, password: str) -> SaslMechanism:
    """RFC 2195 CRAM-MD5: ``user SP hex(HMAC-MD5(password, challenge))``."""

    def respond(challenge: bytes) -> bytes:
        digest = hmac.new(password.encode("utf-8"), challenge, "md5").hexdigest()
        return f"{username} {digest}".encode("utf-8")

    return SaslMechanism(name="CRAM-MD5", respond=respond)


def xoauth2(username: str, access_token: str) -> SaslMechanism:
    """Google/Microsoft XOAUTH2 bearer token exchange.

    The first challenge carries the initial response; a second challenge only
    arrives when the token was refused (it holds a JSON error), and is
    answered with an empty line so the server sends its tagged ``NO``.
    """

    message = f"user={username}\x01auth=Bearer {access_token}\x01\x01".encode("utf-8")
    rounds = {"sent": False}

    def respond(_challenge: bytes) -> bytes:
        if rounds["sent"]:
            return b""
        rounds["sent"] = True
        return message

    return SaslMechanism(name="XOAUTH2", respond=respond)
