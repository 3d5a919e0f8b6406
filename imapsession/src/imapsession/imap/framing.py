"""Line and literal framing over the transport byte stream.

What:
  Turn the raw byte stream into protocol lines and, on demand, into exact-size
  binary literals; write command lines and raw continuation payloads.

Why:
  These two read primitives and the writer are the only code that touches the
  transport. Everything above them works on decoded lines, so framing bugs
  stay in one place.

How:
  :meth:`FramingReader.read_line` reads up to LF and strips the trailing CR;
  :meth:`FramingReader.read_exact` loops until exactly ``n`` bytes arrived,
  regardless of embedded CR/LF. Each primitive holds the reader's lock, and
  :class:`LineWriter` holds its own lock, so a push-mode reader thread and a
  foreground call cannot interleave reads or writes during a pause/resume
  transition.

Interfaces:
  :class:`FramingReader`, :class:`LineWriter`, :data:`CRLF`.

Invariants & Safety:
  - EOF or a short read surfaces as :class:`~imapsession.errors.TransportError`.
  - Lines are decoded as UTF-8 with ``surrogateescape`` so 8-bit server text
    round-trips without raising.
"""
from __future__ import annotations

import threading

from ..errors import TransportError
from ..transport import Transport

CRLF = b"\r\n"


class FramingReader:
    """Blocking line/literal reader bound to a single transport."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self.lock = threading.RLock()

    def read_line(self) -> str:
        """Return the next line without its CR/LF terminator.

        Raises:
          TransportError: If the stream ends before a LF is seen.
        """

        with self.lock:
            raw = self._transport.readline()
        if not raw or not raw.endswith(b"\n"):
            raise TransportError("connection closed while reading a line")
        raw = raw[:-1]
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        return raw.decode("utf-8", errors="surrogateescape")

    def read_exact(self, size: int) -> bytes:
        """Return exactly ``size`` bytes, CR and LF included verbatim.

        Raises:
          TransportError: If the stream ends before ``size`` bytes arrived.
        """

        if size < 0:
            raise ValueError("literal size must be non-negative")
        chunks = []
        remaining = size
        with self.lock:
            while remaining:
                chunk = self._transport.read(remaining)
                if not chunk:
                    raise TransportError(
                        f"connection closed with {remaining} of {size} literal bytes unread"
                    )
                chunks.append(chunk)
                remaining -= len(chunk)
        return b"".join(chunks)


class LineWriter:
    """Serialised writer for command lines and raw payloads."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self.lock = threading.Lock()

    def write_line(self, text: str) -> None:
        """Write ``text`` followed by CRLF as a single transport write."""

        if "\r" in text or "\n" in text:
            raise ValueError("command lines must not contain CR or LF")
        self.write_raw(text.encode("utf-8") + CRLF)

    def write_raw(self, data: bytes) -> None:
        with self.lock:
            self._transport.write(data)
