"""Plaintext and TLS byte-stream transports for the session engine.

What:
  Open the duplex byte stream the engine talks over: a TCP socket, optionally
  wrapped in TLS, exposed through a small blocking interface.

Why:
  The engine never touches sockets directly. Keeping the transport behind the
  :class:`Transport` protocol lets tests substitute an in-memory scripted
  stream and keeps TLS concerns out of the framing code.

How:
  :class:`SocketTransport` uses :func:`socket.create_connection`, wraps the
  socket with an :class:`ssl.SSLContext` when requested, and reads through a
  buffered ``makefile("rb")`` reader. :meth:`SocketTransport.close` shuts the
  socket down first so a reader thread blocked in ``readline`` wakes up.

Interfaces:
  :class:`Transport`, :class:`SocketTransport`, :func:`open_transport`.

Invariants & Safety:
  - OS and TLS failures are re-raised as :class:`~imapsession.errors.TransportError`.
  - ``close`` is idempotent.
"""
from __future__ import annotations

import socket
import ssl
import threading
from typing import Optional, Protocol

from .errors import TransportError


class Transport(Protocol):
    """Blocking duplex byte stream consumed by :class:`~imapsession.imap.framing.FramingReader`."""

    def readline(self) -> bytes:
        """Return bytes up to and including the next LF, or ``b""`` at EOF."""

    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes, or ``b""`` at EOF."""

    def write(self, data: bytes) -> None:
        """Write all of ``data``."""

    def close(self) -> None:
        """Release the stream; blocked readers must wake up."""


class SocketTransport:
    """TCP (optionally TLS) implementation of :class:`Transport`."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._file = sock.makefile("rb")
        self._closed = False
        self._close_lock = threading.Lock()

    def readline(self) -> bytes:
        try:
            return self._file.readline()
        except (OSError, ValueError) as exc:
            raise TransportError(f"read failed: {exc}") from exc

    def read(self, size: int) -> bytes:
        try:
            return self._file.read(size)
        except (OSError, ValueError) as exc:
            raise TransportError(f"read failed: {exc}") from exc

    def write(self, data: bytes) -> None:
        try:
            self._sock.sendall(data)
        except OSError as exc:
            raise TransportError(f"write failed: {exc}") from exc

    def close(self) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # already disconnected by the peer
            pass
        self._file.close()
        self._sock.close()


def open_transport(
    host: str,
    port: int,
    *,
    use_ssl: bool = False,
    verify_certificate: bool = True,
    ssl_context: Optional[ssl.SSLContext] = None,
    timeout: Optional[float] = None,
) -> SocketTransport:
    """Connect to ``host:port`` and return a ready transport.

    Args:
      host: Server DNS name or address.
      port: Server port.
      use_ssl: Wrap the connection in TLS before the greeting.
      verify_certificate: Verify the server certificate and host name.
      ssl_context: Explicit context; overrides ``verify_certificate``.
      timeout: Connect timeout. Reads on the established stream block.

    Raises:
      TransportError: If the connection or TLS handshake fails.
    """

    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.settimeout(None)
        if use_ssl:
            context = ssl_context
            if context is None:
                context = ssl.create_default_context()
                if not verify_certificate:
                    context.check_hostname = False
                    context.verify_mode = ssl.CERT_NONE
            sock = context.wrap_socket(sock, server_hostname=host)
    except (OSError, ssl.SSLError) as exc:
        raise TransportError(f"unable to connect to {host}:{port}: {exc}") from exc
    return SocketTransport(sock)
