"""Tag-correlated command/response engine.

What:
  Issue tagged commands over the framed stream, collect untagged responses
  (with their literals) until the matching tagged completion arrives, and
  surface non-``OK`` completions as :class:`~imapsession.errors.ServerRejected`.

Why:
  The protocol has no pipelining: a reply is attributed to a command purely by
  position. The engine therefore owns the single "in flight" slot and refuses
  to issue a second command while one is outstanding, turning the implicit
  convention into an enforced precondition.

How:
  :class:`TagGenerator` yields ``<prefix><counter>`` tags. :meth:`CommandEngine.execute`
  writes ``<tag> <command>`` and reads responses until the completion for that
  tag. Continuation requests are answered through an optional callback (SASL
  exchanges); :meth:`CommandEngine.request_continuation` instead stops at the
  first ``+`` and leaves the command in flight, which is how push mode is
  entered. :meth:`CommandEngine.read_response` follows ``{n}`` markers with
  exact-count literal reads before line framing resumes.

Interfaces:
  :class:`TagGenerator`, :class:`CommandEngine`.

Invariants & Safety:
  - At most one tagged command is in flight; violating this raises
    ``RuntimeError`` before anything is written.
  - Command arguments are never logged, only the verb and tag.
"""
from __future__ import annotations

import itertools
import threading
from typing import Callable, List, Optional, Tuple

from ..errors import ProtocolViolation, ServerRejected
from ..transport import Transport
from ..utils.logging import JsonLogger, get_logger
from .framing import CRLF, FramingReader, LineWriter
from .responses import (
    Completion,
    LineKind,
    Response,
    classify_line,
    literal_length,
    parse_completion,
)

ContinuationHandler = Callable[[Response], bytes]


class TagGenerator:
    """Monotonic per-connection tag source (``xm001``, ``xm002`` ...)."""

    def __init__(self, prefix: str = "xm") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            return f"{self._prefix}{next(self._counter):03d}"


def _verb(command: str) -> str:
    parts = command.split(" ", 2)
    if parts[0].upper() == "UID" and len(parts) > 1:
        return f"UID {parts[1].upper()}"
    return parts[0].upper()


class CommandEngine:
    """Owns the framed stream and the single in-flight command slot."""

    def __init__(
        self,
        transport: Transport,
        *,
        tag_prefix: str = "xm",
        logger: Optional[JsonLogger] = None,
    ) -> None:
        self.reader = FramingReader(transport)
        self.writer = LineWriter(transport)
        self.tags = TagGenerator(tag_prefix)
        self._logger = logger or get_logger("imapsession.engine")
        self._slot = threading.Lock()
        self._in_flight: Optional[str] = None

    @property
    def in_flight(self) -> Optional[str]:
        """Tag of the outstanding command, if any."""

        return self._in_flight

    def send(self, text: str) -> None:
        """Write an untagged line (``DONE``, SASL responses) followed by CRLF."""

        self.writer.write_line(text)

    def _begin(self, command: str) -> str:
        with self._slot:
            if self._in_flight is not None:
                raise RuntimeError(
                    f"cannot issue {_verb(command)} while {self._in_flight} is in flight"
                )
            tag = self.tags.next()
            self._in_flight = tag
        try:
            self.writer.write_line(f"{tag} {command}")
        except BaseException:
            self.finish(tag)
            raise
        self._logger.debug("command issued", tag=tag, verb=_verb(command))
        return tag

    def finish(self, tag: str) -> None:
        """Release the in-flight slot held by ``tag``."""

        with self._slot:
            if self._in_flight == tag:
                self._in_flight = None

    def read_response(self, tag: Optional[str] = None) -> Response:
        """Read one complete response, following any literal markers.

        A line ending in ``{n}`` is followed by exactly ``n`` raw bytes, read
        with :meth:`FramingReader.read_exact`; the line framing then resumes
        and the resumed text is appended to the response text.

        Raises:
          ProtocolViolation: If the line cannot be classified.
          TransportError: If the stream fails mid-read.
        """

        expected = tag if tag is not None else self._in_flight
        with self.reader.lock:
            line = self.reader.read_line()
            kind = classify_line(line, expected)
            if kind is LineKind.TAGGED:
                return Response(kind, line)
            parts = [line]
            literals: List[bytes] = []
            size = literal_length(line)
            while size is not None:
                literals.append(self.reader.read_exact(size))
                line = self.reader.read_line()
                parts.append(line)
                size = literal_length(line)
        return Response(kind, "".join(parts), literals)

    def execute(
        self,
        command: str,
        *,
        continuation: Optional[ContinuationHandler] = None,
        check: bool = True,
    ) -> Completion:
        """Send ``command`` and collect its responses until the tagged completion.

        What:
          The ``sendAndAwait`` primitive: every untagged response seen before
          the completion is returned on the :class:`Completion`.

        How:
          Continuation requests are passed to ``continuation`` and its bytes are
          written back followed by CRLF. If no handler was given, or the
          handler raises, the exchange is cancelled with ``*`` and the
          completion drained before the error propagates.

        Args:
          command: Command text without tag or CRLF.
          continuation: Producer for continuation payloads.
          check: Raise :class:`ServerRejected` on a non-``OK`` completion.

        Raises:
          ServerRejected: On ``NO``/``BAD`` when ``check`` is true.
          ProtocolViolation: On an unexpected or unclassifiable line.
        """

        tag = self._begin(command)
        untagged: List[Response] = []
        pending: Optional[BaseException] = None
        try:
            while True:
                response = self.read_response(tag)
                if response.kind is LineKind.UNTAGGED:
                    untagged.append(response)
                    continue
                if response.kind is LineKind.CONTINUATION:
                    if pending is not None:
                        self.writer.write_raw(b"*" + CRLF)
                        continue
                    try:
                        if continuation is None:
                            raise ProtocolViolation("unexpected continuation request", response.text)
                        reply = continuation(response)
                    except Exception as exc:
                        pending = exc
                        self.writer.write_raw(b"*" + CRLF)
                        continue
                    self.writer.write_raw(bytes(reply) + CRLF)
                    continue
                status, text = parse_completion(response.text, tag)
                break
        finally:
            self.finish(tag)
        completion = Completion(tag, status, text, untagged)
        self._logger.debug("command completed", tag=tag, verb=_verb(command), status=status)
        if pending is not None:
            raise pending
        if check:
            completion.check(_verb(command))
        return completion

    def request_continuation(self, command: str) -> Tuple[str, List[Response]]:
        """Send ``command`` and return once the server asks for continuation.

        The command stays in flight; the caller must later consume its tagged
        completion and call :meth:`finish`.

        Returns:
          ``(tag, untagged)``: the command tag and untagged responses that
          arrived before the continuation request.

        Raises:
          ServerRejected: If the server completed the command with NO/BAD.
          ProtocolViolation: If the server completed it with OK instead of
            asking for continuation.
        """

        tag = self._begin(command)
        untagged: List[Response] = []
        try:
            while True:
                response = self.read_response(tag)
                if response.kind is LineKind.UNTAGGED:
                    untagged.append(response)
                    continue
                if response.kind is LineKind.CONTINUATION:
                    return tag, untagged
                status, text = parse_completion(response.text, tag)
                self.finish(tag)
                if status != "OK":
                    raise ServerRejected(status, text, _verb(command))
                raise ProtocolViolation("expected a continuation request", response.text)
        except BaseException:
            self.finish(tag)
            raise
