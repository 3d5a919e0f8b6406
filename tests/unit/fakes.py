"""In-memory IMAP server script used by unit tests.

What:
  Provide :class:`ScriptedTransport`, a drop-in replacement for
  :class:`imapsession.transport.SocketTransport` that answers client commands
  from canned replies and records everything the client wrote.

Why:
  Unit tests must exercise framing, tag correlation, and push mode without a
  network. Replaying server bytes in reaction to client commands keeps the
  exchanges deterministic while still running the real engine threads.

How:
  Server bytes accumulate in a buffer guarded by a :class:`threading.Condition`;
  ``readline``/``read`` block until enough data arrives or the transport is
  closed. Each complete client line is matched against registered rules by
  command prefix. ``{tag}`` in a reply is replaced with the command's tag.
  ``IDLE`` and ``DONE`` are handled built-in, and a reply ending in a ``+``
  line parks the rule's ``then`` replies until the client answers.

Interfaces:
  :class:`ScriptedTransport`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

Reply = Union[str, bytes]


@dataclass
class _Rule:
    prefix: str
    replies: Sequence[Reply]
    then: Sequence[Reply] = field(default_factory=list)
    once: bool = False


class ScriptedTransport:
    """Scripted peer speaking just enough IMAP for the session engine."""

    def __init__(self, greeting: Optional[str] = "* OK IMAP4rev1 ready") -> None:
        self._cond = threading.Condition()
        self._buffer = bytearray()
        self._pending = bytearray()
        self._closed = False
        self._rules: List[_Rule] = []
        self._parked: Optional[tuple] = None
        self.idle_tag: Optional[str] = None
        self.written: List[bytes] = []
        self.commands: List[str] = []
        self.tags: List[str] = []
        self.answers: List[str] = []
        self.close_calls = 0
        if greeting is not None:
            self.feed(greeting)

    # ------------------------------------------------------------------
    # scripting

    def on(self, prefix: str, *replies: Reply, then: Sequence[Reply] = (), once: bool = False) -> None:
        """Answer commands starting with ``prefix`` (case-insensitive)."""

        self._rules.append(_Rule(prefix.upper(), replies, list(then), once))

    def feed(self, *replies: Reply, tag: str = "") -> None:
        """Queue server output; ``str`` lines get CRLF, ``bytes`` go out verbatim."""

        with self._cond:
            for reply in replies:
                if isinstance(reply, bytes):
                    self._buffer.extend(reply)
                else:
                    self._buffer.extend(reply.replace("{tag}", tag).encode("utf-8") + b"\r\n")
            self._cond.notify_all()

    def count(self, command: str) -> int:
        return sum(1 for item in self.commands if item.upper() == command.upper())

    # ------------------------------------------------------------------
    # transport protocol

    def readline(self) -> bytes:
        with self._cond:
            while b"\n" not in self._buffer and not self._closed:
                self._cond.wait()
            index = self._buffer.find(b"\n")
            if index < 0:
                data = bytes(self._buffer)
                self._buffer.clear()
                return data
            data = bytes(self._buffer[: index + 1])
            del self._buffer[: index + 1]
            return data

    def read(self, size: int) -> bytes:
        with self._cond:
            while len(self._buffer) < size and not self._closed:
                self._cond.wait()
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
            return data

    def write(self, data: bytes) -> None:
        with self._cond:
            self.written.append(bytes(data))
            self._pending.extend(data)
            while b"\r\n" in self._pending:
                index = self._pending.find(b"\r\n")
                line = bytes(self._pending[:index]).decode("utf-8")
                del self._pending[: index + 2]
                self._handle(line)

    def close(self) -> None:
        with self._cond:
            self.close_calls += 1
            self._closed = True
            self._cond.notify_all()

    # ------------------------------------------------------------------
    # server behaviour

    def _handle(self, line: str) -> None:
        if self._parked is not None:
            tag, then = self._parked
            self._parked = None
            self.answers.append(line)
            self.feed(*then, tag=tag)
            return
        if line == "DONE":
            if self.idle_tag is not None:
                tag, self.idle_tag = self.idle_tag, None
                self.feed("{tag} OK IDLE terminated", tag=tag)
            return
        tag, _, command = line.partition(" ")
        self.tags.append(tag)
        self.commands.append(command)
        if command.upper() == "IDLE":
            self.idle_tag = tag
            self.feed("+ idling")
            return
        rule = self._match(command)
        if rule is None:
            verb = command.split(" ", 1)[0].upper()
            self.feed(f"{{tag}} OK {verb} completed", tag=tag)
            return
        self.feed(*rule.replies, tag=tag)
        last = rule.replies[-1] if rule.replies else ""
        if isinstance(last, str) and last.startswith("+"):
            self._parked = (tag, rule.then)

    def _match(self, command: str) -> Optional[_Rule]:
        upper = command.upper()
        for rule in self._rules:
            if upper.startswith(rule.prefix):
                if rule.once:
                    self._rules.remove(rule)
                return rule
        return None
