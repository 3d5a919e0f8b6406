"""Classified server responses and tagged completions.

What:
  Classify protocol lines as continuation, untagged data, or tagged
  completion; represent a full untagged response (its text plus any literals
  it announced) and the result of a finished command.

Why:
  Correlation is positional: the only tag that may legally appear is the one
  of the command in flight. Encoding that rule once, and failing loudly on
  anything else, keeps framing errors from being silently skipped.

How:
  :func:`classify_line` checks the first character (``*`` or ``+``) and
  otherwise requires the current tag followed by a space. Tagged lines are
  split by :func:`parse_completion` into status word and free text.
  :func:`literal_length` recognises a trailing ``{n}`` marker.

Interfaces:
  :class:`LineKind`, :class:`Response`, :class:`Completion`,
  :func:`classify_line`, :func:`parse_completion`, :func:`literal_length`.
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import ProtocolViolation, ServerRejected

STATUS_WORDS = ("OK", "NO", "BAD")

_LITERAL_RE = re.compile(r"\{(\d+)\+?\}$")
_UNTAGGED_RE = re.compile(r"^\*\s+(\S+)(?:\s+(.*))?$")


class LineKind(enum.Enum):
    CONTINUATION = "+"
    UNTAGGED = "*"
    TAGGED = "tagged"


def literal_length(line: str) -> Optional[int]:
    """Return ``n`` when ``line`` ends with a ``{n}`` literal marker."""

    match = _LITERAL_RE.search(line)
    return int(match.group(1)) if match else None


def classify_line(line: str, tag: Optional[str]) -> LineKind:
    """Classify ``line`` relative to the in-flight ``tag``.

    Raises:
      ProtocolViolation: If the line is empty or carries a tag other than the
        current one (or any tag while no command is in flight).
    """

    if line.startswith("*"):
        return LineKind.UNTAGGED
    if line.startswith("+"):
        return LineKind.CONTINUATION
    if tag is not None and line.startswith(tag + " "):
        return LineKind.TAGGED
    raise ProtocolViolation("unclassifiable server line", line)


def parse_completion(line: str, tag: str) -> Tuple[str, str]:
    """Split a tagged completion into ``(status, text)``.

    Raises:
      ProtocolViolation: If the status word is not ``OK``, ``NO`` or ``BAD``.
    """

    rest = line[len(tag) + 1:]
    status, _, text = rest.partition(" ")
    status = status.upper()
    if status not in STATUS_WORDS:
        raise ProtocolViolation("tagged completion has no status word", line)
    return status, text


@dataclass
class Response:
    """One logical server response: a line plus the literals it announced.

    ``text`` keeps the line framing verbatim, including ``{n}`` markers, with
    each resumed line appended after its literal; ``literals`` holds the raw
    payloads in order of appearance.
    """

    kind: LineKind
    text: str
    literals: List[bytes] = field(default_factory=list)

    @property
    def keyword(self) -> str:
        """Return the first atom after ``*`` upper-cased (``OK``, ``5`` ...)."""

        match = _UNTAGGED_RE.match(self.text)
        return match.group(1).upper() if match else ""

    @property
    def payload(self) -> str:
        """Return the text after the ``*``/``+`` marker."""

        return self.text[1:].lstrip()

    def startswith(self, prefix: str) -> bool:
        return self.text.upper().startswith(prefix.upper())


@dataclass
class Completion:
    """Outcome of a finished command: status, text, and untagged responses."""

    tag: str
    status: str
    text: str
    untagged: List[Response] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == "OK"

    def check(self, command: Optional[str] = None) -> "Completion":
        """Raise :class:`ServerRejected` unless the status is ``OK``."""

        if not self.ok:
            raise ServerRejected(self.status, self.text, command)
        return self

    def untagged_matching(self, keyword: str) -> List[Response]:
        """Return untagged responses whose text begins with ``* keyword``."""

        prefix = f"* {keyword.upper()}"
        return [r for r in self.untagged if r.text.upper().startswith(prefix)]
