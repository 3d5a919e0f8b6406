"""Translate filter dictionaries into IMAP SEARCH criteria text.

What:
  Provide a deterministic mapping from filter dictionaries (``{"unseen": True,
  "from": "alice"}``) to the criteria string placed after ``UID SEARCH``, plus
  the string quoting rule shared by every command that takes an astring.

Why:
  IMAP search syntax is positional and picky about argument formats. Keeping
  the translation in one place ensures queries stay consistent and
  injection-safe across callers.

How:
  Iterate through the filter dictionary in insertion order, skip ``None``
  values, and convert each whitelisted key into its keyword and argument.
  Dates use the ``dd-Mon-yyyy`` form; strings are quoted; UID collections are
  rendered with :func:`build_sequence_set`.

Interfaces:
  :func:`build_search`, :func:`quote_string`.

Invariants & Safety:
  - Only whitelisted keys are translated; unknown keys raise ``ValueError``.
  - Boolean toggles emit keywords without values and only when true.
  - An empty filter means ``ALL``.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Dict, Iterable, List

from .sequence import build_sequence_set

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_FLAG_KEYS = {
    "all": "ALL",
    "answered": "ANSWERED",
    "deleted": "DELETED",
    "draft": "DRAFT",
    "flagged": "FLAGGED",
    "new": "NEW",
    "old": "OLD",
    "recent": "RECENT",
    "seen": "SEEN",
    "unanswered": "UNANSWERED",
    "undeleted": "UNDELETED",
    "undraft": "UNDRAFT",
    "unflagged": "UNFLAGGED",
    "unseen": "UNSEEN",
}
_TEXT_KEYS = {
    "bcc": "BCC",
    "body": "BODY",
    "cc": "CC",
    "from": "FROM",
    "keyword": "KEYWORD",
    "subject": "SUBJECT",
    "text": "TEXT",
    "to": "TO",
    "unkeyword": "UNKEYWORD",
}
_DATE_KEYS = {
    "before": "BEFORE",
    "on": "ON",
    "since": "SINCE",
    "sent_before": "SENTBEFORE",
    "sent_on": "SENTON",
    "sent_since": "SENTSINCE",
}
_SIZE_KEYS = {"larger": "LARGER", "smaller": "SMALLER"}


def quote_string(value: str) -> str:
    """Return ``value`` as an IMAP quoted string with ``\\`` and ``"`` escaped."""

    if "\r" in value or "\n" in value:
        raise ValueError("quoted strings must not contain CR or LF")
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_date(value: date) -> str:
    """Render ``value`` as ``dd-Mon-yyyy`` independent of the current locale."""

    if isinstance(value, datetime):
        value = value.date()
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year:04d}"


def build_search(filters: Dict[str, object]) -> str:
    """Convert a filter dictionary into IMAP search criteria.

    Args:
      filters: Mapping of filter names to values. Supported keys are the
        boolean flags (``unseen``, ``flagged`` ...), text matches (``from``,
        ``subject`` ...), dates (``since``, ``before`` ...), sizes
        (``larger``/``smaller``), ``header`` as a ``(name, value)`` pair, and
        ``uid`` as an identifier collection.

    Returns:
      Criteria text suitable for ``UID SEARCH``.

    Raises:
      ValueError: On unknown keys or badly typed values.
    """

    criteria: List[str] = []
    for key, value in filters.items():
        if value is None:
            continue
        if key in _FLAG_KEYS:
            if not isinstance(value, bool):
                raise ValueError(f"{key} expects a boolean")
            if value:
                criteria.append(_FLAG_KEYS[key])
        elif key in _TEXT_KEYS:
            criteria.append(f"{_TEXT_KEYS[key]} {quote_string(str(value))}")
        elif key in _DATE_KEYS:
            if not isinstance(value, date):
                raise ValueError(f"{key} expects a date")
            criteria.append(f"{_DATE_KEYS[key]} {format_date(value)}")
        elif key in _SIZE_KEYS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{key} expects a non-negative integer")
            criteria.append(f"{_SIZE_KEYS[key]} {value}")
        elif key == "header":
            name, text = value  # type: ignore[misc]
            criteria.append(f"HEADER {name} {quote_string(str(text))}")
        elif key == "uid":
            uids = [value] if isinstance(value, int) else list(value)  # type: ignore[arg-type]
            criteria.append(f"UID {build_sequence_set(uids)}")
        else:
            raise ValueError(f"unsupported search key '{key}'")
    return " ".join(criteria) if criteria else "ALL"


def any_of(*alternatives: Dict[str, object]) -> str:
    """Combine filter dictionaries with ``OR`` (right-nested for three or more)."""

    rendered: Iterable[str] = [f"({build_search(alt)})" for alt in alternatives]
    parts = list(rendered)
    if len(parts) < 2:
        raise ValueError("any_of needs at least two alternatives")
    result = parts[-1]
    for part in reversed(parts[:-1]):
        result = f"OR {part} {result}"
    return result
