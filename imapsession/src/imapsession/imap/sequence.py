"""Compact sequence-set notation for UID collections.

What:
  Render a collection of message identifiers as the shortest valid IMAP
  sequence-set (``1,3:5,7``) and expand such a set back into identifiers.

Why:
  Commands that act on several messages (COPY, STORE, FETCH) take a single
  sequence-set argument; collapsing runs keeps command lines short.

How:
  Sort and deduplicate, scan for maximal runs where every value is exactly one
  greater than the previous, then emit ``a:b`` for runs of two or more and a
  bare ``a`` otherwise.

Interfaces:
  :func:`build_sequence_set`, :func:`expand_sequence_set`.
"""
from __future__ import annotations

from typing import Iterable, List, Set


def build_sequence_set(uids: Iterable[int]) -> str:
    """Return the compact sequence-set for ``uids``.

    Raises:
      TypeError: If ``uids`` is ``None``.
      ValueError: If ``uids`` is empty or contains a negative identifier.
    """

    if uids is None:
        raise TypeError("uids must not be None")
    ordered = sorted(set(int(uid) for uid in uids))
    if not ordered:
        raise ValueError("the specified collection is empty")
    if ordered[0] < 0:
        raise ValueError("identifiers must not be negative")

    ranges: List[str] = []
    start = prev = ordered[0]
    for uid in ordered[1:]:
        if uid == prev + 1:
            prev = uid
            continue
        ranges.append(str(start) if start == prev else f"{start}:{prev}")
        start = prev = uid
    ranges.append(str(start) if start == prev else f"{start}:{prev}")
    return ",".join(ranges)


def expand_sequence_set(sequence_set: str) -> Set[int]:
    """Expand a concrete sequence-set (no ``*``) into its identifiers."""

    result: Set[int] = set()
    for item in sequence_set.split(","):
        item = item.strip()
        if not item:
            raise ValueError(f"empty element in sequence-set {sequence_set!r}")
        if ":" in item:
            low, _, high = item.partition(":")
            first, last = sorted((int(low), int(high)))
            result.update(range(first, last + 1))
        else:
            result.add(int(item))
    return result
