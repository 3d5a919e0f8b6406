"""Facade for the IMAP protocol layer.

What:
  Surface :class:`~imapsession.imap.client.ImapConfig` and
  :class:`~imapsession.imap.client.ImapSession` together with the sequence-set
  and search helpers callers combine with them.

How:
  Re-exports the public names and leaves framing, correlation, and push-mode
  internals to their submodules (``framing``, ``engine``, ``idle``).

Interfaces:
  ``ImapConfig``, ``ImapSession``, ``IdleController``, ``build_sequence_set``,
  ``build_search``, ``any_of``.
"""

from .client import ImapConfig, ImapSession
from .idle import IdleController
from .search import any_of, build_search
from .sequence import build_sequence_set

__all__ = [
    "ImapConfig",
    "ImapSession",
    "IdleController",
    "build_sequence_set",
    "build_search",
    "any_of",
]
