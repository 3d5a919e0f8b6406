"""Expose the public utility surface for the session engine.

What:
  Re-export the logging facade and the message-builder helpers so other
  packages can import them without knowing the module layout.

Interfaces:
  ``JsonLogger``, ``get_logger``, ``message_from_header``,
  ``message_from_bytes``.
"""

from .logging import JsonLogger, get_logger
from .mime import message_from_bytes, message_from_header

__all__ = [
    "JsonLogger",
    "get_logger",
    "message_from_header",
    "message_from_bytes",
]
