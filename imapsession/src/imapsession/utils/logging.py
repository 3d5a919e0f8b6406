"""Session logging helpers with deterministic JSON emission and redaction safeguards.

What:
  Offer a tiny facade over Python streams so every session component (engine,
  push-mode units, CLI) can emit JSON log lines with consistent fields and
  automatic removal of credentials and message payloads.

Why:
  Push-mode bugs span several threads; grepping a single structured stream is
  the quickest way to reconstruct the order of pause/resume transitions. A
  strict layout keeps that parsing trivial while preventing passwords, OAuth
  tokens, or literal message bodies from leaking into logs.

How:
  Provide a :class:`JsonLogger` dataclass that accepts a target stream and a
  minimum severity. ``extra`` dictionaries are scrubbed via a recursive
  redaction helper before being serialised with ``json.dump``. Loggers writing
  to the same stream share one lock, so lines from the reader, dispatcher, and
  foreground threads never interleave.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - The emitted payload always includes an ISO8601 timestamp, severity, and
    component name so downstream tooling can index entries reliably.
  - Known sensitive keys are replaced with ``[redacted]`` even inside nested
    dictionaries.
  - Streams are flushed after every write.
"""
from __future__ import annotations

import json
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"

SENSITIVE_KEYS = frozenset(
    {"password", "token", "secret", "credentials", "literal", "body", "subject"}
)

_LEVELS = {"DEBUG": 10, "INFO": 20, "WARN": 30, "WARNING": 30, "ERROR": 40}

_STREAM_LOCKS: Dict[int, threading.Lock] = {}
_REGISTRY_LOCK = threading.Lock()


def _lock_for(stream: Any) -> threading.Lock:
    with _REGISTRY_LOCK:
        return _STREAM_LOCKS.setdefault(id(stream), threading.Lock())


@dataclass
class JsonLogger:
    """Thread-safe JSON line writer used by every session component.

    Each entry carries ``ts``, ``lvl``, ``msg`` and ``component`` plus any
    keyword fields, with sensitive keys masked before serialisation.
    """

    stream: Any = field(default_factory=lambda: sys.stderr)
    component: str = "imapsession"
    min_level: str = "INFO"
    _lock: threading.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lock = _lock_for(self.stream)

    def enabled_for(self, level: str) -> bool:
        return _LEVELS.get(level.upper(), 20) >= _LEVELS.get(self.min_level.upper(), 20)

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled_for(level):
            return
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        with self._lock:
            json.dump(payload, self.stream, separators=(",", ":"), default=str)
            self.stream.write("\n")
            self.stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)

    def child(self, component: str) -> "JsonLogger":
        """Return a logger sharing this stream and threshold under ``component``."""

        return JsonLogger(stream=self.stream, component=component, min_level=self.min_level)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str, *, min_level: str = "INFO") -> JsonLogger:
    """Return a ``stderr`` logger labelled ``component``."""

    return JsonLogger(component=component, min_level=min_level)
