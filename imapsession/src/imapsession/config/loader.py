"""Discovery, validation, and caching of ``config.yaml``.

What:
  Turn the on-disk configuration document into a validated
  :class:`~imapsession.config.schema.RuntimeConfig`: server coordinates,
  protocol defaults, push-mode timing, and the log threshold.

Why:
  Sessions are often built without explicit settings, so the engine needs
  one trusted place to read them from, and a typo in the document should
  fail loudly rather than be ignored.

How:
  An explicit path wins outright. Without one, ``IMAPSESSION_CONFIG_PATH`` is
  consulted, then ``./config.yaml``, ``~/.config/imapsession/config.yaml`` and
  ``/etc/imapsession/config.yaml``. The first existing file is parsed with
  PyYAML's ``safe_load`` and validated by the Pydantic schema. The result is
  cached together with the path it came from.

Interfaces:
  :func:`load_runtime_config`, :func:`get_runtime_config`,
  :func:`reset_runtime_config`, :class:`ConfigLoadError`,
  :class:`RuntimeConfigError`.

Invariants:
  - Only validated models leave this module.
  - With no document anywhere, :func:`get_runtime_config` yields schema
    defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .schema import RuntimeConfig

ENV_VAR = "IMAPSESSION_CONFIG_PATH"
SEARCH_PATH: Tuple[str, ...] = (
    "config.yaml",
    "~/.config/imapsession/config.yaml",
    "/etc/imapsession/config.yaml",
)

_cached: Optional[Tuple[Optional[Path], RuntimeConfig]] = None


class ConfigLoadError(Exception):
    """Base class for configuration failures."""


class RuntimeConfigError(ConfigLoadError):
    """``config.yaml`` is missing, unreadable, or does not match the schema."""


def _search_order() -> List[Path]:
    ordered: List[Path] = []
    env_value = os.environ.get(ENV_VAR)
    raw = ([env_value] if env_value else []) + list(SEARCH_PATH)
    for entry in raw:
        candidate = Path(entry).expanduser()
        if candidate not in ordered:
            ordered.append(candidate)
    return ordered


def _read_document(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"cannot read {path}: {exc}") from exc
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"{path} is not valid YAML: {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise RuntimeConfigError(f"{path} must hold a mapping at the top level")
    return document


def _validate(path: Path) -> RuntimeConfig:
    document = _read_document(path)
    try:
        return RuntimeConfig.model_validate(document)
    except ValidationError as exc:
        raise RuntimeConfigError(f"{path} failed validation: {exc}") from exc


def load_runtime_config(
    path: Optional[Union[Path, str]] = None,
    *,
    reload: bool = False,
    required: bool = True,
) -> RuntimeConfig:
    """Return the validated runtime configuration.

    Args:
      path: Document to load. When given it is the only location tried.
      reload: Ignore the cache and read from disk again.
      required: When ``False`` and no document is found on the search path,
        return schema defaults instead of raising.

    Raises:
      RuntimeConfigError: The document is absent (and required), unreadable,
        malformed, or rejected by the schema.
    """

    global _cached

    explicit = Path(path).expanduser() if path is not None else None
    if _cached is not None and not reload:
        source, config = _cached
        if explicit is None or explicit == source:
            return config

    if explicit is not None:
        config = _validate(explicit)
        _cached = (explicit, config)
        return config

    candidates = _search_order()
    for candidate in candidates:
        if candidate.is_file():
            config = _validate(candidate)
            _cached = (candidate, config)
            return config

    if required:
        searched = ", ".join(str(candidate) for candidate in candidates)
        raise RuntimeConfigError(f"no config.yaml found (searched: {searched})")
    config = RuntimeConfig()
    _cached = (None, config)
    return config


def get_runtime_config() -> RuntimeConfig:
    """Cached configuration, or schema defaults when no document exists."""

    return load_runtime_config(required=False)


def reset_runtime_config() -> None:
    global _cached
    _cached = None
