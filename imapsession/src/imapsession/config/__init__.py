"""Configuration package for the session engine.

What:
  Provide a single import surface for configuration loading and the Pydantic
  schema classes consumed by the session, the push-mode controller, and the
  CLI.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config: Resolve
    ``config.yaml`` and expose a cached runtime configuration object.
  - RuntimeConfig and its sections: validated settings models.
  - ConfigLoadError / RuntimeConfigError: loader failures.
"""

from .loader import (
    ConfigLoadError,
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    reset_runtime_config,
)
from .schema import IdleSettings, LoggingSettings, RuntimeConfig, ServerSettings, SessionSettings

__all__ = [
    "get_runtime_config",
    "load_runtime_config",
    "reset_runtime_config",
    "ConfigLoadError",
    "RuntimeConfigError",
    "RuntimeConfig",
    "ServerSettings",
    "SessionSettings",
    "IdleSettings",
    "LoggingSettings",
]
