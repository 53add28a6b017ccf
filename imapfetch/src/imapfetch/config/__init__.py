"""imapfetch configuration package.

What:
  Provide a cohesive import surface for configuration loading and the pydantic
  schema used by the command line and the sync engine.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config: Resolve
    ``imapfetch.yaml`` and expose a cached runtime configuration object.
  - RuntimeConfig / ImapSettings / SyncSettings / AuthSettings: pydantic
    models.
  - ConfigLoadError / RuntimeConfigError: loader failures.
"""

from .loader import (
    ConfigLoadError,
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    reset_runtime_config,
)
from .schema import AuthSettings, ImapSettings, RuntimeConfig, SyncSettings

__all__ = [
    "ConfigLoadError",
    "RuntimeConfigError",
    "get_runtime_config",
    "load_runtime_config",
    "reset_runtime_config",
    "AuthSettings",
    "ImapSettings",
    "RuntimeConfig",
    "SyncSettings",
]
