"""Locate, parse, validate, and cache the imapfetch runtime configuration.

What:
  Provide helpers that find ``imapfetch.yaml``, parse it with PyYAML, validate
  it against :class:`~imapfetch.config.schema.RuntimeConfig`, and memoise the
  result for the lifetime of the process.

Why:
  Batch size, failure policy, and retry bounds are operator decisions that
  should not require long command lines on every cron invocation. Running
  without any configuration file must still work, so a missing default file
  silently yields the schema defaults, while an explicitly requested file that
  is missing is an error.

How:
  Resolve candidate paths (explicit argument, ``IMAPFETCH_CONFIG_PATH``, the
  working directory, then the user config directory), parse the first one that
  exists via ``yaml.safe_load``, and validate with
  :meth:`RuntimeConfig.model_validate`. Failures are wrapped in
  :class:`RuntimeConfigError` with path context.

Interfaces:
  :class:`ConfigLoadError`, :class:`RuntimeConfigError`,
  :func:`load_runtime_config`, :func:`get_runtime_config`,
  :func:`reset_runtime_config`.

Invariants:
  - Only validated :class:`RuntimeConfig` instances are returned.
  - The cache respects explicit reload requests and the precedence order of
    candidate paths.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import RuntimeConfig


class ConfigLoadError(Exception):
    """Base error for configuration parsing or validation failures."""


class RuntimeConfigError(ConfigLoadError):
    """Error raised when ``imapfetch.yaml`` cannot be loaded or validated."""


_CONFIG_ENV = "IMAPFETCH_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("imapfetch.yaml"),
    Path("~/.config/imapfetch/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Optional[Path], RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Tuple[Path, bool]]:
    """Yield ``(path, required)`` pairs in priority order.

    What:
      Produce the ordered list of locations inspected for the configuration.

    How:
      The explicit argument and the environment variable are *required*: if
      they point at a missing file, loading fails. Default locations are
      optional and skipped when absent. Paths are deduplicated while keeping
      the user-visible precedence.
    """

    seen: set[Path] = set()
    if path is not None:
        candidate = path.expanduser()
        seen.add(candidate)
        yield candidate, True
    env_path = os.environ.get(_CONFIG_ENV)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate, True
    for default in _DEFAULT_LOCATIONS:
        candidate = default.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate, False


def _parse_config_payload(text: str, source: Path) -> dict[str, Any]:
    """Parse configuration text into a mapping ready for validation.

    Raises:
      RuntimeConfigError: If the YAML is invalid or not a mapping.
    """

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RuntimeConfigError(f"{source} must contain a mapping at the top-level")
    return payload


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    """Read ``path`` and convert it into a validated :class:`RuntimeConfig`."""

    try:
        text = path.read_text()
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _parse_config_payload(text, path)
    try:
        return RuntimeConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise RuntimeConfigError(f"Invalid configuration in {path}: {exc}") from exc


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    What:
      Return the validated configuration from the highest-priority existing
      file, or the schema defaults when no optional location exists.

    How:
      Consult the cache unless ``reload`` is requested or a different explicit
      path is asked for, then walk :func:`_candidate_paths`.

    Args:
      path: Optional explicit location of the configuration file.
      reload: When ``True`` forces a fresh load bypassing the cache.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If a required file is missing or any file fails
        validation.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    for candidate, required in _candidate_paths(requested_path):
        if not candidate.exists():
            if required:
                raise RuntimeConfigError(f"Configuration file missing: {candidate}")
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    config = RuntimeConfig()
    _RUNTIME_CACHE = (None, config)
    return config


def get_runtime_config() -> RuntimeConfig:
    """Return the cached runtime configuration, loading it on demand."""

    return load_runtime_config()


def reset_runtime_config() -> None:
    """Clear the runtime configuration cache (used by tests)."""

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None
