"""imapfetch logging helpers with deterministic JSON emission and redaction.

What:
  Offer a tiny facade over Python streams so every imapfetch component can
  emit JSON log lines with consistent fields and automatic removal of secrets
  and message payloads.

Why:
  Standard output carries the user-facing listing and progress. Diagnostics go
  to standard error as one JSON object per line so they can be grepped or
  shipped without interfering with that output, and a password passed around
  as context can never end up in a log file.

How:
  Provide a :class:`JsonLogger` dataclass that accepts a target stream and
  enforces uppercase severity levels. ``extra`` dictionaries are scrubbed via a
  recursive redaction helper before being serialised with ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Every payload includes an ISO8601 timestamp, severity, and component name.
  - Known sensitive keys (``password``, ``secret``, ``body``) are replaced with
    ``[redacted]`` even inside nested dictionaries.
  - Streams are flushed after every write so a killed backup still leaves its
    last diagnostics behind.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"password", "secret", "body"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emit single-line JSON log entries that include timestamps, severity, a
      component tag, and optional supplemental fields.

    How:
      Stores the destination stream and component label, then exposes helper
      methods (:meth:`log`, :meth:`debug`, :meth:`info`, :meth:`warning`,
      :meth:`error`) that merge a canonical payload with redacted extras.
      ``DEBUG`` entries are dropped unless ``debug_enabled`` is set. The
      stream is resolved lazily so test harnesses that swap ``sys.stderr``
      capture the output.
    """

    stream: Any = None
    component: str = "imapfetch"
    debug_enabled: bool = False

    def _target(self) -> Any:
        return self.stream if self.stream is not None else sys.stderr

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        Args:
          level: Human-readable severity (e.g., ``"info"`` or ``"error"``).
          message: Core log message.
          extra: Optional context dictionary that will be redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        target = self._target()
        json.dump(payload, target, separators=(",", ":"), default=str)
        target.write("\n")
        target.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        if self.debug_enabled:
            self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log an error entry; used for mailbox failures and fatal run errors."""

        self.log("ERROR", message, extra=kwargs)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with sensitive values masked."""

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str, *, debug: bool = False) -> JsonLogger:
    """Construct a :class:`JsonLogger` bound to ``component``.

    Call sites should use this factory rather than instantiating
    :class:`JsonLogger` directly so the default stream can evolve centrally.
    """

    return JsonLogger(component=component, debug_enabled=debug)
