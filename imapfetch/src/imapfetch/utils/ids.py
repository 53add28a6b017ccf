"""Run identifiers attached to sync reports and log records.

What:
  Provide :func:`new_run_id`, a sortable identifier that ties together every
  log line and the final report of one backup run.

How:
  Combines a timezone-aware ISO8601 timestamp with a random hex suffix.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timezone


def new_run_id() -> str:
    """Return a unique identifier for a backup run.

    Returns:
      Identifier string (e.g., ``2024-01-01T00:00:00+00:00#1a2b3c``).
    """

    timestamp = datetime.now(timezone.utc).isoformat()
    suffix = secrets.token_hex(3)
    return f"{timestamp}#{suffix}"
