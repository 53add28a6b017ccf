"""Expose the public utility surface for imapfetch.

Interfaces:
  ``JsonLogger``, ``get_logger`` and ``new_run_id``.
"""

from .ids import new_run_id
from .logging import JsonLogger, get_logger

__all__ = [
    "JsonLogger",
    "get_logger",
    "new_run_id",
]
