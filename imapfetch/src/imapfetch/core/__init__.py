"""Core synchronisation logic.

What:
  Expose the Message-ID index and the sync engine that together decide which
  remote messages still need to be archived.

Interfaces:
  - :func:`build_index`, :class:`IndexResult` from :mod:`.index`.
  - :class:`SyncEngine`, :class:`SyncReport`, :class:`MailboxReport`,
    :class:`SyncState`, :class:`FailurePolicy`, :class:`Progress`,
    :func:`batch_ranges` from :mod:`.engine`.
"""

from .engine import (
    FailurePolicy,
    MailboxReport,
    NullProgress,
    Progress,
    SyncEngine,
    SyncReport,
    SyncState,
    batch_ranges,
)
from .index import IndexResult, build_index, extract_message_id, scan_buffer

__all__ = [
    "FailurePolicy",
    "IndexResult",
    "MailboxReport",
    "NullProgress",
    "Progress",
    "SyncEngine",
    "SyncReport",
    "SyncState",
    "batch_ranges",
    "build_index",
    "extract_message_id",
    "scan_buffer",
]
