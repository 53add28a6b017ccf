"""Codec for the local mbox archive format.

What:
  Surface the zero-copy reader (:class:`Mboxfile`, :class:`MboxReader`,
  :class:`Entry`) and the append-only :class:`MboxWriter`.

Interfaces:
  ``Entry``, ``Mboxfile``, ``MboxReader``, ``MboxWriter``, ``find_boundary``,
  ``padding_for``, ``format_record``, ``count_entries``, ``describe_entries``.
"""

from .reader import (
    BOUNDARY,
    LINE_END,
    Entry,
    Mboxfile,
    MboxReader,
    count_entries,
    describe_entries,
    find_boundary,
)
from .writer import DEFAULT_SENDER, MboxWriter, format_record, padding_for

__all__ = [
    "BOUNDARY",
    "LINE_END",
    "DEFAULT_SENDER",
    "Entry",
    "Mboxfile",
    "MboxReader",
    "MboxWriter",
    "count_entries",
    "describe_entries",
    "find_boundary",
    "format_record",
    "padding_for",
]
