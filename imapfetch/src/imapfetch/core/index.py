"""Message-ID index built from an existing mbox archive.

What:
  Scan a local archive and collect the Message-ID header value of every stored
  record into a set (the *seen set*) used to skip messages on the next fetch.

Why:
  IMAP UIDs are only stable within one mailbox generation, whereas the
  Message-ID travels with the message. Treating it as a best-effort identity
  key lets a run resume after an interruption without refetching everything,
  while a missing or broken header only costs a redundant download.

How:
  Map the archive through :class:`~imapfetch.mbox.Mboxfile`, iterate its
  entries, and run a case-insensitive multiline regex over each entry's header
  block. The first match per entry is inserted verbatim (angle brackets
  included) so it compares equal to the raw envelope value sent by the server.

Interfaces:
  :class:`IndexResult`, :func:`extract_message_id`, :func:`scan_buffer`,
  :func:`build_index`.

Invariants & Safety:
  - An absent or empty archive yields an empty seen set, never an error.
  - :class:`~imapfetch.errors.FormatError` raised for a single entry is
    counted and skipped; the scan itself never fails on content.
  - The memory map is released before :func:`build_index` returns so the
    caller may reopen the file for appending.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set, Union

from ..errors import FormatError
from ..mbox import Entry, Mboxfile, MboxReader
from ..mbox.reader import Buffer


_HEADER_END = re.compile(rb"\r?\n\r?\n")
_MESSAGE_ID = re.compile(rb"^message-id:[ \t]*(?:\r?\n[ \t]+)?([^\r\n]*)", re.IGNORECASE | re.MULTILINE)


@dataclass
class IndexResult:
    """Outcome of one archive scan.

    Attributes:
      seen: Message-ID values found in the archive.
      entries: Total number of entries, reported for progress output only.
      malformed: Entries whose Message-ID header could not be used.
    """

    seen: Set[bytes] = field(default_factory=set)
    entries: int = 0
    malformed: int = 0


def extract_message_id(entry: Entry) -> Optional[bytes]:
    """Return the Message-ID of ``entry`` or ``None`` when it has none.

    Only the header block (up to the first blank line) is searched.

    Raises:
      FormatError: If a Message-ID header is present but carries no value.
    """

    data = entry.data
    header_end = _HEADER_END.search(data)
    limit = header_end.start() if header_end else len(data)
    match = _MESSAGE_ID.search(data, 0, limit)
    if match is None:
        return None
    value = bytes(match.group(1)).rstrip(b" \t")
    if not value:
        raise FormatError(f"empty Message-ID header in entry {entry.index}")
    return value


def scan_buffer(buffer: Buffer) -> IndexResult:
    """Build an :class:`IndexResult` from an in-memory or mapped buffer."""

    result = IndexResult()
    for entry in MboxReader(buffer):
        result.entries += 1
        try:
            message_id = extract_message_id(entry)
        except FormatError:
            result.malformed += 1
            continue
        if message_id is not None:
            result.seen.add(message_id)
    return result


def build_index(path: Union[str, Path]) -> IndexResult:
    """Scan the archive at ``path`` and return its seen set.

    What:
      Entry point used by the sync engine before each mailbox fetch.

    How:
      Missing and zero-length files short-circuit to an empty result. Otherwise
      the file is mapped for the duration of :func:`scan_buffer` only.

    Args:
      path: Location of the ``.mbox`` archive.

    Returns:
      The collected :class:`IndexResult`.

    Raises:
      IoError: If the file exists but cannot be opened or mapped.
    """

    archive = Path(path)
    if not archive.exists() or archive.stat().st_size == 0:
        return IndexResult()
    with Mboxfile(archive) as mbox:
        return scan_buffer(mbox.as_buffer())
