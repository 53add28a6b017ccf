"""Zero-copy segmentation of mbox archives into message entries.

What:
  Split a byte buffer (usually a read-only memory map of an ``.mbox`` file)
  into the raw message records it contains, without copying the payloads.

Why:
  Archives grow with every run and are rescanned at the start of each one to
  rebuild the set of stored Message-IDs. Mapping the file and handing out
  :class:`memoryview` slices keeps that scan proportional to the number of
  boundaries rather than the number of bytes copied.

How:
  :class:`MboxReader` walks the buffer with plain substring searches. The first
  line of the buffer is taken as the first separator; every later record starts
  after a ``From `` line that is preceded by a blank line. The blank line and
  the separator line belong to the boundary, so each entry ends with the line
  terminator of its own last line. :class:`Mboxfile` owns the memory map and
  closes it when its context exits.

Interfaces:
  :data:`LINE_END`, :data:`BOUNDARY`, :func:`find_boundary`, :class:`Entry`,
  :class:`MboxReader`, :class:`Mboxfile`.

Invariants & Safety:
  - Entries are yielded in source order and are contiguous: concatenating the
    entries with the boundaries between them reproduces the buffer after its
    first line.
  - A reader is a single forward pass. Construct a new reader for a new scan.
  - Searches never index past the end of the buffer; a remaining buffer shorter
    than the pattern is reported as "not found".
  - The ``From `` heuristic tolerates the literal text ``From `` inside bodies
    unless it directly follows a blank line, which is the classic mbox
    ambiguity and is accepted as-is.
"""
from __future__ import annotations

import mmap
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..errors import IoError


LINE_END = b"\r\n"
BOUNDARY = LINE_END + LINE_END + b"From "

Buffer = Union[bytes, bytearray, mmap.mmap]


def find_boundary(buffer: Buffer, start: int = 0, needle: bytes = BOUNDARY) -> int:
    """Return the offset of ``needle`` in ``buffer`` at or after ``start``.

    What:
      Plain forward substring scan used for both line terminators and record
      boundaries.

    How:
      Short-circuit to ``-1`` when the remaining buffer cannot hold the needle,
      otherwise defer to the buffer's own ``find``.

    Args:
      buffer: Bytes-like object exposing ``find`` (``bytes`` or ``mmap``).
      start: Offset where the scan begins.
      needle: Pattern to locate.

    Returns:
      Offset of the first match, or ``-1`` when absent.
    """

    if start < 0 or len(buffer) - start < len(needle):
        return -1
    return buffer.find(needle, start)


@dataclass(frozen=True)
class Entry:
    """One message record inside an archive.

    Attributes:
      index: Zero-based ordinal of the entry within its archive.
      data: View over the record bytes, excluding the separator line.
    """

    index: int
    data: memoryview

    def __len__(self) -> int:
        return len(self.data)

    def tobytes(self) -> bytes:
        """Copy the entry out of the backing buffer."""

        return self.data.tobytes()

    def preview(self, width: int = 10) -> str:
        """Return a short, printable prefix used by ``imapfetch info``."""

        head = bytes(self.data[:width])
        return head.decode("utf-8", errors="replace")


class MboxReader:
    """Iterator yielding :class:`Entry` objects from a buffer.

    What:
      Lazily produces the records of an mbox buffer one boundary at a time.

    Why:
      Callers such as the Message-ID index only need one record at a time, so a
      lazy iterator lets the scan run over multi-gigabyte archives with a flat
      memory profile.

    How:
      Keeps a cursor into the buffer. The first call skips the buffer's first
      line; every call then searches for :data:`BOUNDARY` from the cursor and
      slices up to and including the line terminator that opens the boundary.
      When no boundary remains the tail of the buffer is the final entry.
    """

    def __init__(self, buffer: Buffer) -> None:
        self._buffer = buffer
        self._view = memoryview(buffer)
        self._cursor: Optional[int] = None
        self._done = False
        self._count = 0

    def __iter__(self) -> "MboxReader":
        return self

    def __next__(self) -> Entry:
        if self._done:
            raise StopIteration
        first = self._cursor is None
        if first:
            first_line = find_boundary(self._buffer, 0, b"\n")
            if first_line < 0:
                self._finish()
                raise StopIteration
            self._cursor = first_line + 1

        start = self._cursor
        # The boundary may share its first terminator with the previous line.
        match = find_boundary(self._buffer, max(start - len(LINE_END), 0))
        if match < 0:
            end = len(self._buffer)
        else:
            end = max(match + len(LINE_END), start)
            self._cursor = self._skip_separator(match)
            if first and end == start:
                # Preamble line directly followed by a separator: no record.
                return self.__next__()

        end = self._trim_padding(start, end)
        entry = Entry(index=self._count, data=self._view[start:end])
        self._count += 1
        if match < 0:
            self._finish()
        return entry

    def _skip_separator(self, match: int) -> int:
        separator_end = find_boundary(self._buffer, match + len(BOUNDARY), b"\n")
        if separator_end < 0:
            # The last separator has no terminator; nothing follows it.
            return len(self._buffer)
        return separator_end + 1

    def _trim_padding(self, start: int, end: int) -> int:
        """Drop blank lines that pad the record before the next boundary."""

        padding = LINE_END + LINE_END
        while end - start >= len(padding) and self._buffer[end - len(padding) : end] == padding:
            end -= len(LINE_END)
        return end

    @property
    def count(self) -> int:
        """Number of entries yielded so far."""

        return self._count

    def _finish(self) -> None:
        self._done = True
        # Entries already handed out hold their own reference to the buffer.
        self._view.release()


class Mboxfile:
    """Read-only memory map of an mbox file.

    What:
      Opens ``path`` and exposes its contents as a buffer suitable for
      :class:`MboxReader`.

    Why:
      Memory-mapping avoids loading whole archives into RAM. The mapping must
      be released before the same file is reopened for appending, so the class
      is a context manager and the engine always exits it before writing.

    How:
      ``mmap`` refuses zero-length files, so an empty file is represented by an
      empty ``bytes`` buffer instead of a mapping. ``OSError`` from opening or
      mapping is translated into :class:`~imapfetch.errors.IoError`.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._mmap: Optional[mmap.mmap] = None
        self._buffer: Buffer = b""

    @classmethod
    def open(cls, path: Union[str, Path]) -> "Mboxfile":
        """Construct and map ``path`` in one call."""

        mbox = cls(path)
        mbox._map()
        return mbox

    def _map(self) -> None:
        try:
            with open(self.path, "rb") as handle:
                size = os.fstat(handle.fileno()).st_size
                if size == 0:
                    self._buffer = b""
                    return
                self._mmap = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
        except OSError as exc:
            raise IoError(f"Unable to map mbox file {self.path}: {exc}") from exc
        self._buffer = self._mmap

    def as_buffer(self) -> Buffer:
        return self._buffer

    def iter(self) -> MboxReader:
        """Return a fresh reader over the mapped contents."""

        return MboxReader(self._buffer)

    def __iter__(self) -> Iterator[Entry]:
        return self.iter()

    def close(self) -> None:
        """Release the mapping.

        Entries still referenced by the caller keep views into the map, and
        ``mmap.close`` refuses to run while they exist. In that case the
        reference is dropped instead and the map is unmapped once the last
        entry is garbage collected.
        """

        if self._mmap is not None:
            try:
                self._mmap.close()
            except BufferError:
                pass
            self._mmap = None
        self._buffer = b""

    def __enter__(self) -> "Mboxfile":
        if self._mmap is None and not self._buffer:
            self._map()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def count_entries(path: Union[str, Path]) -> int:
    """Return the number of records stored in the archive at ``path``."""

    with Mboxfile(path) as mbox:
        return sum(1 for _ in mbox.iter())


def describe_entries(path: Union[str, Path], width: int = 10) -> List[str]:
    """Return one ``Entry <index> <preview>`` line per record of ``path``."""

    with Mboxfile(path) as mbox:
        return [f"Entry {entry.index} {entry.preview(width)!r}" for entry in mbox.iter()]
