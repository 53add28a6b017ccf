"""Append-only writer for mbox archives.

What:
  Append raw RFC 822 message bodies to an ``.mbox`` file, each preceded by a
  ``From `` separator line and followed by exactly one blank line.

Why:
  The archive is the only persisted state of a backup run. A record must never
  be half-written in a way that corrupts the records before it, so every record
  goes out as a single contiguous write and is flushed to disk before the next
  message is fetched.

How:
  :func:`padding_for` decides whether one or two line terminators close the
  record. :class:`MboxWriter` opens the file in append-binary mode and exposes
  :meth:`MboxWriter.append`, which builds the whole record in memory, writes
  it once, flushes, and ``fsync``s.

Interfaces:
  :data:`DEFAULT_SENDER`, :func:`padding_for`, :func:`format_record`,
  :class:`MboxWriter`.

Invariants & Safety:
  - Existing bytes are never rewritten; the file is only opened with ``"ab"``.
  - An interruption can at worst leave the newest record truncated at the
    tail. Torn records are not repaired: if the tear falls before the
    Message-ID header the message is fetched again on the next run, otherwise
    it stays truncated, and the next record is appended directly after the
    torn tail without a separating blank line.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Optional, Union

from ..errors import FormatError, IoError
from .reader import LINE_END


DEFAULT_SENDER = "MAILER-DAEMON"


def padding_for(body: bytes) -> bytes:
    """Return the terminator bytes that close a record for ``body``.

    A body that already ends with a line terminator needs one more to form the
    blank line; any other body needs two.

    Raises:
      FormatError: If ``body`` is shorter than a line terminator, in which case
        the trailing bytes cannot be classified.
    """

    if len(body) < len(LINE_END):
        raise FormatError(f"message body too short to terminate ({len(body)} bytes)")
    if body[-len(LINE_END) :] == LINE_END:
        return LINE_END
    return LINE_END + LINE_END


def format_record(body: bytes, sender: str = DEFAULT_SENDER) -> bytes:
    """Build the complete on-disk bytes of one record."""

    separator = b"From " + sender.encode("ascii", errors="replace") + LINE_END
    return separator + body + padding_for(body)


class MboxWriter:
    """Context manager appending records to one archive file.

    What:
      Owns an append-mode file handle for ``path`` and counts appended records.

    Why:
      The sync engine opens the writer only after the Message-ID scan has
      released its memory map, and closes it before moving to the next
      mailbox, keeping read and write access to a file time-disjoint.

    How:
      The file is opened lazily on the first :meth:`append`, so a mailbox with
      nothing pending never creates or touches its archive.
    """

    def __init__(self, path: Union[str, Path], *, sender: str = DEFAULT_SENDER) -> None:
        self.path = Path(path)
        self.sender = sender
        self.appended = 0
        self._handle: Optional[BinaryIO] = None

    def _open(self) -> BinaryIO:
        if self._handle is None:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._handle = open(self.path, "ab")
            except OSError as exc:
                raise IoError(f"Unable to open mbox file {self.path} for append: {exc}") from exc
        return self._handle

    def append(self, body: bytes) -> int:
        """Append one record and make it durable.

        Args:
          body: Raw message octets as returned by the server.

        Returns:
          Number of bytes written.

        Raises:
          FormatError: If ``body`` is too short to be terminated. Nothing is
            written in that case.
          IoError: If the file cannot be opened, written, or synced.
        """

        record = format_record(body, self.sender)
        handle = self._open()
        try:
            handle.write(record)
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as exc:
            raise IoError(f"Unable to append to mbox file {self.path}: {exc}") from exc
        self.appended += 1
        return len(record)

    def close(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            finally:
                self._handle = None

    def __enter__(self) -> "MboxWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
