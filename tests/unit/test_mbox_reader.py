"""
Module: tests/unit/test_mbox_reader.py

What:
    Exercise the zero-copy mbox reader on hand-built buffers and on memory
    mapped files.

Why:
    Every backup run starts by rescanning the archive; a segmentation mistake
    either loses Message-IDs (causing duplicates) or merges records.

How:
    Feed literal CRLF buffers through :class:`MboxReader`, then write files to
    ``tmp_path`` and read them back through :class:`Mboxfile` and the ``info``
    helpers.

Invariants & Safety Rules:
    - Entries come out in file order and exclude separator lines.
    - Buffers without a line terminator yield nothing.
"""

import pytest

from imapfetch.errors import IoError
from imapfetch.mbox import (
    BOUNDARY,
    Mboxfile,
    MboxReader,
    MboxWriter,
    count_entries,
    describe_entries,
    find_boundary,
)


def _bodies(buffer: bytes):
    return [entry.tobytes() for entry in MboxReader(buffer)]


def test_two_records_with_padding():
    buffer = b"x\r\n\r\nFrom a\r\nBODY1\r\n\r\n\r\nFrom b\r\nBODY2\r\n"

    assert _bodies(buffer) == [b"BODY1\r\n", b"BODY2\r\n"]


def test_writer_layout_is_read_back_in_order():
    records = [b"Subject: %d\r\n\r\nbody %d\r\n" % (i, i) for i in range(5)]
    buffer = b"".join(b"From MAILER-DAEMON\r\n" + body + b"\r\n" for body in records)

    assert _bodies(buffer) == records


def test_single_record_without_trailing_padding():
    assert _bodies(b"From someone\r\nonly body\r\n") == [b"only body\r\n"]


def test_empty_and_unterminated_buffers_yield_nothing():
    assert _bodies(b"") == []
    assert _bodies(b"From nobody") == []


def test_from_inside_body_without_blank_line_is_kept():
    buffer = b"From x\r\nline\r\nFrom here on\r\n\r\nFrom y\r\nnext\r\n"

    assert _bodies(buffer) == [b"line\r\nFrom here on\r\n", b"next\r\n"]


def test_entry_indices_and_count():
    reader = MboxReader(b"From a\r\none\r\n\r\nFrom b\r\ntwo\r\n")
    entries = list(reader)

    assert [entry.index for entry in entries] == [0, 1]
    assert reader.count == 2
    assert len(entries[0]) == len(b"one\r\n")


def test_reader_is_single_pass():
    reader = MboxReader(b"From a\r\none\r\n")

    assert len(list(reader)) == 1
    assert list(reader) == []


def test_find_boundary_bounds():
    assert find_boundary(b"abc", 0) == -1
    assert find_boundary(BOUNDARY, 1) == -1
    assert find_boundary(BOUNDARY, -1) == -1
    assert find_boundary(b"xx" + BOUNDARY, 0) == 2


def test_preview_is_decoded_prefix():
    entry = next(MboxReader(b"From a\r\nSubject: hi there\r\n"))

    assert entry.preview(8) == "Subject:"


def test_mboxfile_maps_written_archive(tmp_path):
    path = tmp_path / "INBOX.mbox"
    with MboxWriter(path) as writer:
        writer.append(b"Message-ID: <1@x>\r\n\r\nfirst\r\n")
        writer.append(b"Message-ID: <2@x>\r\n\r\nsecond")

    with Mboxfile.open(path) as mbox:
        bodies = [entry.tobytes() for entry in mbox]

    assert bodies == [
        b"Message-ID: <1@x>\r\n\r\nfirst\r\n",
        b"Message-ID: <2@x>\r\n\r\nsecond\r\n",
    ]


def test_mboxfile_exits_cleanly_while_entries_are_referenced(tmp_path):
    path = tmp_path / "INBOX.mbox"
    with MboxWriter(path) as writer:
        writer.append(b"Subject: a\r\n\r\nfirst\r\n")
        writer.append(b"Subject: b\r\n\r\nsecond\r\n")

    sizes = []
    with Mboxfile.open(path) as mbox:
        for entry in mbox:
            sizes.append(len(entry))

    assert sizes == [len(b"Subject: a\r\n\r\nfirst\r\n"), len(b"Subject: b\r\n\r\nsecond\r\n")]
    assert entry.tobytes() == b"Subject: b\r\n\r\nsecond\r\n"
    assert mbox.as_buffer() == b""


def test_mboxfile_exit_does_not_mask_errors(tmp_path):
    path = tmp_path / "INBOX.mbox"
    with MboxWriter(path) as writer:
        writer.append(b"Subject: a\r\n\r\nfirst\r\n")

    with pytest.raises(KeyError):
        with Mboxfile.open(path) as mbox:
            for entry in mbox:
                raise KeyError(entry.index)


def test_mboxfile_empty_file(tmp_path):
    path = tmp_path / "empty.mbox"
    path.write_bytes(b"")

    assert count_entries(path) == 0


def test_mboxfile_missing_file_raises_io_error(tmp_path):
    with pytest.raises(IoError):
        Mboxfile.open(tmp_path / "missing.mbox")


def test_count_and_describe_entries(tmp_path):
    path = tmp_path / "Archive.mbox"
    with MboxWriter(path) as writer:
        for index in range(3):
            writer.append(b"Subject: %d\r\n\r\nbody\r\n" % index)

    assert count_entries(path) == 3
    assert describe_entries(path, width=10) == [
        "Entry 0 'Subject: 0'",
        "Entry 1 'Subject: 1'",
        "Entry 2 'Subject: 2'",
    ]
