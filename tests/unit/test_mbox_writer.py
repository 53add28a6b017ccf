"""
Module: tests/unit/test_mbox_writer.py

What:
    Verify record framing and append-only behaviour of :class:`MboxWriter`.

Why:
    The archive is never rewritten, so the exact bytes of each appended record
    decide whether the next scan can split it again.

How:
    Append bodies into files under ``tmp_path`` and compare raw file contents.
"""

import pytest

from imapfetch.errors import FormatError
from imapfetch.mbox import MboxReader, MboxWriter, format_record, padding_for


def test_padding_depends_on_trailing_line_end():
    assert padding_for(b"body\r\n") == b"\r\n"
    assert padding_for(b"body") == b"\r\n\r\n"
    assert padding_for(b"\r\n") == b"\r\n"


@pytest.mark.parametrize("body", [b"", b"x"])
def test_padding_rejects_short_bodies(body):
    with pytest.raises(FormatError):
        padding_for(body)


def test_format_record_uses_sender():
    assert format_record(b"hi\r\n", "archiver") == b"From archiver\r\nhi\r\n\r\n"


def test_writer_creates_file_lazily(tmp_path):
    path = tmp_path / "nested" / "INBOX.mbox"
    writer = MboxWriter(path)
    writer.close()

    assert not path.exists()

    with MboxWriter(path) as writer:
        written = writer.append(b"hello\r\n")

    assert path.read_bytes() == b"From MAILER-DAEMON\r\nhello\r\n\r\n"
    assert written == len(path.read_bytes())
    assert writer.appended == 1


def test_writer_appends_without_rewriting(tmp_path):
    path = tmp_path / "INBOX.mbox"
    with MboxWriter(path) as writer:
        writer.append(b"first")
    before = path.read_bytes()

    with MboxWriter(path) as writer:
        writer.append(b"second\r\n")

    after = path.read_bytes()
    assert after.startswith(before)
    assert after[len(before):] == b"From MAILER-DAEMON\r\nsecond\r\n\r\n"


def test_rejected_body_writes_nothing(tmp_path):
    path = tmp_path / "INBOX.mbox"
    with MboxWriter(path) as writer:
        with pytest.raises(FormatError):
            writer.append(b"x")

    assert not path.exists()
    assert writer.appended == 0


def test_written_records_split_back_into_bodies(tmp_path):
    path = tmp_path / "INBOX.mbox"
    bodies = [b"Subject: a\r\n\r\nline\r\n", b"Subject: b\r\n\r\nno newline", b"Subject: c\r\n\r\nsee below\r\nFrom inside\r\n"]
    with MboxWriter(path) as writer:
        for body in bodies:
            writer.append(body)

    entries = [entry.tobytes() for entry in MboxReader(path.read_bytes())]

    assert entries == [bodies[0], bodies[1] + b"\r\n", bodies[2]]
