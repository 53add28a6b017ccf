"""In-memory IMAP backend used by unit tests.

What:
  Provide a drop-in replacement for :class:`imapclient.IMAPClient` that stores
  messages in Python data structures while exposing the subset of the API the
  imapfetch session relies on (login, list_folders, select_folder, fetch,
  logout, and the ``use_uid`` switch).

Why:
  Sync tests must exercise paging, deduplication, and resume behaviour without
  contacting a real server, and they need to assert on exactly which commands
  were issued (envelope batches, body fetches, logouts).

How:
  Maintain per-mailbox lists of :class:`_MessageRecord` entries with UIDs that
  deliberately differ from sequence numbers. ``fetch`` answers in sequence mode
  or UID mode depending on ``use_uid`` and records every call.

Interfaces:
  :class:`FakeImapBackend`, :func:`make_message`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from email.parser import BytesParser
from typing import Dict, Iterable, List, Optional, Tuple

from imapclient.exceptions import IMAPClientError, LoginError
from imapclient.response_types import Address, Envelope


def make_message(index: int, *, message_id: Optional[str] = "default", body: str = "Hello") -> bytes:
    """Build a small CRLF-terminated RFC 822 message.

    ``message_id="default"`` yields ``<index@example.com>``; ``None`` omits the
    header entirely.
    """

    headers = [
        "From: Alice <alice@example.com>",
        "To: Bob <bob@example.com>",
        f"Subject: Message {index}",
        "Date: Mon, 01 Jan 2024 10:00:00 +0000",
    ]
    if message_id == "default":
        headers.append(f"Message-ID: <{index}@example.com>")
    elif message_id is not None:
        headers.append(f"Message-ID: {message_id}")
    text = "\r\n".join(headers) + "\r\n\r\n" + f"{body} {index}\r\n"
    return text.encode("utf-8")


@dataclass
class _MessageRecord:
    """Internal representation of a stored message."""

    uid: int
    message_bytes: bytes

    @property
    def message_id(self) -> Optional[bytes]:
        message = BytesParser().parsebytes(self.message_bytes, headersonly=True)
        value = message.get("Message-ID")
        return value.encode("utf-8") if value else None

    @property
    def envelope(self) -> Envelope:
        return Envelope(
            date=datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            subject=b"subject",
            from_=(Address(b"Alice", None, b"alice", b"example.com"),),
            sender=None,
            reply_to=None,
            to=None,
            cc=None,
            bcc=None,
            in_reply_to=None,
            message_id=self.message_id,
        )


class FakeImapBackend:
    """Minimal IMAP backend satisfying the subset imapfetch relies upon.

    Attributes:
      password: The only password accepted by :meth:`login`.
      delimiter: Hierarchy delimiter reported by the root listing (``None``
        simulates a server without one).
      envelope_batches: ``(start, end)`` pairs of every sequence-mode fetch.
      body_fetches: ``(mailbox, uid)`` pairs of every ``RFC822`` fetch.
      login_attempts: Passwords tried, in order.
      logouts: Number of ``logout`` calls.
    """

    def __init__(self, password: str = "secret", delimiter: Optional[str] = "/") -> None:
        self.password = password
        self.delimiter = delimiter
        self.mailboxes: Dict[str, List[_MessageRecord]] = {}
        self.selected: Optional[str] = None
        self.use_uid = True
        self.envelope_batches: List[Tuple[int, int]] = []
        self.body_fetches: List[Tuple[str, int]] = []
        self.login_attempts: List[str] = []
        self.logouts = 0
        self.fail_logout = False
        self.fail_select: set = set()
        self.fail_login_with: Optional[Exception] = None
        self._next_uid = 10

    # Test helpers -------------------------------------------------------
    def add_mailbox(self, name: str, messages: Iterable[bytes] = ()) -> None:
        self.mailboxes.setdefault(name, [])
        for message in messages:
            self.add_message(name, message)

    def add_message(self, mailbox: str, message_bytes: bytes) -> int:
        uid = self._next_uid
        # Leave gaps so UIDs never coincide with sequence numbers.
        self._next_uid += 3
        self.mailboxes.setdefault(mailbox, []).append(_MessageRecord(uid=uid, message_bytes=message_bytes))
        return uid

    # Session management -------------------------------------------------
    def login(self, username: str, password: str) -> None:
        self.login_attempts.append(password)
        if self.fail_login_with is not None:
            raise self.fail_login_with
        if password != self.password:
            raise LoginError("[AUTHENTICATIONFAILED] Invalid credentials")

    def logout(self) -> None:
        self.logouts += 1
        if self.fail_logout:
            raise IMAPClientError("logout refused")

    # Mailbox helpers ----------------------------------------------------
    def list_folders(self, directory: str = "", pattern: str = "*"):
        delimiter = self.delimiter.encode() if self.delimiter is not None else None
        if pattern == "":
            return [((b"\\Noselect",), delimiter, "")]
        return [((b"\\HasNoChildren",), delimiter, name) for name in sorted(self.mailboxes)]

    def select_folder(self, name: str, readonly: bool = False) -> dict:
        if name not in self.mailboxes or name in self.fail_select:
            raise IMAPClientError(f"select failed: {name}")
        self.selected = name
        return {b"EXISTS": len(self.mailboxes[name]), b"UIDVALIDITY": 1, b"READ-ONLY": [b""]}

    # Message operations -------------------------------------------------
    def fetch(self, messages, data):
        records = self.mailboxes[self.selected]
        requested = [part.encode() if isinstance(part, str) else part for part in data]
        response: Dict[int, Dict[bytes, object]] = {}
        if not self.use_uid:
            start, end = (int(value) for value in str(messages).split(":"))
            self.envelope_batches.append((start, end))
            for seq in range(start, end + 1):
                record = records[seq - 1]
                payload: Dict[bytes, object] = {b"SEQ": seq}
                if b"UID" in requested:
                    payload[b"UID"] = record.uid
                if b"ENVELOPE" in requested:
                    payload[b"ENVELOPE"] = record.envelope
                response[seq] = payload
            return response

        by_uid = {record.uid: (seq, record) for seq, record in enumerate(records, start=1)}
        for uid in messages:
            if uid not in by_uid:
                continue
            seq, record = by_uid[uid]
            self.body_fetches.append((self.selected, uid))
            response[uid] = {b"SEQ": seq, b"RFC822": record.message_bytes}
        return response
